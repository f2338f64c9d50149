from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.api import api_router
from app.core.config import settings
from app.core.database import engine, init_db
from app.core.errors import BookingError, ErrorKind
from app.core.logging import configure_logging

logger = structlog.get_logger(__name__)

ERROR_STATUS_CODES = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.VALIDATION_ERROR: 422,
    ErrorKind.STORE_UNAVAILABLE: 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info(
        "Application starting up",
        environment=settings.ENVIRONMENT,
        lock_backend=settings.LOCK_BACKEND,
    )
    await init_db(create_tables=settings.AUTO_CREATE_TABLES)
    yield
    await engine.dispose()
    logger.info("Application shutting down")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    """Declined operations become 4xx/5xx responses carrying the error kind."""
    status_code = ERROR_STATUS_CODES.get(exc.kind, 409)
    logger.info(
        "Request declined",
        path=request.url.path,
        error=exc.kind.value,
        detail=exc.message,
    )
    return JSONResponse(status_code=status_code, content=exc.to_dict())


app.include_router(api_router, prefix="/api/v1")


@app.get("/health")
async def health():
    return {"status": "ok", "version": settings.VERSION}
