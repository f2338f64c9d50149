from fastapi import APIRouter, HTTPException, status

from app.core.config import settings
from app.schemas.auth import OperatorLogin, Token
from app.services.auth import AuthenticationError, AuthService

router = APIRouter()


@router.post("/login", response_model=Token)
async def operator_login(credentials: OperatorLogin):
    """Exchange the operator password for a bearer token."""
    try:
        token = AuthService.login(credentials.password)
    except AuthenticationError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid operator credentials",
        )
    return Token(
        access_token=token,
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
