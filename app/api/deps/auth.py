import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.services.auth import AuthenticationError, AuthService

logger = structlog.get_logger(__name__)

# HTTP Bearer token extractor
security = HTTPBearer()


async def get_current_operator(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> str:
    """
    Require a valid operator bearer token.

    Returns the token subject; raises 401 for missing, expired or foreign
    tokens.
    """
    try:
        return AuthService.verify_token(credentials.credentials)
    except AuthenticationError as e:
        logger.warning(
            "Operator authentication failed",
            token_preview=credentials.credentials[:10] + "***",
            error=str(e),
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication failed",
            headers={"WWW-Authenticate": "Bearer"},
        )
