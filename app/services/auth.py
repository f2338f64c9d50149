import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from jose import JWTError, jwt

from app.core.config import settings

logger = structlog.get_logger(__name__)

OPERATOR_SUBJECT = "operator"


class AuthenticationError(Exception):
    """Raised when operator credentials or tokens are not valid."""


class AuthService:
    """Authentication for the single shop operator.

    Clients are not authenticated; they identify themselves by name.
    """

    @staticmethod
    def verify_operator_password(password: str) -> bool:
        if settings.OPERATOR_PASSWORD is None:
            logger.warning("OPERATOR_PASSWORD is not configured, operator login disabled")
            return False
        expected = settings.OPERATOR_PASSWORD.get_secret_value()
        return secrets.compare_digest(password.encode(), expected.encode())

    @staticmethod
    def create_access_token(
        subject: str = OPERATOR_SUBJECT, expires_delta: Optional[timedelta] = None
    ) -> str:
        expire = datetime.now(timezone.utc) + (
            expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        )
        payload = {"sub": subject, "exp": expire}
        return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

    @classmethod
    def login(cls, password: str) -> str:
        """Exchange the operator password for a bearer token."""
        if not cls.verify_operator_password(password):
            logger.warning("Operator login failed")
            raise AuthenticationError("Invalid operator credentials")
        logger.info("Operator logged in")
        return cls.create_access_token()

    @staticmethod
    def verify_token(token: str) -> str:
        """Return the token subject, raising AuthenticationError if invalid."""
        try:
            payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        except JWTError as e:
            raise AuthenticationError("Invalid or expired token") from e

        subject = payload.get("sub")
        if subject != OPERATOR_SUBJECT:
            raise AuthenticationError("Token does not belong to the operator")
        return subject
