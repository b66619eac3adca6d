from typing import Optional

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app.core.config import settings

logger = structlog.get_logger(__name__)

# HTTP Bearer token extractor
security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)

DEV_AUTH_ENVIRONMENTS = {"development", "test"}


def _credentials_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def _user_id_from_token(token: str) -> str:
    """
    Resolve the caller's user id from a bearer token.

    - In production: the token is an access token signed by the identity
      provider; the user id is its ``sub`` claim
    - In test/dev: falls back to treating the token as the plain user id
      when no signing secret is configured
    """
    if not settings.AUTH_JWT_SECRET:
        if settings.ENVIRONMENT not in DEV_AUTH_ENVIRONMENTS:
            logger.error(
                "AUTH_JWT_SECRET not configured, rejecting request",
                environment=settings.ENVIRONMENT,
            )
            raise _credentials_error()
        return _user_id_dev_fallback(token)

    try:
        claims = jwt.decode(
            token,
            settings.AUTH_JWT_SECRET,
            algorithms=[settings.AUTH_JWT_ALGORITHM],
            audience=settings.AUTH_JWT_AUDIENCE,
            options={"verify_aud": bool(settings.AUTH_JWT_AUDIENCE)},
        )
    except JWTError as e:
        logger.info("Access token rejected", error=str(e))
        raise _credentials_error()

    user_id = claims.get("sub")
    if not user_id:
        logger.info("Access token has no subject")
        raise _credentials_error()
    return str(user_id)


def _user_id_dev_fallback(token: str) -> str:
    """Development/test fallback: the token is the user id itself."""
    user_id = token.strip()
    if not user_id:
        raise _credentials_error()
    return user_id


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> str:
    """Get the authenticated user id."""
    return _user_id_from_token(credentials.credentials)


async def get_optional_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
) -> Optional[str]:
    """Get the user id when the caller is signed in; guests get None."""
    if credentials is None:
        return None
    return _user_id_from_token(credentials.credentials)
