"""
FastAPI Dependencies - Bearer JWT authentication.

NO DICTIONARIES - All dependencies return typed objects.
"""

from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from structlog import get_logger

from timeless.config import settings
from timeless.exceptions import AuthenticationError
from timeless.models.domain import UserIdentity

logger = get_logger(__name__)

# Bearer token scheme for JWT auth
bearer_scheme = HTTPBearer(auto_error=False)


def verify_access_token(token: str) -> UserIdentity:
    """
    Verify an access token issued by the auth provider.

    Checks signature, expiry, and audience; the sub claim is the user id.

    Raises:
        AuthenticationError: Token is invalid, expired, or has no usable sub
    """
    if not settings.auth_jwt_secret:
        raise AuthenticationError("JWT secret not configured")

    try:
        payload = jwt.decode(
            token,
            settings.auth_jwt_secret,
            algorithms=[settings.auth_jwt_algorithm],
            audience=settings.auth_jwt_audience,
        )
    except jwt.ExpiredSignatureError as e:
        raise AuthenticationError("Token expired") from e
    except jwt.InvalidTokenError as e:
        raise AuthenticationError(str(e)) from e

    subject = payload.get("sub")
    if not subject:
        raise AuthenticationError("Token missing subject")

    try:
        user_id = UUID(str(subject))
    except ValueError as e:
        raise AuthenticationError("Token subject is not a user id") from e

    return UserIdentity(
        user_id=user_id,
        email=payload.get("email"),
        role=payload.get("role"),
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> UserIdentity:
    """
    FastAPI dependency to authenticate the caller.

    Accepts: Authorization: Bearer {access_token}

    Raises:
        HTTPException 401 if no token or invalid token
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return verify_access_token(credentials.credentials)
    except AuthenticationError as e:
        logger.warning("user_token_invalid", error=e.message)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
