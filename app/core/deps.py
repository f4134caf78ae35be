"""
FastAPI dependencies for authentication and authorization.

These dependencies are used to protect endpoints and extract user context.
"""

import logging
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from app.core.database import get_db
from app.core.security import TokenError, TokenExpiredError, decode_token
from app.models.user import User

logger = logging.getLogger(__name__)

# HTTP Bearer token scheme (Authorization: Bearer <token>); missing tokens are
# reported by get_current_user so every auth failure is a 401
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_token_payload(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> dict:
    """
    Extract and verify the bearer token.

    Raises:
        HTTPException 401: "missing", "expired" and "invalid" each get their own message
    """
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Authentication token is missing")

    try:
        return decode_token(credentials.credentials)
    except TokenExpiredError:
        raise _unauthorized("Token has expired")
    except TokenError as e:
        logger.info(f"Rejected bearer token ({type(e).__name__}): {e}")
        raise _unauthorized("Invalid authentication token")


def get_current_user(
    payload: dict = Depends(get_token_payload),
    db: Session = Depends(get_db)
) -> User:
    """
    Resolve the account a verified token belongs to.

    Raises:
        HTTPException 401: If the subject is not a known account
        HTTPException 403: If the account is inactive
    """
    try:
        user_id = UUID(payload["sub"])
    except (KeyError, ValueError):
        raise _unauthorized("Invalid authentication token")

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise _unauthorized("Invalid authentication token")

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive"
        )

    return user
