"""
Authentication endpoints for user registration, login and profile.

Implements JWT-based stateless authentication:
- POST /register: Create new user account and receive a session token
- POST /login: Authenticate and receive a session token
- GET /me: Get current user profile (bearer token required)
"""

import logging
import uuid
from datetime import datetime, timezone
from fastapi import APIRouter, HTTPException, Depends, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.security import verify_password, get_password_hash, create_access_token
from app.core.deps import get_current_user
from app.models.user import User
from app.schemas.user import (
    AuthResponse,
    MeResponse,
    UserLoginRequest,
    UserRegisterRequest,
    UserResponse,
)

router = APIRouter(prefix="/auth", tags=["Authentication"])
logger = logging.getLogger(__name__)


def _issue_token(user: User) -> str:
    return create_access_token(account_id=str(user.id), email=user.email, role=user.role)


@router.post("/register", status_code=201, response_model=AuthResponse)
def register(
    request: UserRegisterRequest,
    db: Session = Depends(get_db)
):
    """
    Register a new user account.

    Returns a session token for immediate login.
    """
    existing_user = db.query(User).filter(User.email == request.email).first()
    if existing_user:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered"
        )

    new_user = User(
        id=uuid.uuid4(),
        email=request.email,
        hashed_password=get_password_hash(request.password),
        full_name=request.name,
        role="user",
        is_active=True,
        password_history=[],
    )
    db.add(new_user)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent registration for the same email
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered"
        )
    db.refresh(new_user)

    logger.info(f"New user registered: {new_user.email}")

    return AuthResponse(
        message="Account created successfully",
        token=_issue_token(new_user),
        user=UserResponse.model_validate(new_user)
    )


@router.post("/login", response_model=AuthResponse)
def login(
    request: UserLoginRequest,
    db: Session = Depends(get_db)
):
    """
    Authenticate user and return a session token.

    Unknown email and wrong password get the same 401 so the endpoint does
    not reveal which accounts exist. Updates last_login_at.
    """
    user = db.query(User).filter(User.email == request.email).first()
    if not user or not verify_password(request.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive. Please contact support."
        )

    user.last_login_at = datetime.now(timezone.utc)
    db.commit()

    logger.info(f"User logged in: {user.email}")

    return AuthResponse(
        message="Login successful",
        token=_issue_token(user),
        user=UserResponse.model_validate(user)
    )


@router.get("/me", response_model=MeResponse)
def get_current_user_profile(
    current_user: User = Depends(get_current_user)
):
    """
    Get current authenticated user's profile.

    Requires valid JWT token in Authorization header.
    """
    return MeResponse(user=UserResponse.model_validate(current_user))
