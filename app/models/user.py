"""
User model for authentication and password recovery.

Each User is one account. Password recovery state lives on the account row
itself so the HTTP layer stays stateless between requests.
"""

import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Integer, JSON, func
from sqlalchemy.dialects.postgresql import UUID
from app.core.database import Base


class User(Base):
    """
    Account record.

    Recovery columns are only ever written through
    app.core.recovery.RecoveryState.apply_to(); at most one of
    reset_otp / reset_token is set at a time.
    """
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)

    # Authentication credentials (email stored trimmed and lowercased)
    email = Column(String, unique=True, nullable=False, index=True)
    hashed_password = Column(String, nullable=False)

    # Most recent hashes, newest last, capped at settings.PASSWORD_HISTORY_SIZE
    password_history = Column(JSON, nullable=False, default=list)

    # User profile
    full_name = Column(String, nullable=True)
    role = Column(String(20), nullable=False, default="user")

    # Account status
    is_active = Column(Boolean, default=True, nullable=False)

    # Password recovery state
    reset_otp = Column(String(12), nullable=True)
    reset_otp_expires_at = Column(DateTime(timezone=True), nullable=True)
    reset_token = Column(String(128), nullable=True)
    reset_token_expires_at = Column(DateTime(timezone=True), nullable=True)
    reset_attempts = Column(Integer, nullable=False, default=0)  # failed code checks
    reset_requests = Column(Integer, nullable=False, default=0)  # codes issued this cycle
    reset_locked_until = Column(DateTime(timezone=True), nullable=True)
    last_password_reset_at = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    last_login_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
