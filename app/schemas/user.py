"""
Pydantic schemas for User authentication and registration.
"""

from pydantic import BaseModel, ConfigDict, EmailStr, Field, UUID4, field_validator
from typing import Optional

from app.core.security import validate_password_strength


class UserRegisterRequest(BaseModel):
    """Request schema for user registration."""
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(..., description="Password must be 6-128 characters")

    @field_validator('name')
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError('Name must be at least 2 characters')
        return v

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator('password')
    @classmethod
    def validate_password(cls, v: str) -> str:
        errors = validate_password_strength(v)
        if errors:
            raise ValueError(errors[0])
        return v


class UserLoginRequest(BaseModel):
    """Request schema for JSON login."""
    email: EmailStr
    password: str

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class UserResponse(BaseModel):
    """User profile response (no sensitive data)."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID4
    name: Optional[str] = Field(None, validation_alias="full_name")
    email: str
    role: str


class AuthResponse(BaseModel):
    """Session token issued by register/login."""
    success: bool = True
    message: str
    token: str
    user: UserResponse


class MeResponse(BaseModel):
    success: bool = True
    user: UserResponse
