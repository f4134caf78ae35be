"""
Pydantic schemas for the password recovery endpoints.

Request fields are optional on purpose: missing or malformed values are
reported by the recovery flow as 400 responses in the same
{success, message} shape as every other recovery failure, not as 422.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class ResetRequestIn(BaseModel):
    """Start a reset: email a one-time code."""
    email: Optional[str] = None


class ResetVerifyIn(BaseModel):
    """Exchange the emailed code for a continuation token."""
    email: Optional[str] = None
    otp: Optional[str] = None


class ResetCompleteIn(BaseModel):
    """Set a new password; `otp` carries the continuation token."""
    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = None
    otp: Optional[str] = None
    new_password: Optional[str] = Field(None, alias="newPassword")


class ResetMessageResponse(BaseModel):
    success: bool
    message: str


class ResetVerifyResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str
    reset_token: str = Field(..., alias="resetToken")
