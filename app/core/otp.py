"""
One-time code generation for password recovery.

Codes are handled as strings end to end so leading zeros survive storage,
comparison and email rendering.
"""

import secrets
from typing import Optional

from app.core.config import settings

OTP_ALPHABET = "0123456789"


def generate_otp(length: Optional[int] = None) -> str:
    """
    Generate a numeric one-time code.

    Uses the secrets module so every digit is drawn uniformly from a
    cryptographically secure source.

    Args:
        length: Number of digits (defaults to settings.OTP_LENGTH)

    Returns:
        str: Numeric code, e.g. "048213"

    Raises:
        ValueError: If length is smaller than 1
    """
    if length is None:
        length = settings.OTP_LENGTH
    if length < 1:
        raise ValueError("OTP length must be at least 1")

    return ''.join(secrets.choice(OTP_ALPHABET) for _ in range(length))
