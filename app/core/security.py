"""
Security utilities for JWT authentication, password hashing and reset secrets.

Session tokens are HS256-signed JWTs carrying the account id, email and role.
Passwords are hashed using bcrypt. Password-reset continuation tokens are
unsigned random secrets; their integrity comes from being stored server side
and compared by exact match.
"""

import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import List, Optional
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from app.core.config import settings

# Password hashing context (bcrypt)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.BCRYPT_ROUNDS)

PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 128
RESET_TOKEN_BYTES = 32


class TokenError(Exception):
    """Base class for session token verification failures."""


class TokenMalformedError(TokenError):
    """The value is not a structurally valid JWT."""


class TokenSignatureError(TokenError):
    """The JWT signature or claims did not validate."""


class TokenExpiredError(TokenError):
    """The JWT is well formed and correctly signed but past its expiry."""


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a hashed password."""
    # Bcrypt has a 72-byte limit - truncate if necessary
    password_bytes = plain_password.encode('utf-8')[:72]
    return pwd_context.verify(password_bytes, hashed_password)


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt.

    Note: Bcrypt has a 72-byte limit. Passwords longer than 72 bytes
    are automatically truncated to comply with this limitation.
    """
    password_bytes = password.encode('utf-8')[:72]
    return pwd_context.hash(password_bytes)


def validate_password_strength(password: str) -> List[str]:
    """
    Check a candidate password against the password policy.

    Returns:
        List of human readable violations; empty when the password is acceptable.
    """
    errors = []
    if len(password) < PASSWORD_MIN_LENGTH:
        errors.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
    if len(password) > PASSWORD_MAX_LENGTH:
        errors.append(f"Password must be less than {PASSWORD_MAX_LENGTH} characters")
    return errors


def create_access_token(
    account_id: str,
    email: str,
    role: str = "user",
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a signed session token.

    Args:
        account_id: Account identifier, stored in the "sub" claim
        email: Account email
        role: Account role ("user" or "admin")
        expires_delta: Optional lifetime (default: settings.ACCESS_TOKEN_EXPIRE_DAYS)

    Returns:
        Encoded JWT token as a string
    """
    now = datetime.now(timezone.utc)
    if expires_delta is None:
        expires_delta = timedelta(days=settings.ACCESS_TOKEN_EXPIRE_DAYS)

    to_encode = {
        "sub": str(account_id),
        "email": email,
        "role": role,
        "iat": now,
        "exp": now + expires_delta,
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> dict:
    """
    Decode and validate a session token.

    Args:
        token: The JWT token to decode

    Returns:
        Dictionary containing the token payload

    Raises:
        TokenMalformedError: If the value cannot be parsed as a JWT
        TokenExpiredError: If the signature is valid but the token has expired
        TokenSignatureError: If the signature or claims are invalid
    """
    try:
        jwt.get_unverified_header(token)
    except JWTError as e:
        raise TokenMalformedError(str(e)) from e

    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except ExpiredSignatureError as e:
        raise TokenExpiredError(str(e)) from e
    except JWTError as e:
        raise TokenSignatureError(str(e)) from e

    if not payload.get("sub"):
        raise TokenSignatureError("Token has no subject")
    return payload


def generate_reset_token() -> str:
    """
    Generate a password-reset continuation token.

    32 random bytes (256 bits) from the OS CSPRNG, URL-safe base64 encoded.
    """
    return secrets.token_urlsafe(RESET_TOKEN_BYTES)


def secrets_match(expected: str, provided: str) -> bool:
    """Constant-time comparison of two stored/submitted secrets."""
    return hmac.compare_digest(expected.encode('utf-8'), provided.encode('utf-8'))
