"""
Password recovery state and outcomes.

RecoveryState is the in-memory view of the recovery columns on a User row.
All mutations go through its transition methods so the rules below hold
wherever the state is changed:

- at most one pending value exists: nothing, an OTP, or a continuation token
- an expired pending value is treated as absent
- a lockout always clears the pending value and zeroes both counters
- a lockout in the future supersedes every other check
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Union

from app.models.user import User


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round trip)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class NoPending:
    """No recovery action is pending."""


@dataclass(frozen=True)
class OtpPending:
    """A one-time code was emailed and awaits verification."""
    code: str
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


@dataclass(frozen=True)
class TokenPending:
    """The code was verified; a continuation token authorizes the reset."""
    token: str
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


Pending = Union[NoPending, OtpPending, TokenPending]


class RecoveryPhase(str, Enum):
    IDLE = "idle"
    OTP_ISSUED = "otp_issued"
    VERIFIED = "verified"
    LOCKED = "locked"


@dataclass
class RecoveryState:
    pending: Pending = field(default_factory=NoPending)
    failed_attempts: int = 0
    request_count: int = 0
    locked_until: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: User) -> "RecoveryState":
        pending: Pending = NoPending()
        otp_expires = ensure_utc(user.reset_otp_expires_at)
        token_expires = ensure_utc(user.reset_token_expires_at)
        if user.reset_token and token_expires:
            pending = TokenPending(token=user.reset_token, expires_at=token_expires)
        elif user.reset_otp and otp_expires:
            pending = OtpPending(code=user.reset_otp, expires_at=otp_expires)

        return cls(
            pending=pending,
            failed_attempts=user.reset_attempts or 0,
            request_count=user.reset_requests or 0,
            locked_until=ensure_utc(user.reset_locked_until),
        )

    def apply_to(self, user: User) -> None:
        """Write this state back onto the account row (caller commits)."""
        user.reset_otp = None
        user.reset_otp_expires_at = None
        user.reset_token = None
        user.reset_token_expires_at = None

        if isinstance(self.pending, OtpPending):
            user.reset_otp = self.pending.code
            user.reset_otp_expires_at = self.pending.expires_at
        elif isinstance(self.pending, TokenPending):
            user.reset_token = self.pending.token
            user.reset_token_expires_at = self.pending.expires_at

        user.reset_attempts = self.failed_attempts
        user.reset_requests = self.request_count
        user.reset_locked_until = self.locked_until

    # Queries

    def is_locked(self, now: datetime) -> bool:
        return self.locked_until is not None and now < self.locked_until

    def lock_minutes_remaining(self, now: datetime) -> int:
        if not self.is_locked(now):
            return 0
        return math.ceil((self.locked_until - now).total_seconds() / 60)

    def phase(self, now: datetime) -> RecoveryPhase:
        if self.is_locked(now):
            return RecoveryPhase.LOCKED
        if isinstance(self.pending, OtpPending) and not self.pending.is_expired(now):
            return RecoveryPhase.OTP_ISSUED
        if isinstance(self.pending, TokenPending) and not self.pending.is_expired(now):
            return RecoveryPhase.VERIFIED
        return RecoveryPhase.IDLE

    # Transitions

    def lock(self, now: datetime, minutes: int) -> None:
        self.locked_until = now + timedelta(minutes=minutes)
        self.pending = NoPending()
        self.failed_attempts = 0
        self.request_count = 0

    def issue_otp(self, code: str, now: datetime, minutes: int) -> None:
        self.pending = OtpPending(code=code, expires_at=now + timedelta(minutes=minutes))
        self.request_count += 1

    def record_failure(self) -> int:
        self.failed_attempts += 1
        return self.failed_attempts

    def expire_pending(self) -> None:
        self.pending = NoPending()

    def mark_verified(self, token: str, now: datetime, minutes: int) -> None:
        self.pending = TokenPending(token=token, expires_at=now + timedelta(minutes=minutes))
        self.failed_attempts = 0
        self.request_count = 0

    def clear(self) -> None:
        self.pending = NoPending()
        self.failed_attempts = 0
        self.request_count = 0
        self.locked_until = None


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    EXPIRED = "expired"
    MISMATCH = "mismatch"


# NOT_FOUND is rendered like a validation failure so account existence never leaks
OUTCOME_STATUS = {
    OutcomeKind.SUCCESS: 200,
    OutcomeKind.VALIDATION: 400,
    OutcomeKind.NOT_FOUND: 400,
    OutcomeKind.RATE_LIMITED: 429,
    OutcomeKind.EXPIRED: 400,
    OutcomeKind.MISMATCH: 400,
}


@dataclass
class RecoveryOutcome:
    kind: OutcomeKind
    message: str
    reset_token: Optional[str] = None
    remaining_attempts: Optional[int] = None
    locked: bool = False

    @property
    def status_code(self) -> int:
        return OUTCOME_STATUS[self.kind]

    @property
    def success(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS
