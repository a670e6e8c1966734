"""
One-time code lifecycle for email verification and password reset.

A challenge lives in the account row (code, expiry, attempt counter, purpose)
and is cleared entirely once it is consumed. Counter changes and consumption
are single conditional UPDATE statements so concurrent submissions cannot
both succeed or lose an increment.
"""
import secrets
from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session

from studentnet import models
from studentnet.core.config import settings
from studentnet.core.exceptions import (
    OTPAttemptsExceededError,
    OTPExpiredError,
    OTPMismatchError,
    TooManyRequestsError,
)
from studentnet.utils import generate_otp, utcnow

User = models.User

_CLEARED_CHALLENGE = {
    User.otp_code: None,
    User.otp_expires_at: None,
    User.otp_attempts: 0,
    User.otp_purpose: None,
    User.otp_issued_at: None,
}


def issue(db: Session, user: models.User, purpose: models.OTPPurpose) -> str:
    """Start a new challenge, replacing any outstanding one"""
    now = utcnow()
    code = generate_otp()
    user.otp_code = code
    user.otp_expires_at = now + timedelta(minutes=settings.OTP_EXPIRE_MINUTES)
    user.otp_attempts = 0
    user.otp_purpose = purpose
    user.otp_issued_at = now
    db.commit()
    db.refresh(user)
    return code


def ensure_can_reissue(user: models.User) -> None:
    cooldown = settings.OTP_RESEND_COOLDOWN_SECONDS
    if cooldown <= 0 or user.otp_issued_at is None:
        return
    if utcnow() - user.otp_issued_at < timedelta(seconds=cooldown):
        raise TooManyRequestsError()


def check(db: Session, user: models.User, submitted: str, purpose: models.OTPPurpose,
          on_success: Optional[dict] = None) -> None:
    """
    Verify ``submitted`` against the outstanding challenge.

    Raises OTPAttemptsExceededError, OTPExpiredError or OTPMismatchError.
    On success the challenge is cleared in the same statement that applies
    ``on_success`` (extra column values), e.g. the verified flag or a new
    password hash.
    """
    max_attempts = settings.MAX_OTP_ATTEMPTS

    if user.otp_attempts >= max_attempts:
        raise OTPAttemptsExceededError()

    if (
        not user.otp_code
        or user.otp_purpose != purpose
        or user.otp_expires_at is None
        or user.otp_expires_at < utcnow()
    ):
        raise OTPExpiredError()

    current_code = user.otp_code

    if not secrets.compare_digest(current_code.encode(), submitted.encode()):
        db.query(User).filter(
            User.id == user.id,
            User.otp_code == current_code,
        ).update({User.otp_attempts: User.otp_attempts + 1}, synchronize_session=False)
        db.commit()
        db.refresh(user)
        raise OTPMismatchError(attempts_remaining=max(0, max_attempts - user.otp_attempts))

    values = dict(_CLEARED_CHALLENGE)
    criteria = [
        User.id == user.id,
        User.otp_code == current_code,
        User.otp_attempts < max_attempts,
    ]
    if on_success:
        values.update(on_success)
    if purpose == models.OTPPurpose.VERIFICATION:
        values[User.is_verified] = True
        criteria.append(User.is_verified.is_(False))

    consumed = db.query(User).filter(*criteria).update(values, synchronize_session=False)
    if not consumed:
        # Consumed, re-issued or exhausted by a concurrent request
        db.rollback()
        db.refresh(user)
        if user.otp_attempts >= max_attempts:
            raise OTPAttemptsExceededError()
        raise OTPExpiredError()

    db.commit()
    db.refresh(user)
