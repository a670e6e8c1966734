"""
Failed-login lockout.

Unlocked (no failures, no lock_until) -> Locked (lock_until in the future)
-> Unlocked (window lapsed or a successful login). The window is fixed, not
exponential. Every transition is one conditional UPDATE on the account row.
"""
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from studentnet import models
from studentnet.core.config import settings
from studentnet.utils import utcnow

User = models.User


def is_locked(user: models.User, now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    return user.lock_until is not None and user.lock_until > now


def record_failure(db: Session, user: models.User) -> None:
    now = utcnow()

    # A lapsed lock restarts the count with this failure
    restarted = db.query(User).filter(
        User.id == user.id,
        User.lock_until.isnot(None),
        User.lock_until <= now,
    ).update({User.failed_login_attempts: 1, User.lock_until: None}, synchronize_session=False)

    if not restarted:
        db.query(User).filter(User.id == user.id).update(
            {User.failed_login_attempts: User.failed_login_attempts + 1},
            synchronize_session=False,
        )
        db.query(User).filter(
            User.id == user.id,
            User.lock_until.is_(None),
            User.failed_login_attempts >= settings.MAX_LOGIN_ATTEMPTS,
        ).update(
            {User.lock_until: now + timedelta(minutes=settings.LOCKOUT_MINUTES)},
            synchronize_session=False,
        )

    db.commit()
    db.refresh(user)


def record_success(db: Session, user: models.User) -> None:
    cleared = db.query(User).filter(
        User.id == user.id,
        or_(User.failed_login_attempts > 0, User.lock_until.isnot(None)),
    ).update({User.failed_login_attempts: 0, User.lock_until: None}, synchronize_session=False)
    if cleared:
        db.commit()
        db.refresh(user)
