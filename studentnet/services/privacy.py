"""Profile visibility and field redaction."""
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from studentnet import models

ProfileVisibility = models.ProfileVisibility

# Disclosure used when an account has no settings record yet
DEFAULT_SHOW_EMAIL = True
DEFAULT_SHOW_PHONE = False


def get_settings(db: Session, user_id: int) -> Optional[models.PrivacySetting]:
    return db.query(models.PrivacySetting).filter(models.PrivacySetting.user_id == user_id).first()


def get_or_create_settings(db: Session, user_id: int) -> models.PrivacySetting:
    privacy = get_settings(db, user_id)
    if privacy:
        return privacy
    privacy = models.PrivacySetting(user_id=user_id)
    db.add(privacy)
    try:
        db.commit()
    except IntegrityError:
        # Created concurrently by another request
        db.rollback()
        return get_settings(db, user_id)
    db.refresh(privacy)
    return privacy


def update_settings(db: Session, user_id: int, changes: dict) -> models.PrivacySetting:
    privacy = get_or_create_settings(db, user_id)
    for field, value in changes.items():
        setattr(privacy, field, value)
    db.commit()
    db.refresh(privacy)
    return privacy


def can_view(target: models.User, viewer: models.User,
             settings: Optional[models.PrivacySetting], are_connected: bool) -> bool:
    if target.id == viewer.id:
        return True
    if viewer.is_admin:
        return True
    if settings is None:
        return True

    visibility = settings.profile_visibility
    if visibility == ProfileVisibility.PUBLIC:
        return True
    if visibility == ProfileVisibility.CONNECTIONS:
        return are_connected
    if visibility == ProfileVisibility.PRIVATE:
        return False
    return True


def redact(profile: dict, settings: Optional[models.PrivacySetting], viewer_is_owner: bool) -> dict:
    """Second stage after can_view: strip undisclosed contact fields for non-owners"""
    if viewer_is_owner:
        return profile
    show_email = settings.show_email if settings else DEFAULT_SHOW_EMAIL
    show_phone = settings.show_phone if settings else DEFAULT_SHOW_PHONE
    redacted = dict(profile)
    if not show_email:
        redacted.pop("email", None)
    if not show_phone:
        redacted.pop("phone", None)
    return redacted


def can_see_section(target: models.User, viewer: models.User,
                    settings: Optional[models.PrivacySetting], flag: str,
                    are_connected: bool) -> bool:
    """
    ``flag`` is show_connections or show_achievements. A section is never
    more visible than the profile it belongs to.
    """
    if not can_view(target, viewer, settings, are_connected):
        return False
    if target.id == viewer.id or viewer.is_admin or settings is None:
        return True
    return bool(getattr(settings, flag))


def accepts_connection_requests(settings: Optional[models.PrivacySetting]) -> bool:
    return settings is None or settings.allow_connection_requests
