"""Achievement feed: browsing, views, likes and admin curation."""
from datetime import timedelta
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from studentnet import crud, models
from studentnet.core.exceptions import (
    AccountNotFoundError,
    AchievementNotFoundError,
    InvalidUploadError,
)
from studentnet.core.logging_config import get_logger
from studentnet.services import notifications
from studentnet.storage import ACHIEVEMENT_FOLDER, StorageClient, discard
from studentnet.utils import utcnow

logger = get_logger("achievements")

Achievement = models.Achievement
AchievementLike = models.AchievementLike

MAX_IMAGES = 5

SORT_OPTIONS = {
    "recent": (Achievement.created_at.desc(), Achievement.id.desc()),
    "popular": (Achievement.likes_count.desc(), Achievement.id.desc()),
    "trending": (Achievement.views.desc(), Achievement.id.desc()),
}


def _approved(db: Session):
    return db.query(Achievement).filter(Achievement.status == models.AchievementStatus.APPROVED)


def list_achievements(db: Session, offset: int, limit: int, branch: Optional[str] = None,
                      year: Optional[str] = None, category: Optional[str] = None,
                      technologies: Optional[List[str]] = None, search: Optional[str] = None,
                      sort_by: str = "recent") -> Tuple[List[models.Achievement], int]:
    query = _approved(db)
    if branch:
        query = query.filter(Achievement.branch == branch)
    if year:
        query = query.filter(Achievement.year == year)
    if category:
        query = query.filter(Achievement.category == category)
    if technologies:
        query = query.filter(crud.json_contains_any(Achievement.technologies, technologies))
    if search:
        pattern = f"%{crud.like_escape(search.strip())}%"
        query = query.filter(or_(
            Achievement.title.ilike(pattern, escape="\\"),
            Achievement.description.ilike(pattern, escape="\\"),
        ))

    total = query.count()
    order = SORT_OPTIONS.get(sort_by, SORT_OPTIONS["recent"])
    items = query.order_by(*order).offset(offset).limit(limit).all()
    return items, total


def list_for_student(db: Session, student_id: int) -> List[models.Achievement]:
    return _approved(db).filter(Achievement.student_id == student_id) \
        .order_by(Achievement.created_at.desc(), Achievement.id.desc()).all()


def featured(db: Session, limit: int = 10) -> List[models.Achievement]:
    return _approved(db).filter(Achievement.featured.is_(True)) \
        .order_by(Achievement.created_at.desc(), Achievement.id.desc()).limit(limit).all()


def trending_score(achievement: models.Achievement) -> int:
    return achievement.likes_count * 2 + achievement.views


def trending(db: Session, limit: int = 10, days: int = 7) -> List[Tuple[models.Achievement, int]]:
    since = utcnow() - timedelta(days=days)
    recent = _approved(db).filter(Achievement.created_at >= since).order_by(Achievement.id).all()
    ranked = sorted(
        ((achievement, trending_score(achievement)) for achievement in recent),
        key=lambda pair: pair[1],
        reverse=True,
    )
    return ranked[:limit]


def get_achievement(db: Session, achievement_id: int) -> models.Achievement:
    achievement = db.get(Achievement, achievement_id)
    if not achievement:
        raise AchievementNotFoundError(achievement_id)
    return achievement


def is_liked_by(db: Session, achievement_id: int, user_id: int) -> bool:
    return db.query(AchievementLike.id).filter(
        AchievementLike.achievement_id == achievement_id,
        AchievementLike.user_id == user_id,
    ).first() is not None


def record_view(db: Session, achievement_id: int) -> int:
    updated = db.query(Achievement).filter(Achievement.id == achievement_id).update(
        {Achievement.views: Achievement.views + 1}, synchronize_session=False
    )
    if not updated:
        db.rollback()
        raise AchievementNotFoundError(achievement_id)
    db.commit()
    return db.query(Achievement.views).filter(Achievement.id == achievement_id).scalar()


def toggle_like(db: Session, achievement_id: int, user: models.User) -> Tuple[bool, int]:
    """Flip the user's like. Returns (liked, total likes)."""
    achievement = get_achievement(db, achievement_id)
    pair = db.query(AchievementLike).filter(
        AchievementLike.achievement_id == achievement_id,
        AchievementLike.user_id == user.id,
    )

    if pair.delete(synchronize_session=False):
        db.query(Achievement).filter(Achievement.id == achievement_id).update(
            {Achievement.likes_count: Achievement.likes_count - 1}, synchronize_session=False
        )
        db.commit()
        db.refresh(achievement)
        return False, achievement.likes_count

    db.add(AchievementLike(achievement_id=achievement_id, user_id=user.id))
    try:
        db.flush()
    except IntegrityError:
        # A concurrent request from the same user liked it first
        db.rollback()
        db.refresh(achievement)
        return True, achievement.likes_count

    db.query(Achievement).filter(Achievement.id == achievement_id).update(
        {Achievement.likes_count: Achievement.likes_count + 1}, synchronize_session=False
    )
    db.commit()
    db.refresh(achievement)

    if achievement.student_id != user.id:
        notifications.notify_achievement_liked(db, achievement, user)
    return True, achievement.likes_count


def create_achievement(db: Session, student_id: int, fields: dict) -> models.Achievement:
    student = crud.get_user(db, student_id)
    if not student:
        raise AccountNotFoundError(student_id)

    achievement = Achievement(
        student_id=student.id,
        student_name=student.name,
        student_roll_number=student.roll_number,
        branch=student.branch,
        year=student.year,
        images=[],
        **fields,
    )
    db.add(achievement)
    db.commit()
    db.refresh(achievement)
    logger.info(f"Achievement {achievement.id} created for user {student.id}")

    notifications.notify_achievement_added(db, achievement)
    return achievement


def update_achievement(db: Session, storage: StorageClient, achievement_id: int, changes: dict,
                       remove_images: Optional[List[str]] = None) -> models.Achievement:
    achievement = get_achievement(db, achievement_id)
    for field, value in changes.items():
        setattr(achievement, field, value)

    removed = []
    if remove_images:
        removed = [url for url in achievement.images if url in remove_images]
        achievement.images = [url for url in achievement.images if url not in remove_images]

    db.commit()
    db.refresh(achievement)
    discard(storage, removed)
    return achievement


def delete_achievement(db: Session, storage: StorageClient, achievement_id: int) -> None:
    achievement = get_achievement(db, achievement_id)
    images = list(achievement.images or [])
    db.query(AchievementLike).filter(AchievementLike.achievement_id == achievement_id) \
        .delete(synchronize_session=False)
    db.delete(achievement)
    db.commit()
    logger.info(f"Achievement {achievement_id} deleted")
    discard(storage, images)


def set_featured(db: Session, achievement_id: int, is_featured: bool) -> models.Achievement:
    achievement = get_achievement(db, achievement_id)
    achievement.featured = is_featured
    db.commit()
    db.refresh(achievement)
    if is_featured:
        notifications.notify_achievement_featured(db, achievement)
    return achievement


def add_images(db: Session, storage: StorageClient, achievement_id: int,
               uploads: List[tuple]) -> models.Achievement:
    """``uploads`` holds (data, extension, content_type) tuples"""
    achievement = get_achievement(db, achievement_id)
    remaining = MAX_IMAGES - len(achievement.images or [])
    if len(uploads) > remaining:
        raise InvalidUploadError(f"Can only upload {remaining} more images (max {MAX_IMAGES} total)")

    urls = [
        storage.store(data, extension, content_type, ACHIEVEMENT_FOLDER)
        for data, extension, content_type in uploads
    ]
    achievement.images = list(achievement.images or []) + urls
    db.commit()
    db.refresh(achievement)
    return achievement
