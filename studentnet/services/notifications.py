from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from studentnet import models
from studentnet.core.exceptions import NotificationNotFoundError
from studentnet.core.logging_config import get_logger

logger = get_logger("notifications")

Notification = models.Notification
NotificationType = models.NotificationType


def create_notification(db: Session, user_id: int, type: NotificationType, title: str, message: str,
                        related_id: Optional[int] = None,
                        related_model: Optional[str] = None) -> models.Notification:
    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        related_id=related_id,
        related_model=related_model,
    )
    db.add(notification)
    db.commit()
    db.refresh(notification)
    logger.debug(f"Notification {type.value} -> user {user_id}")
    return notification


def notify_connection_request(db: Session, user_id: int, sender: models.User, connection_id: int):
    return create_notification(
        db, user_id, NotificationType.CONNECTION_REQUEST,
        title="New Connection Request",
        message=f"{sender.name} ({sender.roll_number}) sent you a connection request",
        related_id=connection_id,
        related_model="Connection",
    )


def notify_connection_accepted(db: Session, user_id: int, accepter: models.User, connection_id: int):
    return create_notification(
        db, user_id, NotificationType.CONNECTION_ACCEPTED,
        title="Connection Request Accepted",
        message=f"{accepter.name} ({accepter.roll_number}) accepted your connection request",
        related_id=connection_id,
        related_model="Connection",
    )


def notify_connection_rejected(db: Session, user_id: int, rejecter: models.User, connection_id: int):
    return create_notification(
        db, user_id, NotificationType.CONNECTION_REJECTED,
        title="Connection Request Declined",
        message=f"{rejecter.name} declined your connection request",
        related_id=connection_id,
        related_model="Connection",
    )


def notify_achievement_added(db: Session, achievement: models.Achievement):
    return create_notification(
        db, achievement.student_id, NotificationType.ACHIEVEMENT_ADDED,
        title="New achievement added",
        message=f"Admin added your achievement: {achievement.title}",
        related_id=achievement.id,
        related_model="Achievement",
    )


def notify_achievement_liked(db: Session, achievement: models.Achievement, liker: models.User):
    return create_notification(
        db, achievement.student_id, NotificationType.ACHIEVEMENT_LIKED,
        title="Someone liked your achievement",
        message=f'{liker.name} liked your achievement "{achievement.title}"',
        related_id=achievement.id,
        related_model="Achievement",
    )


def notify_achievement_featured(db: Session, achievement: models.Achievement):
    return create_notification(
        db, achievement.student_id, NotificationType.ACHIEVEMENT_FEATURED,
        title="Your achievement was featured!",
        message=f'Your achievement "{achievement.title}" is now featured on the homepage',
        related_id=achievement.id,
        related_model="Achievement",
    )


def list_notifications(db: Session, user_id: int, offset: int, limit: int,
                       unread_only: bool = False) -> Tuple[List[models.Notification], int, int]:
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    total = query.count()
    items = query.order_by(Notification.created_at.desc(), Notification.id.desc()) \
        .offset(offset).limit(limit).all()
    unread = db.query(Notification).filter(
        Notification.user_id == user_id, Notification.is_read.is_(False)
    ).count()
    return items, total, unread


def mark_read(db: Session, notification_id: int, user_id: int) -> models.Notification:
    notification = db.query(Notification).filter(
        Notification.id == notification_id, Notification.user_id == user_id
    ).first()
    if not notification:
        raise NotificationNotFoundError(notification_id)
    if not notification.is_read:
        notification.is_read = True
        db.commit()
        db.refresh(notification)
    return notification


def mark_all_read(db: Session, user_id: int) -> int:
    updated = db.query(Notification).filter(
        Notification.user_id == user_id, Notification.is_read.is_(False)
    ).update({Notification.is_read: True}, synchronize_session=False)
    db.commit()
    return updated
