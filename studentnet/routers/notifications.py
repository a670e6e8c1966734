from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import schemas
from ..core.dependencies import get_current_user
from ..database import get_db
from ..models import User
from ..services import notifications
from ..utils import get_pagination, page_meta, success_response

router = APIRouter()


@router.get("/")
def list_notifications(
        page: int = 1,
        limit: int = 20,
        unread_only: bool = False,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db)
):
    page, limit, offset = get_pagination(page, limit)
    items, total, unread = notifications.list_notifications(db, current_user.id, offset, limit, unread_only)
    return success_response(data={
        "notifications": [schemas.NotificationOut.model_validate(n).model_dump(mode="json") for n in items],
        "unread_count": unread,
        "meta": page_meta(page, limit, total),
    })


@router.put("/read-all")
def mark_all_read(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    updated = notifications.mark_all_read(db, current_user.id)
    return success_response(message="All notifications marked as read", data={"updated": updated})


@router.put("/{notification_id}/read")
def mark_read(
        notification_id: int,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db)
):
    notification = notifications.mark_read(db, notification_id, current_user.id)
    return success_response(
        message="Notification marked as read",
        data=schemas.NotificationOut.model_validate(notification).model_dump(mode="json"),
    )
