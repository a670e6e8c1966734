from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from .. import crud, schemas
from ..core.dependencies import get_current_user
from ..core.exceptions import AccountNotFoundError
from ..database import get_db
from ..models import User
from ..services import connections, suggestions
from ..utils import get_pagination, page_meta, success_response

router = APIRouter()


def _edge_out(connection, other: User, at) -> dict:
    return {
        "id": connection.id,
        "user": schemas.user_summary(other),
        "message": connection.message,
        "status": connection.status.value,
        "requested_at": connection.requested_at.isoformat(),
        "connected_at": at.isoformat() if at else None,
    }


@router.post("/request/{receiver_id}", status_code=status.HTTP_201_CREATED)
def send_connection_request(
        receiver_id: int,
        body: Optional[schemas.ConnectionRequestBody] = None,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db)
):
    message = body.message if body else None
    connection = connections.send_request(db, current_user, receiver_id, message)
    return success_response(
        message="Connection request sent successfully",
        data={
            "id": connection.id,
            "sender_id": connection.sender_id,
            "receiver_id": connection.receiver_id,
            "status": connection.status.value,
            "message": connection.message,
            "requested_at": connection.requested_at.isoformat(),
        },
    )


@router.put("/accept/{request_id}")
def accept_connection_request(
        request_id: int,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db)
):
    connection = connections.accept_request(db, request_id, current_user)
    return success_response(
        message="Connection request accepted",
        data={
            "id": connection.id,
            "status": connection.status.value,
            "connected_at": connection.responded_at.isoformat(),
        },
    )


@router.put("/reject/{request_id}")
def reject_connection_request(
        request_id: int,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db)
):
    connection = connections.reject_request(db, request_id, current_user)
    return success_response(
        message="Connection request rejected",
        data={"id": connection.id, "status": connection.status.value},
    )


@router.get("/")
def get_my_connections(
        page: int = 1,
        limit: int = 20,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db)
):
    page, limit, offset = get_pagination(page, limit)
    rows, total = connections.list_accepted(db, current_user.id, offset, limit)
    return success_response(data={
        "connections": [_edge_out(c, u, c.responded_at) for c, u in rows],
        "meta": page_meta(page, limit, total),
    })


@router.get("/pending")
def get_pending_requests(
        page: int = 1,
        limit: int = 20,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db)
):
    page, limit, offset = get_pagination(page, limit)
    rows, total = connections.list_pending(db, current_user.id, connections.INCOMING, offset, limit)
    return success_response(data={
        "requests": [_edge_out(c, u, None) for c, u in rows],
        "meta": page_meta(page, limit, total),
    })


@router.get("/sent")
def get_sent_requests(
        page: int = 1,
        limit: int = 20,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db)
):
    page, limit, offset = get_pagination(page, limit)
    rows, total = connections.list_pending(db, current_user.id, connections.OUTGOING, offset, limit)
    return success_response(data={
        "requests": [_edge_out(c, u, None) for c, u in rows],
        "meta": page_meta(page, limit, total),
    })


@router.get("/suggestions")
def get_suggestions(
        limit: int = suggestions.DEFAULT_LIMIT,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db)
):
    ranked = suggestions.suggest(db, current_user, limit)
    return success_response(data={
        "suggestions": [
            {"user": schemas.user_summary(candidate), "score": score}
            for candidate, score in ranked
        ]
    })


@router.get("/mutual/{user_id}")
def get_mutual_connections(
        user_id: int,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db)
):
    if not crud.get_user(db, user_id):
        raise AccountNotFoundError(user_id)
    mutual = connections.mutual_connections(db, current_user.id, user_id)
    return success_response(data={
        "mutual_connections": [schemas.user_summary(u) for u in mutual],
        "count": len(mutual),
    })


@router.delete("/{connection_id}")
def remove_connection(
        connection_id: int,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db)
):
    connections.remove_connection(db, connection_id, current_user)
    return success_response(message="Connection removed successfully")
