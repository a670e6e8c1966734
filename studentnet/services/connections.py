"""
Connection graph between accounts.

Edge lifecycle: none -> pending -> accepted | rejected, and accepted edges are
hard-deleted on removal. Rejected edges are terminal for the pair.

At most one edge exists per unordered pair: every row carries
(user_low_id, user_high_id) under a unique constraint, so a concurrent A->B
and B->A request cannot both be stored. Status transitions are conditional
UPDATEs on ``status = 'pending'``.
"""
from typing import List, Optional, Set, Tuple

from sqlalchemy import case, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from studentnet import crud, models
from studentnet.core.exceptions import (
    AccountNotFoundError,
    AlreadyAcceptedError,
    ConnectionExistsError,
    ConnectionNotFoundError,
    NotAcceptedError,
    NotParticipantError,
    NotPendingError,
    NotRecipientError,
    RequestsDisabledError,
    SelfRequestError,
)
from studentnet.core.logging_config import get_logger
from studentnet.services import notifications, privacy
from studentnet.utils import utcnow

logger = get_logger("connections")

Connection = models.Connection
ConnectionStatus = models.ConnectionStatus
User = models.User

INCOMING = "incoming"
OUTGOING = "outgoing"


def pair_key(user_a: int, user_b: int) -> Tuple[int, int]:
    return (user_a, user_b) if user_a < user_b else (user_b, user_a)


def find_edge(db: Session, user_a: int, user_b: int) -> Optional[models.Connection]:
    low, high = pair_key(user_a, user_b)
    return db.query(Connection).filter(
        Connection.user_low_id == low, Connection.user_high_id == high
    ).first()


def existing_edge_reason(edge: models.Connection, sender_id: int) -> str:
    if edge.status == ConnectionStatus.ACCEPTED:
        return "already_connected"
    if edge.status == ConnectionStatus.PENDING:
        return "request_already_sent" if edge.sender_id == sender_id else "reverse_pending"
    if edge.status == ConnectionStatus.BLOCKED:
        return "blocked"
    return "rejected"


def send_request(db: Session, sender: models.User, receiver_id: int,
                 message: Optional[str] = None) -> models.Connection:
    if sender.id == receiver_id:
        raise SelfRequestError()

    receiver = crud.active_accounts(db).filter(User.id == receiver_id).first()
    if not receiver:
        raise AccountNotFoundError(receiver_id)

    if not privacy.accepts_connection_requests(privacy.get_settings(db, receiver_id)):
        raise RequestsDisabledError()

    existing = find_edge(db, sender.id, receiver_id)
    if existing:
        raise ConnectionExistsError(existing_edge_reason(existing, sender.id))

    low, high = pair_key(sender.id, receiver_id)
    connection = Connection(
        sender_id=sender.id,
        receiver_id=receiver_id,
        user_low_id=low,
        user_high_id=high,
        status=ConnectionStatus.PENDING,
        message=(message or "").strip(),
        requested_at=utcnow(),
    )
    db.add(connection)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = find_edge(db, sender.id, receiver_id)
        reason = existing_edge_reason(existing, sender.id) if existing else "request_already_sent"
        logger.info(f"Concurrent connection request for pair {low}-{high}: {reason}")
        raise ConnectionExistsError(reason)
    db.refresh(connection)

    notifications.notify_connection_request(db, receiver_id, sender, connection.id)
    return connection


def _get_request_for_recipient(db: Session, request_id: int, actor: models.User,
                               action: str) -> models.Connection:
    connection = db.get(Connection, request_id)
    if not connection:
        raise ConnectionNotFoundError(request_id, message="Connection request not found")
    if connection.receiver_id != actor.id:
        raise NotRecipientError(action)
    if connection.status == ConnectionStatus.ACCEPTED:
        raise AlreadyAcceptedError()
    if connection.status != ConnectionStatus.PENDING:
        raise NotPendingError()
    return connection


def _respond(db: Session, connection: models.Connection, status: ConnectionStatus) -> None:
    responded = db.query(Connection).filter(
        Connection.id == connection.id,
        Connection.status == ConnectionStatus.PENDING,
    ).update({Connection.status: status, Connection.responded_at: utcnow()}, synchronize_session=False)
    if not responded:
        # Someone else resolved the request first
        db.rollback()
        db.refresh(connection)
        if connection.status == ConnectionStatus.ACCEPTED:
            raise AlreadyAcceptedError()
        raise NotPendingError()
    db.commit()
    db.refresh(connection)


def accept_request(db: Session, request_id: int, actor: models.User) -> models.Connection:
    connection = _get_request_for_recipient(db, request_id, actor, "accept")
    _respond(db, connection, ConnectionStatus.ACCEPTED)
    notifications.notify_connection_accepted(db, connection.sender_id, actor, connection.id)
    return connection


def reject_request(db: Session, request_id: int, actor: models.User) -> models.Connection:
    connection = _get_request_for_recipient(db, request_id, actor, "reject")
    _respond(db, connection, ConnectionStatus.REJECTED)
    notifications.notify_connection_rejected(db, connection.sender_id, actor, connection.id)
    return connection


def remove_connection(db: Session, connection_id: int, actor: models.User) -> None:
    connection = db.get(Connection, connection_id)
    if not connection:
        raise ConnectionNotFoundError(connection_id)
    if actor.id not in (connection.sender_id, connection.receiver_id):
        raise NotParticipantError()
    if connection.status != ConnectionStatus.ACCEPTED:
        raise NotAcceptedError()

    deleted = db.query(Connection).filter(
        Connection.id == connection_id,
        Connection.status == ConnectionStatus.ACCEPTED,
    ).delete(synchronize_session=False)
    if not deleted:
        db.rollback()
        raise ConnectionNotFoundError(connection_id)
    db.commit()
    db.expunge(connection)


def _counterpart_id(user_id: int):
    return case((Connection.sender_id == user_id, Connection.receiver_id), else_=Connection.sender_id)


def list_accepted(db: Session, user_id: int, offset: int,
                  limit: int) -> Tuple[List[Tuple[models.Connection, models.User]], int]:
    query = db.query(Connection, User).join(User, User.id == _counterpart_id(user_id)).filter(
        Connection.status == ConnectionStatus.ACCEPTED,
        or_(Connection.sender_id == user_id, Connection.receiver_id == user_id),
        User.account_status != models.AccountStatus.DELETED,
    )
    total = query.count()
    rows = query.order_by(Connection.responded_at.desc(), Connection.id.desc()) \
        .offset(offset).limit(limit).all()
    return [(connection, user) for connection, user in rows], total


def list_pending(db: Session, user_id: int, direction: str, offset: int,
                 limit: int) -> Tuple[List[Tuple[models.Connection, models.User]], int]:
    if direction == INCOMING:
        own_side, other_side = Connection.receiver_id, Connection.sender_id
    else:
        own_side, other_side = Connection.sender_id, Connection.receiver_id

    query = db.query(Connection, User).join(User, User.id == other_side).filter(
        own_side == user_id,
        Connection.status == ConnectionStatus.PENDING,
        User.account_status != models.AccountStatus.DELETED,
    )
    total = query.count()
    rows = query.order_by(Connection.requested_at.desc(), Connection.id.desc()) \
        .offset(offset).limit(limit).all()
    return [(connection, user) for connection, user in rows], total


def neighbor_ids(db: Session, user_id: int) -> Set[int]:
    edges = db.query(Connection.sender_id, Connection.receiver_id).filter(
        Connection.status == ConnectionStatus.ACCEPTED,
        or_(Connection.sender_id == user_id, Connection.receiver_id == user_id),
    ).all()
    return {receiver if sender == user_id else sender for sender, receiver in edges}


def related_user_ids(db: Session, user_id: int) -> Set[int]:
    """Everyone sharing an edge with user_id, whatever its status"""
    edges = db.query(Connection.sender_id, Connection.receiver_id).filter(
        or_(Connection.sender_id == user_id, Connection.receiver_id == user_id),
    ).all()
    return {receiver if sender == user_id else sender for sender, receiver in edges}


def mutual_connections(db: Session, user_a: int, user_b: int) -> List[models.User]:
    return crud.get_users_by_ids(db, neighbor_ids(db, user_a) & neighbor_ids(db, user_b))


def are_connected(db: Session, user_a: int, user_b: int) -> bool:
    edge = find_edge(db, user_a, user_b)
    return edge is not None and edge.status == ConnectionStatus.ACCEPTED
