import pytest
from sqlalchemy.exc import IntegrityError

from studentnet import models
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
from studentnet.services import connections, privacy

Status = models.ConnectionStatus


@pytest.fixture
def pair(make_user):
    return make_user(), make_user()


def notifications_for(db_session, user):
    return db_session.query(models.Notification).filter(models.Notification.user_id == user.id).all()


def test_request_creates_pending_edge_and_notifies(db_session, pair):
    alice, bob = pair

    edge = connections.send_request(db_session, alice, bob.id, "  Hi Bob  ")

    assert edge.status == Status.PENDING
    assert edge.message == "Hi Bob"
    assert (edge.user_low_id, edge.user_high_id) == connections.pair_key(alice.id, bob.id)
    notes = notifications_for(db_session, bob)
    assert len(notes) == 1
    assert notes[0].type == models.NotificationType.CONNECTION_REQUEST
    assert notes[0].related_id == edge.id


def test_self_request_rejected(db_session, make_user):
    alice = make_user()

    with pytest.raises(SelfRequestError):
        connections.send_request(db_session, alice, alice.id)


def test_request_to_unknown_or_unverified_account(db_session, make_user):
    alice = make_user()
    pending_signup = make_user(is_verified=False)

    with pytest.raises(AccountNotFoundError):
        connections.send_request(db_session, alice, 99999)
    with pytest.raises(AccountNotFoundError):
        connections.send_request(db_session, alice, pending_signup.id)


def test_request_to_suspended_account(db_session, make_user):
    alice = make_user()
    suspended = make_user(account_status=models.AccountStatus.SUSPENDED)

    with pytest.raises(AccountNotFoundError):
        connections.send_request(db_session, alice, suspended.id)


def test_request_when_receiver_disallows(db_session, pair):
    alice, bob = pair
    privacy.update_settings(db_session, bob.id, {"allow_connection_requests": False})

    with pytest.raises(RequestsDisabledError):
        connections.send_request(db_session, alice, bob.id)


def test_duplicate_request_reasons(db_session, pair):
    alice, bob = pair
    connections.send_request(db_session, alice, bob.id)

    with pytest.raises(ConnectionExistsError) as sent_again:
        connections.send_request(db_session, alice, bob.id)
    with pytest.raises(ConnectionExistsError) as reverse:
        connections.send_request(db_session, bob, alice.id)

    assert sent_again.value.reason == "request_already_sent"
    assert reverse.value.reason == "reverse_pending"
    assert db_session.query(models.Connection).count() == 1


def test_request_after_connected(db_session, pair, connect):
    alice, bob = pair
    connect(alice, bob)

    with pytest.raises(ConnectionExistsError) as exc_info:
        connections.send_request(db_session, bob, alice.id)

    assert exc_info.value.reason == "already_connected"


def test_store_refuses_second_edge_for_pair(db_session, pair, connect):
    alice, bob = pair
    connect(alice, bob, status=Status.PENDING)

    with pytest.raises(IntegrityError):
        connect(bob, alice, status=Status.PENDING)
    db_session.rollback()


def test_accept_sets_connected_at_and_notifies_sender(db_session, pair):
    alice, bob = pair
    edge = connections.send_request(db_session, alice, bob.id)

    accepted = connections.accept_request(db_session, edge.id, bob)

    assert accepted.status == Status.ACCEPTED
    assert accepted.responded_at is not None
    assert connections.are_connected(db_session, alice.id, bob.id)
    types = [n.type for n in notifications_for(db_session, alice)]
    assert types == [models.NotificationType.CONNECTION_ACCEPTED]


def test_only_recipient_may_respond(db_session, pair, make_user):
    alice, bob = pair
    outsider = make_user()
    edge = connections.send_request(db_session, alice, bob.id)

    with pytest.raises(NotRecipientError):
        connections.accept_request(db_session, edge.id, alice)
    with pytest.raises(NotRecipientError):
        connections.reject_request(db_session, edge.id, outsider)


def test_accept_twice(db_session, pair):
    alice, bob = pair
    edge = connections.send_request(db_session, alice, bob.id)
    connections.accept_request(db_session, edge.id, bob)

    with pytest.raises(AlreadyAcceptedError):
        connections.accept_request(db_session, edge.id, bob)


def test_respond_to_missing_request(db_session, make_user):
    with pytest.raises(ConnectionNotFoundError):
        connections.accept_request(db_session, 12345, make_user())


def test_rejected_edge_is_terminal(db_session, pair):
    alice, bob = pair
    edge = connections.send_request(db_session, alice, bob.id)
    connections.reject_request(db_session, edge.id, bob)

    with pytest.raises(NotPendingError):
        connections.accept_request(db_session, edge.id, bob)
    with pytest.raises(ConnectionExistsError) as exc_info:
        connections.send_request(db_session, alice, bob.id)
    assert exc_info.value.reason == "rejected"
    assert not connections.are_connected(db_session, alice.id, bob.id)


def test_remove_connection(db_session, pair, make_user, connect):
    alice, bob = pair
    outsider = make_user()
    edge = connect(alice, bob)

    with pytest.raises(NotParticipantError):
        connections.remove_connection(db_session, edge.id, outsider)

    connections.remove_connection(db_session, edge.id, bob)

    assert not connections.are_connected(db_session, alice.id, bob.id)
    with pytest.raises(ConnectionNotFoundError):
        connections.remove_connection(db_session, edge.id, alice)

    # The pair can start over once the edge is gone
    again = connections.send_request(db_session, bob, alice.id)
    assert again.status == Status.PENDING


def test_cannot_remove_pending_request(db_session, pair, connect):
    alice, bob = pair
    edge = connect(alice, bob, status=Status.PENDING)

    with pytest.raises(NotAcceptedError):
        connections.remove_connection(db_session, edge.id, alice)


def test_list_accepted_shows_counterpart(db_session, make_user, connect):
    me, first, second = make_user(), make_user(), make_user()
    connect(me, first)
    connect(second, me)

    rows, total = connections.list_accepted(db_session, me.id, 0, 20)

    assert total == 2
    assert {user.id for _, user in rows} == {first.id, second.id}


def test_list_accepted_skips_deleted_accounts(db_session, make_user, connect):
    me = make_user()
    gone = make_user(account_status=models.AccountStatus.DELETED)
    connect(me, gone)

    rows, total = connections.list_accepted(db_session, me.id, 0, 20)

    assert rows == [] and total == 0


def test_pending_and_sent_lists(db_session, make_user):
    me, fan, idol = make_user(), make_user(), make_user()
    connections.send_request(db_session, fan, me.id)
    connections.send_request(db_session, me, idol.id)

    incoming, incoming_total = connections.list_pending(db_session, me.id, connections.INCOMING, 0, 20)
    outgoing, outgoing_total = connections.list_pending(db_session, me.id, connections.OUTGOING, 0, 20)

    assert incoming_total == outgoing_total == 1
    assert incoming[0][1].id == fan.id
    assert outgoing[0][1].id == idol.id


def test_mutual_connections(db_session, make_user, connect):
    a, b, c, d, e = (make_user() for _ in range(5))
    connect(a, c)
    connect(b, c)
    connect(a, d)
    connect(d, b)
    connect(a, e)
    connect(e, b, status=Status.PENDING)

    mutual = connections.mutual_connections(db_session, a.id, b.id)

    assert [u.id for u in mutual] == sorted([c.id, d.id])


def test_request_api_conflict_reason(client, pair, auth_headers):
    alice, bob = pair

    first = client.post(f"/api/connections/request/{bob.id}", json={"message": "hello"},
                        headers=auth_headers(alice))
    reverse = client.post(f"/api/connections/request/{alice.id}", headers=auth_headers(bob))

    assert first.status_code == 201
    assert first.json()["data"]["status"] == "pending"
    assert reverse.status_code == 409
    assert reverse.json()["error"]["code"] == "CONNECTION_EXISTS"
    assert reverse.json()["error"]["details"]["reason"] == "reverse_pending"


def test_request_api_self(client, make_user, auth_headers):
    alice = make_user()

    response = client.post(f"/api/connections/request/{alice.id}", headers=auth_headers(alice))

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "SELF_REQUEST"


def test_accept_api_by_non_recipient(client, pair, auth_headers):
    alice, bob = pair
    request_id = client.post(f"/api/connections/request/{bob.id}", headers=auth_headers(alice)).json()["data"]["id"]

    response = client.put(f"/api/connections/accept/{request_id}", headers=auth_headers(alice))

    assert response.status_code == 403


def test_pending_and_mutual_api(client, make_user, auth_headers, connect):
    me, other, shared = make_user(), make_user(), make_user()
    connect(me, shared)
    connect(other, shared)
    client.post(f"/api/connections/request/{me.id}", headers=auth_headers(other))

    pending = client.get("/api/connections/pending", headers=auth_headers(me))
    mutual = client.get(f"/api/connections/mutual/{other.id}", headers=auth_headers(me))
    missing = client.get("/api/connections/mutual/99999", headers=auth_headers(me))

    assert pending.json()["data"]["requests"][0]["user"]["id"] == other.id
    assert pending.json()["data"]["meta"]["total"] == 1
    assert mutual.json()["data"]["count"] == 1
    assert mutual.json()["data"]["mutual_connections"][0]["id"] == shared.id
    assert missing.status_code == 404
