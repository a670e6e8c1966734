from studentnet import models
from studentnet.services import privacy

Visibility = models.ProfileVisibility


def settings_with(**fields):
    return models.PrivacySetting(
        profile_visibility=fields.pop("profile_visibility", Visibility.PUBLIC),
        show_email=fields.pop("show_email", True),
        show_phone=fields.pop("show_phone", False),
        show_connections=fields.pop("show_connections", True),
        show_achievements=fields.pop("show_achievements", True),
        allow_connection_requests=fields.pop("allow_connection_requests", True),
    )


def test_can_view_rules(make_user):
    target, viewer = make_user(), make_user()
    admin = make_user(is_admin=True)

    assert privacy.can_view(target, viewer, None, False)
    assert privacy.can_view(target, viewer, settings_with(), False)
    assert privacy.can_view(target, target, settings_with(profile_visibility=Visibility.PRIVATE), False)
    assert privacy.can_view(target, admin, settings_with(profile_visibility=Visibility.PRIVATE), False)

    connections_only = settings_with(profile_visibility=Visibility.CONNECTIONS)
    assert not privacy.can_view(target, viewer, connections_only, False)
    assert privacy.can_view(target, viewer, connections_only, True)

    private = settings_with(profile_visibility=Visibility.PRIVATE)
    assert not privacy.can_view(target, viewer, private, True)


def test_redact_hides_undisclosed_contact_fields():
    profile = {"id": 1, "email": "a@example.com", "phone": "9876543210"}

    assert privacy.redact(profile, None, viewer_is_owner=False) == {"id": 1, "email": "a@example.com"}
    assert privacy.redact(profile, settings_with(show_email=False, show_phone=True), False) == {
        "id": 1, "phone": "9876543210",
    }
    assert privacy.redact(profile, settings_with(show_email=False), viewer_is_owner=True) == profile


def test_privacy_defaults_and_update(client, make_user, auth_headers):
    me = make_user()

    initial = client.get("/api/users/privacy", headers=auth_headers(me))
    updated = client.put("/api/users/privacy", json={"profile_visibility": "connections", "show_phone": True},
                         headers=auth_headers(me))

    assert initial.json()["data"]["privacy_settings"] == {
        "profile_visibility": "public",
        "show_email": True,
        "show_phone": False,
        "show_connections": True,
        "show_achievements": True,
        "allow_connection_requests": True,
    }
    settings = updated.json()["data"]["privacy_settings"]
    assert settings["profile_visibility"] == "connections"
    assert settings["show_phone"] is True
    assert settings["show_email"] is True


def test_privacy_update_rejects_unknown_visibility(client, make_user, auth_headers):
    me = make_user()

    response = client.put("/api/users/privacy", json={"profile_visibility": "friends"}, headers=auth_headers(me))

    assert response.status_code == 422


def test_private_profile_hidden_even_from_connections(client, db_session, make_user, auth_headers, connect):
    owner, friend = make_user(), make_user()
    admin = make_user(is_admin=True)
    connect(owner, friend)
    privacy.update_settings(db_session, owner.id, {"profile_visibility": Visibility.PRIVATE})

    as_friend = client.get(f"/api/users/{owner.id}", headers=auth_headers(friend))
    as_admin = client.get(f"/api/users/{owner.id}", headers=auth_headers(admin))
    as_owner = client.get(f"/api/users/{owner.id}", headers=auth_headers(owner))

    assert as_friend.status_code == 403
    assert as_friend.json()["error"]["code"] == "PROFILE_HIDDEN"
    assert as_admin.status_code == 200
    assert as_owner.status_code == 200


def test_connections_only_profile(client, db_session, make_user, auth_headers, connect):
    owner, friend, stranger = make_user(), make_user(), make_user()
    connect(friend, owner)
    privacy.update_settings(db_session, owner.id, {"profile_visibility": Visibility.CONNECTIONS})

    assert client.get(f"/api/users/{owner.id}", headers=auth_headers(stranger)).status_code == 403
    response = client.get(f"/api/users/{owner.id}", headers=auth_headers(friend))
    assert response.status_code == 200
    assert response.json()["data"]["is_connected"] is True


def test_contact_fields_redacted_for_others(client, db_session, make_user, auth_headers):
    owner = make_user(phone="9876543210")
    viewer = make_user()

    default = client.get(f"/api/users/{owner.id}", headers=auth_headers(viewer)).json()["data"]["user"]
    assert default["email"] == owner.email
    assert "phone" not in default

    privacy.update_settings(db_session, owner.id, {"show_email": False})
    hidden = client.get(f"/api/users/{owner.id}", headers=auth_headers(viewer)).json()["data"]["user"]
    assert "email" not in hidden

    own = client.get(f"/api/users/{owner.id}", headers=auth_headers(owner)).json()["data"]["user"]
    assert own["email"] == owner.email
    assert own["phone"] == "9876543210"


def test_connection_list_gated_by_show_connections(client, db_session, make_user, auth_headers, connect):
    owner, friend, viewer = make_user(), make_user(), make_user()
    connect(owner, friend)

    visible = client.get(f"/api/users/{owner.id}/connections", headers=auth_headers(viewer))
    assert visible.status_code == 200
    listed = visible.json()["data"]["connections"]
    assert [c["user"]["id"] for c in listed] == [friend.id]
    assert listed[0]["connected_at"] is not None

    privacy.update_settings(db_session, owner.id, {"show_connections": False})
    hidden = client.get(f"/api/users/{owner.id}/connections", headers=auth_headers(viewer))
    assert hidden.status_code == 403


def test_request_blocked_when_disallowed_over_http(client, db_session, make_user, auth_headers):
    owner, sender = make_user(), make_user()
    privacy.update_settings(db_session, owner.id, {"allow_connection_requests": False})

    response = client.post(f"/api/connections/request/{owner.id}", headers=auth_headers(sender))

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "REQUESTS_DISABLED"


def test_sections_follow_profile_visibility(make_user):
    target, viewer = make_user(), make_user()
    admin = make_user(is_admin=True)
    private = settings_with(profile_visibility=Visibility.PRIVATE)
    connections_only = settings_with(profile_visibility=Visibility.CONNECTIONS)

    assert not privacy.can_see_section(target, viewer, private, "show_connections", True)
    assert privacy.can_see_section(target, admin, private, "show_connections", False)
    assert privacy.can_see_section(target, target, private, "show_achievements", False)
    assert not privacy.can_see_section(target, viewer, connections_only, "show_achievements", False)
    assert privacy.can_see_section(target, viewer, connections_only, "show_achievements", True)
    assert not privacy.can_see_section(target, viewer, settings_with(show_connections=False),
                                       "show_connections", True)


def test_private_profile_hides_its_sections(client, db_session, make_user, auth_headers, connect):
    owner, friend, stranger = make_user(), make_user(), make_user()
    connect(owner, friend)
    privacy.update_settings(db_session, owner.id, {"profile_visibility": Visibility.PRIVATE})

    for viewer in (stranger, friend):
        listed = client.get(f"/api/users/{owner.id}/connections", headers=auth_headers(viewer))
        shown = client.get(f"/api/users/{owner.id}/achievements", headers=auth_headers(viewer))
        assert listed.status_code == 403
        assert shown.status_code == 403

    own = client.get(f"/api/users/{owner.id}/connections", headers=auth_headers(owner))
    assert own.status_code == 200
    assert own.json()["data"]["meta"]["total"] == 1


def test_connections_only_profile_sections(client, db_session, make_user, auth_headers, connect):
    owner, friend, stranger = make_user(), make_user(), make_user()
    connect(friend, owner)
    privacy.update_settings(db_session, owner.id, {"profile_visibility": Visibility.CONNECTIONS})

    assert client.get(f"/api/users/{owner.id}/connections", headers=auth_headers(stranger)).status_code == 403
    assert client.get(f"/api/users/{owner.id}/connections", headers=auth_headers(friend)).status_code == 200
