"""
API tests through the FastAPI app with the Supabase client replaced.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from familyos.database import supabase_client
from familyos.database.supabase_client import get_async_supabase, get_supabase
from familyos.main import app

USERS = ["owner-1", "member-1", "viewer-1", "stranger"]


@pytest.fixture
def client(fake_supabase, family, monkeypatch):
    for user_id in USERS:
        fake_supabase.add_user(f"token-{user_id}", user_id)
    # Per-request and sign-in clients are separate sessions over the same rows
    monkeypatch.setattr(supabase_client, "create_client", lambda url, key, options=None: fake_supabase.session())
    app.dependency_overrides[get_supabase] = lambda: fake_supabase
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth(user_id):
    return {"Authorization": f"Bearer token-{user_id}"}


def resources_url(family, resource_type="notes", resource_id=None):
    url = f"/api/v1/families/{family['id']}/resources/{resource_type}"
    return f"{url}/{resource_id}" if resource_id else url


def assert_denied(response, denial, reason=None):
    assert response.status_code == 403
    detail = response.json()["detail"]
    assert detail["code"] == "permission_denied"
    assert detail["denial"] == denial
    if reason is not None:
        assert detail["reason"] == reason


class TestAuth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_ready(self, client, fake_supabase):
        assert client.get("/ready").json() == {"status": "ready"}
        assert ("group_members", "select") in fake_supabase.calls

    def test_not_ready_without_supabase(self, client, fake_supabase):
        fake_supabase.failing_tables.add("group_members")
        response = client.get("/ready")
        assert response.status_code == 503
        assert response.json()["status"] == "unavailable"

    def test_me(self, client):
        response = client.get("/api/v1/auth/me", headers=auth("member-1"))
        assert response.status_code == 200
        assert response.json()["id"] == "member-1"

    def test_invalid_token(self, client):
        response = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer forged"})
        assert response.status_code == 401

    def test_missing_token(self, client, family):
        response = client.get(resources_url(family))
        assert response.status_code in (401, 403)


class TestResourceRoutes:
    def test_member_creates_note(self, client, family, fake_supabase):
        response = client.post(resources_url(family), json={"title": "Shopping", "content": "eggs"}, headers=auth("member-1"))

        assert response.status_code == 201
        body = response.json()
        assert body["created_by"] == "member-1"
        assert body["visibility"] == "public"
        assert body["title"] == "Shopping"
        assert fake_supabase.tables["notes"][0]["edit_mode"] == "public"

    def test_viewer_cannot_create(self, client, family, fake_supabase):
        response = client.post(resources_url(family), json={"title": "x", "content": "y"}, headers=auth("viewer-1"))

        assert_denied(response, "insufficient_role", "viewers cannot create resources")
        assert "notes" not in fake_supabase.tables

    def test_validation_error_is_422(self, client, family):
        response = client.post(resources_url(family), json={"title": "no content"}, headers=auth("member-1"))
        assert response.status_code == 422

    def test_unknown_resource_type(self, client, family):
        response = client.get(resources_url(family, "recipes"), headers=auth("member-1"))
        assert response.status_code == 422

    def test_non_member_cannot_list(self, client, family):
        response = client.get(resources_url(family), headers=auth("stranger"))
        assert_denied(response, "not_a_member")

    def test_membership_outage_is_not_a_denial(self, client, family, fake_supabase):
        fake_supabase.failing_tables.add("group_members")
        response = client.get(resources_url(family), headers=auth("member-1"))
        assert response.status_code == 503
        assert response.json()["detail"] == "Family membership is temporarily unavailable"

    def test_member_lists_notes(self, client, family, fake_supabase):
        fake_supabase.add_resource("notes", family["id"], "owner-1", "private", title="a", content="b")
        response = client.get(resources_url(family), headers=auth("viewer-1"))
        assert response.status_code == 200
        assert [n["visibility"] for n in response.json()] == ["private"]

    def test_member_cannot_modify_private_note(self, client, family, fake_supabase):
        row = fake_supabase.add_resource("notes", family["id"], "owner-1", "private", title="a", content="b")

        response = client.patch(resources_url(family, resource_id=row["id"]), json={"title": "mine now"}, headers=auth("member-1"))

        assert_denied(response, "visibility_restricted", "resource is private; only the owner may modify it")
        assert fake_supabase.tables["notes"][0]["title"] == "a"

    def test_member_modifies_public_note(self, client, family, fake_supabase):
        row = fake_supabase.add_resource("notes", family["id"], "owner-1", title="a", content="b")

        response = client.patch(resources_url(family, resource_id=row["id"]), json={"title": "edited"}, headers=auth("member-1"))

        assert response.status_code == 200
        assert response.json()["title"] == "edited"
        assert response.json()["updated_by"] == "member-1"

    def test_member_cannot_delete_public_foreign_note(self, client, family, fake_supabase):
        row = fake_supabase.add_resource("notes", family["id"], "owner-1", title="a", content="b")

        response = client.delete(resources_url(family, resource_id=row["id"]), headers=auth("member-1"))

        assert_denied(response, "ownership_mismatch", "you can only delete resources you created")

    def test_member_deletes_own_private_note(self, client, family, fake_supabase):
        row = fake_supabase.add_resource("notes", family["id"], "member-1", "private", title="a", content="b")
        response = client.delete(resources_url(family, resource_id=row["id"]), headers=auth("member-1"))
        assert response.status_code == 204

    def test_owner_deletes_anything(self, client, family, fake_supabase):
        row = fake_supabase.add_resource("cards", family["id"], "member-1", "private", name="Library")
        response = client.delete(resources_url(family, "cards", row["id"]), headers=auth("owner-1"))
        assert response.status_code == 204
        assert fake_supabase.tables["cards"] == []

    def test_only_owner_changes_visibility(self, client, family, fake_supabase):
        row = fake_supabase.add_resource("notes", family["id"], "member-1", title="a", content="b")
        url = resources_url(family, resource_id=row["id"]) + "/visibility"

        denied = client.put(url, json={"visibility": "private"}, headers=auth("member-1"))
        assert_denied(denied, "insufficient_role", "only family owners can perform this action")

        allowed = client.put(url, json={"visibility": "private"}, headers=auth("owner-1"))
        assert allowed.status_code == 200
        assert allowed.json()["visibility"] == "private"

    def test_mark_important_needs_modify(self, client, family, fake_supabase):
        row = fake_supabase.add_resource("notes", family["id"], "owner-1", "private", title="a", content="b")
        url = resources_url(family, resource_id=row["id"]) + "/important"

        assert_denied(client.put(url, json={"is_important": True}, headers=auth("member-1")), "visibility_restricted")
        response = client.put(url, json={"is_important": True}, headers=auth("owner-1"))
        assert response.status_code == 200
        assert response.json()["is_important"] is True


class TestFamilyRoutes:
    def test_create_family(self, client):
        response = client.post("/api/v1/families", json={"name": "Parkers"}, headers=auth("stranger"))
        assert response.status_code == 201
        assert response.json()["owner_id"] == "stranger"

    def test_join_as_member(self, client, family):
        response = client.post("/api/v1/families/join", json={"invite_code": family["invite_code"]}, headers=auth("stranger"))
        assert response.status_code == 200
        assert response.json()["member"]["role"] == "member"

    def test_permissions_summary(self, client, family):
        body = client.get(f"/api/v1/families/{family['id']}/permissions", headers=auth("member-1")).json()
        assert body["role"] == "member"
        assert body["can_create"] is True
        assert body["can_change_roles"] is False

    def test_permissions_summary_for_outsider(self, client, family):
        body = client.get(f"/api/v1/families/{family['id']}/permissions", headers=auth("stranger")).json()
        assert body["role"] is None
        assert not any(value for key, value in body.items() if key.startswith(("can_", "is_")))

    def test_role_change_requires_owner(self, client, family, fake_supabase):
        url = f"/api/v1/families/{family['id']}/members/viewer-1/role"

        assert_denied(client.put(url, json={"role": "owner"}, headers=auth("member-1")), "insufficient_role")

        response = client.put(url, json={"role": "member"}, headers=auth("owner-1"))
        assert response.status_code == 200
        assert response.json()["role"] == "member"

    def test_invalid_role_is_422(self, client, family):
        url = f"/api/v1/families/{family['id']}/members/viewer-1/role"
        assert client.put(url, json={"role": "admin"}, headers=auth("owner-1")).status_code == 422

    def test_invite_is_owner_only(self, client, family):
        url = f"/api/v1/families/{family['id']}/invite"
        assert_denied(client.get(url, headers=auth("member-1")), "insufficient_role")
        assert client.get(url, headers=auth("owner-1")).json()["invite_code"] == family["invite_code"]

    def test_remove_member(self, client, family):
        url = f"/api/v1/families/{family['id']}/members/viewer-1"
        assert_denied(client.delete(url, headers=auth("member-1")), "insufficient_role")
        assert client.delete(url, headers=auth("owner-1")).status_code == 204

    def test_update_family_settings(self, client, family):
        url = f"/api/v1/families/{family['id']}"
        assert_denied(client.patch(url, json={"name": "Ours"}, headers=auth("member-1")), "insufficient_role")
        assert client.patch(url, json={"name": "Ours"}, headers=auth("owner-1")).json()["name"] == "Ours"

    def test_co_owner_cannot_delete_family(self, client, family, fake_supabase):
        fake_supabase.add_member(family["id"], "co-owner", "owner")
        fake_supabase.add_user("token-co-owner", "co-owner")
        url = f"/api/v1/families/{family['id']}"

        assert_denied(client.delete(url, headers=auth("co-owner")), "ownership_mismatch",
                      "only the family creator can delete the family")
        assert client.delete(url, headers=auth("owner-1")).status_code == 204


class TestCallerIdentity:
    def test_queries_carry_callers_token(self, client, family, fake_supabase):
        response = client.post(resources_url(family), json={"title": "a", "content": "b"}, headers=auth("member-1"))

        assert response.status_code == 201
        assert fake_supabase.requests
        assert {token for _, _, token in fake_supabase.requests} == {"token-member-1"}

    def test_consecutive_callers_do_not_share_a_token(self, client, family, fake_supabase):
        client.get(resources_url(family), headers=auth("owner-1"))
        owner_requests = list(fake_supabase.requests)
        fake_supabase.requests.clear()
        client.get(resources_url(family), headers=auth("viewer-1"))

        assert {token for _, _, token in owner_requests} == {"token-owner-1"}
        assert {token for _, _, token in fake_supabase.requests} == {"token-viewer-1"}

    def test_login_leaves_shared_client_anonymous(self, client, family, fake_supabase):
        response = client.post(
            "/api/v1/auth/login",
            json={"email": "member-1@example.com", "password": "correct-horse"}
        )

        assert response.status_code == 200
        assert response.json()["access_token"] == "token-member-1"
        assert fake_supabase.auth.session_token is None
        assert fake_supabase.postgrest.token is None
        assert [s.auth.session_token for s in fake_supabase.sessions] == ["token-member-1"]

        fake_supabase.requests.clear()
        preview = client.get(f"/api/v1/families/invite/{family['invite_code']}")
        assert preview.status_code == 200
        assert {token for _, _, token in fake_supabase.requests} == {None}

    def test_register_leaves_shared_client_anonymous(self, client, fake_supabase):
        response = client.post("/api/v1/auth/register", json={"email": "new@example.com", "password": "secret1"})

        assert response.status_code == 201
        assert response.json()["email"] == "new@example.com"
        assert fake_supabase.auth.session_token is None

    def test_wrong_password_is_401(self, client):
        response = client.post(
            "/api/v1/auth/login",
            json={"email": "member-1@example.com", "password": "guess"}
        )
        assert response.status_code == 401

    def test_logout_revokes_callers_session(self, client, fake_supabase):
        response = client.post("/api/v1/auth/logout", headers=auth("member-1"))
        assert response.status_code == 200
        assert fake_supabase.auth.revoked == ["token-member-1"]
        assert fake_supabase.auth.session_token is None


class TestPermissionFeed:
    @pytest.fixture
    def realtime(self):
        channel = MagicMock()
        channel.subscribe = AsyncMock(return_value=channel)
        realtime = MagicMock()
        realtime.channel.return_value = channel
        realtime.remove_channel = AsyncMock()
        app.dependency_overrides[get_async_supabase] = lambda: realtime
        return realtime

    def test_sends_summary_on_connect(self, client, family, realtime):
        url = f"/api/v1/families/{family['id']}/permissions/ws?token=token-viewer-1"
        with client.websocket_connect(url) as websocket:
            summary = websocket.receive_json()

        assert summary["role"] == "viewer"
        assert summary["user_id"] == "viewer-1"
        assert summary["can_create"] is False

    def test_rejects_bad_token(self, client, family, realtime):
        url = f"/api/v1/families/{family['id']}/permissions/ws?token=forged"
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect(url):
                pass
