"""
Authorization middleware and guard tests, including the end-to-end
register -> verify -> login -> gated request scenarios.
"""

from datetime import timedelta

from hms.auth import TokenService

from helpers import ACCESS_SECRET, API, REFRESH_SECRET, bearer

ALICE = "alice@example.com"
PASSWORD = "Passw0rd!"


def expired_token_for(principal_id, email):
    service = TokenService(
        secret=ACCESS_SECRET,
        refresh_secret=REFRESH_SECRET,
        access_ttl=timedelta(seconds=-30),
    )
    return service.issue_access_token(principal_id, email, [], [])


def grant_role(client, admin_headers, user_id, role_name, pairs):
    """Create permissions and a role holding them, then assign the role to the user."""
    permission_ids = []
    for resource, action in pairs:
        resp = client.post(f"{API}/permissions", json={
            "name": f"{resource}_{action}".upper().replace("*", "ANY"),
            "resource": resource,
            "action": action,
        }, headers=admin_headers)
        assert resp.status_code == 201, resp.get_json()
        permission_ids.append(resp.get_json()["data"]["id"])

    resp = client.post(f"{API}/roles", json={"name": role_name, "permission_ids": permission_ids},
                       headers=admin_headers)
    assert resp.status_code == 201, resp.get_json()
    role = resp.get_json()["data"]

    resp = client.put(f"{API}/users/{user_id}/roles", json={"role_ids": [role["id"]]}, headers=admin_headers)
    assert resp.status_code == 200, resp.get_json()
    return role


class TestBearerExtraction:
    def test_missing_header(self, client):
        resp = client.get("/guarded/patient-read")
        assert resp.status_code == 401
        body = resp.get_json()
        assert body["success"] is False
        assert body["message"] == "Access token required"

    def test_malformed_header(self, client):
        for value in ("Token abc", "Bearer", "Bearer   ", "abc"):
            resp = client.get("/guarded/patient-read", headers={"Authorization": value})
            assert resp.status_code == 401
            assert resp.get_json()["message"] == "Access token required"

    def test_garbage_token(self, client):
        resp = client.get("/guarded/patient-read", headers=bearer("not.a.jwt"))
        assert resp.status_code == 401
        assert resp.get_json()["message"] == "Invalid or expired token"

    def test_scheme_is_case_insensitive(self, client, admin_headers):
        token = admin_headers["Authorization"].split(" ", 1)[1]
        resp = client.get("/guarded/patient-read", headers={"Authorization": f"bearer {token}"})
        assert resp.status_code == 200


class TestEndToEndPatientRead:
    """register -> verify -> login -> gated endpoint with / without / expired token."""

    def test_scenario(self, client, register_verified, login, admin_headers):
        user = register_verified(ALICE)
        grant_role(client, admin_headers, user["id"], "CHART_READER", [("patient", "read")])

        data = login(ALICE, PASSWORD)
        assert data["access_token"] and data["refresh_token"]
        headers = bearer(data["access_token"])

        assert client.get("/guarded/patient-read", headers=headers).status_code == 200
        assert client.get("/guarded/patient-read").status_code == 401

        expired = expired_token_for(user["id"], ALICE)
        resp = client.get("/guarded/patient-read", headers=bearer(expired))
        assert resp.status_code == 401
        assert resp.get_json()["message"] == "Invalid or expired token"


class TestEndToEndNurse:
    """NURSE with patient:read is refused patient:write."""

    def test_scenario(self, client, register_verified, login, admin_headers):
        user = register_verified(ALICE)
        grant_role(client, admin_headers, user["id"], "NURSE", [("patient", "read")])

        data = login(ALICE, PASSWORD)
        claims = TokenService.decode(data["access_token"])
        assert claims["roles"] == ["NURSE"]
        assert "patient:read" in claims["permissions"]

        headers = bearer(data["access_token"])
        assert client.get("/guarded/patient-read", headers=headers).status_code == 200

        resp = client.get("/guarded/patient-write", headers=headers)
        assert resp.status_code == 403
        assert resp.get_json()["message"] == "Required permission: write on patient"

    def test_admin_api_refused(self, client, register_verified, login, admin_headers):
        user = register_verified(ALICE)
        grant_role(client, admin_headers, user["id"], "NURSE", [("patient", "read")])
        headers = bearer(login(ALICE, PASSWORD)["access_token"])

        resp = client.get(f"{API}/roles", headers=headers)
        assert resp.status_code == 403
        assert resp.get_json()["message"] == "Required permission: view on role"


class TestWildcards:
    def test_resource_wildcard(self, client, register_verified, login, admin_headers):
        user = register_verified(ALICE)
        grant_role(client, admin_headers, user["id"], "AUDITOR", [("*", "read")])
        headers = bearer(login(ALICE, PASSWORD)["access_token"])
        assert client.get("/guarded/patient-read", headers=headers).status_code == 200
        assert client.get("/guarded/patient-write", headers=headers).status_code == 403

    def test_action_wildcard(self, client, register_verified, login, admin_headers):
        user = register_verified(ALICE)
        grant_role(client, admin_headers, user["id"], "CHART_OWNER", [("patient", "*")])
        headers = bearer(login(ALICE, PASSWORD)["access_token"])
        assert client.get("/guarded/patient-read", headers=headers).status_code == 200
        assert client.get("/guarded/patient-write", headers=headers).status_code == 200
        assert client.get(f"{API}/users", headers=headers).status_code == 403

    def test_super_admin_passes_every_gate(self, client, admin_headers):
        assert client.get("/guarded/patient-write", headers=admin_headers).status_code == 200
        assert client.get("/guarded/any", headers=admin_headers).status_code == 200


class TestLiveAuthorizationState:
    """Every request reloads the principal; token claims only carry identity."""

    def test_revoked_permission_applies_to_existing_token(self, client, register_verified, login,
                                                          admin_headers, container):
        user = register_verified(ALICE)
        role = grant_role(client, admin_headers, user["id"], "NURSE", [("patient", "read")])
        headers = bearer(login(ALICE, PASSWORD)["access_token"])
        assert client.get("/guarded/patient-read", headers=headers).status_code == 200

        container.roles.update_role(role["id"], {"permission_ids": []})
        assert client.get("/guarded/patient-read", headers=headers).status_code == 403

    def test_deactivated_permission_stops_granting(self, client, register_verified, login,
                                                   admin_headers, container):
        user = register_verified(ALICE)
        role = grant_role(client, admin_headers, user["id"], "NURSE", [("patient", "read")])
        headers = bearer(login(ALICE, PASSWORD)["access_token"])

        permission_id = role["permissions"][0]["id"]
        container.permissions.delete_permission(permission_id)
        assert client.get("/guarded/patient-read", headers=headers).status_code == 403

    def test_deactivated_user_token_rejected(self, client, register_verified, login, admin_headers):
        user = register_verified(ALICE)
        headers = bearer(login(ALICE, PASSWORD)["access_token"])
        assert client.get(f"{API}/auth/profile", headers=headers).status_code == 200

        client.delete(f"{API}/users/{user['id']}", headers=admin_headers)
        resp = client.get(f"{API}/auth/profile", headers=headers)
        assert resp.status_code == 401
        assert resp.get_json()["message"] == "Invalid or expired token"

    def test_granted_role_applies_without_relogin(self, client, register_verified, login, admin_headers):
        user = register_verified(ALICE)
        headers = bearer(login(ALICE, PASSWORD)["access_token"])
        assert client.get("/guarded/patient-read", headers=headers).status_code == 403

        grant_role(client, admin_headers, user["id"], "NURSE", [("patient", "read")])
        assert client.get("/guarded/patient-read", headers=headers).status_code == 200


class TestGuards:
    def test_role_required(self, client, register_verified, login, admin_headers):
        register_verified(ALICE)
        headers = bearer(login(ALICE, PASSWORD)["access_token"])
        resp = client.get("/guarded/admins", headers=headers)
        assert resp.status_code == 403
        assert resp.get_json()["message"] == "Required roles: ADMIN, SUPER_ADMIN"
        assert client.get("/guarded/admins", headers=admin_headers).status_code == 200

    def test_any_permission_required(self, client, register_verified, login, admin_headers):
        user = register_verified(ALICE)
        headers = bearer(login(ALICE, PASSWORD)["access_token"])
        resp = client.get("/guarded/any", headers=headers)
        assert resp.status_code == 403
        assert resp.get_json()["message"] == "Insufficient permissions"

        grant_role(client, admin_headers, user["id"], "SCRIBE", [("patient", "write")])
        assert client.get("/guarded/any", headers=headers).status_code == 200

    def test_optional_jwt(self, client, register_verified, login):
        assert client.get("/guarded/optional").get_json() == {"email": None}
        assert client.get("/guarded/optional", headers=bearer("garbage")).get_json() == {"email": None}

        register_verified(ALICE)
        headers = bearer(login(ALICE, PASSWORD)["access_token"])
        assert client.get("/guarded/optional", headers=headers).get_json() == {"email": ALICE}
