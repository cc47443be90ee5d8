"""
Permission administration tests.

Covers CRUD, uniqueness of active (resource, action) pairs under
concurrency, and batch creation.
"""

import threading

import pytest

from core.errors import ConflictError, NotFoundError
from hms.auth.permissions import PermissionStore, find_batch_duplicates
from hms.schemas import CreatePermissionRequest

from helpers import API

# 1 wildcard + 3 resources x 4 actions
SEEDED_PERMISSIONS = 13


def perm(name, resource, action, description=None):
    return {"name": name, "resource": resource, "action": action, "description": description}


def count_pair(container, resource, action):
    with container.db.connect() as conn:
        return conn.execute(
            "SELECT COUNT(*) FROM permissions WHERE resource = ? AND action = ? AND is_active = 1",
            (resource, action),
        ).fetchone()[0]


class TestCreatePermission:
    def test_create(self, client, admin_headers):
        resp = client.post(f"{API}/permissions", json=perm("PATIENT_READ", "patient", "read"), headers=admin_headers)
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["resource"] == "patient"
        assert data["action"] == "read"
        assert data["is_active"] is True
        assert data["id"]

    def test_duplicate_pair_conflicts(self, client, admin_headers):
        client.post(f"{API}/permissions", json=perm("PATIENT_READ", "patient", "read"), headers=admin_headers)
        resp = client.post(f"{API}/permissions", json=perm("OTHER_NAME", "patient", "read"), headers=admin_headers)
        assert resp.status_code == 409
        assert resp.get_json()["message"] == "Permission with this resource and action already exists"

    def test_pair_reusable_after_soft_delete(self, container):
        first = container.permissions.create_permission("A", "patient", "read")
        container.permissions.delete_permission(first["id"])
        second = container.permissions.create_permission("B", "patient", "read")
        assert second["id"] != first["id"]

    def test_unique_index_is_final_arbiter(self, container, monkeypatch):
        """A create that slips past the existence pre-check still conflicts."""
        container.permissions.create_permission("A", "patient", "read")
        monkeypatch.setattr(PermissionStore, "find_active_by_pair", lambda *a, **k: None)
        with pytest.raises(ConflictError):
            container.permissions.create_permission("B", "patient", "read")
        assert count_pair(container, "patient", "read") == 1

    def test_concurrent_creates_exactly_one_succeeds(self, container):
        barrier = threading.Barrier(2)
        results = []
        lock = threading.Lock()

        def create(name):
            barrier.wait()
            try:
                container.permissions.create_permission(name, "patient", "read")
                outcome = "created"
            except ConflictError:
                outcome = "conflict"
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=create, args=(n,)) for n in ("A", "B")]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert sorted(results) == ["conflict", "created"]
        assert count_pair(container, "patient", "read") == 1


class TestReadPermissions:
    def test_list_paginated(self, client, admin_headers):
        resp = client.get(f"{API}/permissions?limit=5", headers=admin_headers)
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["total"] == SEEDED_PERMISSIONS
        assert len(data["items"]) == 5
        assert data["total_pages"] == 3
        assert data["has_next"] is True
        assert data["has_prev"] is False

    def test_filter_by_resource(self, client, admin_headers):
        resp = client.get(f"{API}/permissions?resource=role", headers=admin_headers)
        items = resp.get_json()["data"]["items"]
        assert len(items) == 4
        assert {i["action"] for i in items} == {"view", "create", "update", "delete"}

    def test_search_and_sort(self, client, admin_headers):
        resp = client.get(
            f"{API}/permissions?search=USER_&sort_by=action&sort_order=asc", headers=admin_headers
        )
        actions = [i["action"] for i in resp.get_json()["data"]["items"]]
        assert actions == ["create", "delete", "update", "view"]

    def test_get_unknown(self, client, admin_headers):
        resp = client.get(f"{API}/permissions/does-not-exist", headers=admin_headers)
        assert resp.status_code == 404
        assert resp.get_json()["message"] == "Permission not found"


class TestUpdateDeletePermission:
    def test_update_fields(self, container):
        created = container.permissions.create_permission("A", "patient", "read")
        updated = container.permissions.update_permission(
            created["id"], {"name": "Read patients", "description": "Chart access"}
        )
        assert updated["name"] == "Read patients"
        assert updated["description"] == "Chart access"

    def test_update_to_existing_pair_conflicts(self, container):
        container.permissions.create_permission("A", "patient", "read")
        other = container.permissions.create_permission("B", "patient", "write")
        with pytest.raises(ConflictError):
            container.permissions.update_permission(other["id"], {"action": "read"})

    def test_delete_is_soft(self, client, admin_headers, container):
        created = container.permissions.create_permission("A", "patient", "read")
        resp = client.delete(f"{API}/permissions/{created['id']}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["message"] == "Permission deleted successfully"

        with container.db.connect() as conn:
            row = conn.execute("SELECT is_active FROM permissions WHERE id = ?", (created["id"],)).fetchone()
        assert row["is_active"] == 0
        with pytest.raises(NotFoundError):
            container.permissions.get_permission(created["id"])

    def test_delete_twice_is_not_found(self, container):
        created = container.permissions.create_permission("A", "patient", "read")
        container.permissions.delete_permission(created["id"])
        with pytest.raises(NotFoundError):
            container.permissions.delete_permission(created["id"])


class TestBatchCreate:
    def test_batch_all_created(self, client, admin_headers):
        resp = client.post(f"{API}/permissions/batch", json=[
            perm("PATIENT_READ", "patient", "read"),
            perm("PATIENT_WRITE", "patient", "write"),
        ], headers=admin_headers)
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["message"] == "Permissions batch created successfully"
        assert [p["action"] for p in body["data"]] == ["read", "write"]

    def test_batch_accepts_wrapped_body(self, client, admin_headers):
        resp = client.post(f"{API}/permissions/batch", json={"permissions": [
            perm("PATIENT_READ", "patient", "read"),
        ]}, headers=admin_headers)
        assert resp.status_code == 201

    def test_internal_duplicate_rejects_whole_batch(self, client, admin_headers, container):
        resp = client.post(f"{API}/permissions/batch", json=[
            perm("FIRST", "x", "y"),
            perm("UNRELATED", "z", "y"),
            perm("SECOND", "x", "y"),
        ], headers=admin_headers)
        assert resp.status_code == 400
        body = resp.get_json()
        assert body["message"] == "Duplicate resource:action combinations found in batch"
        assert [e["field"] for e in body["errors"]] == ["permissions[0]", "permissions[2]"]
        assert "x:y" in body["errors"][0]["message"]
        assert count_pair(container, "x", "y") == 0
        assert count_pair(container, "z", "y") == 0

    def test_partial_failure_keeps_successes(self, client, admin_headers, container):
        container.permissions.create_permission("PATIENT_READ", "patient", "read")
        resp = client.post(f"{API}/permissions/batch", json=[
            perm("PATIENT_READ_AGAIN", "patient", "read"),
            perm("PATIENT_WRITE", "patient", "write"),
        ], headers=admin_headers)
        assert resp.status_code == 400
        body = resp.get_json()
        assert body["message"] == (
            "Failed to create 1 out of 2 permissions. 1 were created successfully."
        )
        assert body["errors"] == [{
            "field": "permissions[0]",
            "message": "PATIENT_READ_AGAIN (patient:read): Permission with this resource and action already exists",
        }]
        assert [p["action"] for p in body["data"]["created"]] == ["write"]
        assert body["data"]["failed"][0]["index"] == 0
        assert count_pair(container, "patient", "write") == 1

    def test_schema_errors_reported_per_index(self, client, admin_headers):
        resp = client.post(f"{API}/permissions/batch", json=[
            perm("OK", "patient", "read"),
            {"name": "MISSING_ACTION", "resource": "patient"},
        ], headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json()["errors"][0]["field"] == "permissions[1].action"


class TestFindBatchDuplicates:
    def test_reports_every_involved_index(self):
        items = [
            CreatePermissionRequest(name="a", resource="x", action="y"),
            CreatePermissionRequest(name="b", resource="x", action="y"),
            CreatePermissionRequest(name="c", resource="x", action="y"),
            CreatePermissionRequest(name="d", resource="x", action="z"),
        ]
        errors = find_batch_duplicates(items)
        assert [e["field"] for e in errors] == ["permissions[0]", "permissions[1]", "permissions[2]"]
        assert errors[0]["message"].endswith("with permissions[1], permissions[2]")

    def test_no_duplicates(self):
        items = [CreatePermissionRequest(name="a", resource="x", action="y")]
        assert find_batch_duplicates(items) == []
