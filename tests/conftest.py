"""Shared pytest fixtures for HMS API tests."""
import os
import sys

import pytest
from flask import Blueprint, jsonify

# Add project root to path
_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _PROJECT_ROOT)

# ---------------------------------------------------------------------------
# Deterministic test environment - set BEFORE any hms module imports.
# Settings refuse to start without both JWT secrets outside TESTING mode.
# ---------------------------------------------------------------------------
os.environ.setdefault('JWT_SECRET', 'test-jwt-secret-for-pytest-32chars!')
os.environ.setdefault('JWT_REFRESH_SECRET', 'test-refresh-secret-for-pytest!!')
os.environ.setdefault('TESTING', 'true')

from helpers import (  # noqa: E402
    ADMIN_EMAIL,
    ADMIN_PASSWORD,
    API,
    RecordingEmailService,
    bearer,
    make_settings,
)
from hms.auth.decorators import (  # noqa: E402
    any_permission_required,
    current_principal,
    optional_jwt,
    permission_required,
    role_required,
)


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
def outbox():
    return RecordingEmailService()


# =============================================================================
# Probe routes (authorization gates on a resource outside the RBAC admin API)
# =============================================================================

guarded_bp = Blueprint('guarded', __name__)


@guarded_bp.route('/guarded/patient-read')
@permission_required('patient', 'read')
def patient_read():
    return jsonify({"ok": True})


@guarded_bp.route('/guarded/patient-write')
@permission_required('patient', 'write')
def patient_write():
    return jsonify({"ok": True})


@guarded_bp.route('/guarded/admins')
@role_required('ADMIN', 'SUPER_ADMIN')
def admins_only():
    return jsonify({"ok": True})


@guarded_bp.route('/guarded/any')
@any_permission_required(('patient', 'read'), ('patient', 'write'))
def any_patient():
    return jsonify({"ok": True})


@guarded_bp.route('/guarded/optional')
@optional_jwt
def optional():
    principal = current_principal()
    return jsonify({"email": principal.email if principal else None})


# =============================================================================
# Application
# =============================================================================

@pytest.fixture
def make_app(outbox):
    """Factory building an app (with guarded routes) for the given settings."""
    from hms.app import create_app
    from hms.auth import EXTENSION_KEY

    apps = []

    def _make(app_settings):
        app = create_app(config={'TESTING': True}, settings=app_settings, email_service=outbox)
        app.register_blueprint(guarded_bp)
        apps.append(app)
        return app

    yield _make

    for app in apps:
        app.extensions[EXTENSION_KEY].db.close_all()


@pytest.fixture
def app(make_app, settings):
    return make_app(settings)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def container(app):
    """The app's auth container (services usable without a request)."""
    from hms.auth import EXTENSION_KEY
    return app.extensions[EXTENSION_KEY]


# =============================================================================
# Authentication helpers
# =============================================================================

@pytest.fixture
def login(client):
    """Log in and return the response data (tokens, user)."""
    def _login(email, password):
        resp = client.post(f"{API}/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.get_json()
        return resp.get_json()["data"]
    return _login


@pytest.fixture
def admin_headers(login):
    return bearer(login(ADMIN_EMAIL, ADMIN_PASSWORD)["access_token"])


@pytest.fixture
def register_verified(client, outbox):
    """Register an account and consume its verification token; returns the user data."""
    def _register(email, password="Passw0rd!", first_name="Test", last_name="User"):
        resp = client.post(f"{API}/auth/register", json={
            "email": email,
            "password": password,
            "first_name": first_name,
            "last_name": last_name,
        })
        assert resp.status_code == 201, resp.get_json()
        token = outbox.last_token("verification", email.lower())
        resp_verify = client.post(f"{API}/auth/verify-email", json={"token": token})
        assert resp_verify.status_code == 200, resp_verify.get_json()
        return resp.get_json()["data"]
    return _register


@pytest.fixture
def role_id(container):
    """Look up a role id by name."""
    def _role_id(name):
        with container.db.connect() as conn:
            row = conn.execute("SELECT id FROM roles WHERE name = ?", (name,)).fetchone()
        return row["id"] if row else None
    return _role_id
