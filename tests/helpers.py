"""Constants and small helpers shared by the test modules."""
from config.settings import AppSettings, AuthSettings, DatabaseSettings, RateLimitSettings
from hms.auth.email import EmailDeliveryError

API = "/api/v1"

ADMIN_EMAIL = "admin@hms.test"
ADMIN_PASSWORD = "Adm1n!Passw0rd"

ACCESS_SECRET = "unit-test-access-secret-0123456789"
REFRESH_SECRET = "unit-test-refresh-secret-0123456789"


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def make_settings(tmp_path, rate_limit=None, **auth_overrides) -> AppSettings:
    """Build settings for one test: temp database, rate limiting off, seeded admin."""
    auth = AuthSettings(
        jwt_secret=ACCESS_SECRET,
        jwt_refresh_secret=REFRESH_SECRET,
        admin_email=ADMIN_EMAIL,
        admin_password=ADMIN_PASSWORD,
        **auth_overrides,
    )
    return AppSettings(
        environment="testing",
        log_level="WARNING",
        auth=auth,
        database=DatabaseSettings(database_path=tmp_path / "hms_test.db"),
        rate_limit=rate_limit or RateLimitSettings(enabled=False),
    )


class RecordingEmailService:
    """Email sender that keeps messages in memory instead of talking SMTP."""

    def __init__(self):
        self.sent = []
        self.fail = False

    @property
    def enabled(self) -> bool:
        return True

    def _record(self, kind, to_email, token=None, first_name=None):
        if self.fail:
            raise EmailDeliveryError(f"SMTP unavailable for {kind}")
        self.sent.append({"kind": kind, "to": to_email, "token": token, "first_name": first_name})

    def send_verification_email(self, to_email, token, first_name):
        self._record("verification", to_email, token, first_name)

    def send_password_reset_email(self, to_email, token, first_name):
        self._record("password_reset", to_email, token, first_name)

    def send_welcome_email(self, to_email, first_name):
        self._record("welcome", to_email, first_name=first_name)

    def of_kind(self, kind, to_email=None):
        return [m for m in self.sent if m["kind"] == kind and (to_email is None or m["to"] == to_email)]

    def last_token(self, kind, to_email):
        messages = self.of_kind(kind, to_email)
        assert messages, f"no {kind} email sent to {to_email}"
        return messages[-1]["token"]
