"""
Outbound account emails over SMTP.

Handles:
- Email verification links
- Password reset links
- Welcome message after verification

Every send may raise EmailDeliveryError. Callers send only after their
transaction has committed, and catch and log the failure so the triggering
flow still succeeds.
"""
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape

from config.settings import EmailSettings

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """The message could not be handed to the SMTP server."""


class EmailService:
    """Sends account emails via SMTP.

    With no SMTP host configured the service runs in dev mode: messages are
    not sent and only the fact of the skipped send is logged.
    """

    def __init__(self, settings: EmailSettings, frontend_url: str, app_name: str = "Hospital Management System"):
        self._settings = settings
        self.frontend_url = frontend_url.rstrip("/")
        self.app_name = app_name

    @property
    def enabled(self) -> bool:
        return self._settings.enabled

    # =========================================================================
    # Account Emails
    # =========================================================================

    def send_verification_email(self, to_email: str, token: str, first_name: str) -> None:
        url = f"{self.frontend_url}/verify-email?token={token}"
        self._send(
            to_email,
            f"Verify your email - {self.app_name}",
            text_body=(
                f"Hello {first_name},\n\n"
                f"Thank you for registering with {self.app_name}. "
                f"Please verify your email address by opening the link below:\n\n{url}\n\n"
                "If you did not create an account, you can ignore this email."
            ),
            html_body=self._html(
                f"Hello {escape(first_name)},",
                f"Thank you for registering with {escape(self.app_name)}. "
                "Please verify your email address to activate your account.",
                url,
                "Verify Email",
            ),
        )

    def send_password_reset_email(self, to_email: str, token: str, first_name: str) -> None:
        url = f"{self.frontend_url}/reset-password?token={token}"
        self._send(
            to_email,
            f"Reset your password - {self.app_name}",
            text_body=(
                f"Hello {first_name},\n\n"
                f"A password reset was requested for your account. "
                f"Open the link below within one hour to choose a new password:\n\n{url}\n\n"
                "If you did not request this, you can ignore this email."
            ),
            html_body=self._html(
                f"Hello {escape(first_name)},",
                "A password reset was requested for your account. "
                "The link below is valid for one hour.",
                url,
                "Reset Password",
            ),
        )

    def send_welcome_email(self, to_email: str, first_name: str) -> None:
        url = f"{self.frontend_url}/login"
        self._send(
            to_email,
            f"Welcome to {self.app_name}",
            text_body=(
                f"Hello {first_name},\n\n"
                f"Your email is verified and your {self.app_name} account is ready.\n\n{url}"
            ),
            html_body=self._html(
                f"Welcome, {escape(first_name)}!",
                f"Your email is verified and your {escape(self.app_name)} account is ready.",
                url,
                "Sign In",
            ),
        )

    # =========================================================================
    # Transport
    # =========================================================================

    @staticmethod
    def _html(greeting: str, body: str, url: str, button: str) -> str:
        return f"""
        <html>
            <body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
                <h2 style="color: #1e293b;">{greeting}</h2>
                <p style="color: #475569; line-height: 1.6;">{body}</p>
                <div style="text-align: center; margin: 30px 0;">
                    <a href="{escape(url)}"
                       style="background-color: #2563eb; color: white; padding: 12px 28px;
                              text-decoration: none; border-radius: 5px; display: inline-block;">
                        {button}
                    </a>
                </div>
            </body>
        </html>
        """

    def _send(self, to_email: str, subject: str, text_body: str, html_body: str) -> None:
        if not self.enabled:
            logger.info(f"SMTP not configured, skipped email '{subject}' to {to_email}")
            return

        cfg = self._settings
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{cfg.from_name} <{cfg.from_email}>"
        msg["To"] = to_email
        msg.attach(MIMEText(text_body, "plain", "utf-8"))
        msg.attach(MIMEText(html_body, "html", "utf-8"))

        try:
            with smtplib.SMTP(cfg.host, cfg.port, timeout=cfg.timeout) as server:
                if cfg.use_tls:
                    server.starttls()
                if cfg.username:
                    server.login(cfg.username, cfg.password.get_secret_value())
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise EmailDeliveryError(f"Failed to send '{subject}' to {to_email}: {e}") from e

        logger.info(f"Sent email '{subject}' to {to_email}")
