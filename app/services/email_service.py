"""
Email notifier using fastapi-mail over SMTP.

Gmail setup (once):
  1. Enable 2-Factor Authentication on the sending account
  2. Google Account → Security → App Passwords → create one for "Mail"
  3. Use that 16-character password as MAIL_PASSWORD in .env

send() is best-effort: it reports delivery as a bool and never raises, so a
dead SMTP server cannot take an account flow down with it. The dispatcher is
the only caller and runs it off the request path.
"""
import logging
from typing import Optional

from fastapi_mail import ConnectionConfig, FastMail, MessageSchema, MessageType

from app.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

APP_DISPLAY_NAME = "Our Social Network"

SUBJECTS = {
    "register": f"Verify your {APP_DISPLAY_NAME} email",
    "forgot": f"Reset your {APP_DISPLAY_NAME} password",
    "temporary_password": f"Your {APP_DISPLAY_NAME} temporary password",
}


def render_body(purpose: str, data: dict) -> str:
    if purpose == "register":
        return (
            f"Your verification code is: {data['otp']}\n\n"
            f"It is valid for {data.get('ttl_minutes', 5)} minutes.\n"
            f"If you did not try to create an account, ignore this email."
        )
    if purpose == "forgot":
        return (
            f"Your password reset code is: {data['otp']}\n\n"
            f"It is valid for {data.get('ttl_minutes', 5)} minutes.\n"
            f"If you did not request a reset, ignore this email."
        )
    if purpose == "temporary_password":
        return (
            f"Hello {data.get('username') or ''},\n\n"
            f"An account was created for you.\n"
            f"Login: {data.get('username_login', '')}\n"
            f"Temporary password: {data['temporary_password']}\n\n"
            f"You will be asked to choose a new password at first login."
        )
    raise ValueError(f"unknown notification purpose: {purpose}")


class EmailNotifier:
    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self._mailer: Optional[FastMail] = None

    def _get_mailer(self) -> FastMail:
        # Built on first send, not at import, so an unconfigured dev box still boots
        if self._mailer is None:
            s = self.settings
            self._mailer = FastMail(ConnectionConfig(
                MAIL_USERNAME=s.mail_username,
                MAIL_PASSWORD=s.mail_password,
                MAIL_FROM=s.mail_from,
                MAIL_PORT=s.mail_port,
                MAIL_SERVER=s.mail_server,
                MAIL_STARTTLS=s.mail_port == 587,
                MAIL_SSL_TLS=s.mail_port == 465,
                USE_CREDENTIALS=bool(s.mail_username),
                VALIDATE_CERTS=True,
            ))
        return self._mailer

    async def send(self, destination: str, purpose: str, template_data: dict) -> bool:
        try:
            body = render_body(purpose, template_data)
        except (KeyError, ValueError) as e:
            logger.error(f"Cannot render {purpose} email for {destination}: {e}")
            return False

        if not self.settings.mail_enabled:
            logger.info(f"Mail disabled; skipping {purpose} email to {destination}")
            return True

        message = MessageSchema(
            subject=SUBJECTS[purpose],
            recipients=[destination],
            body=body,
            subtype=MessageType.plain,
        )
        try:
            await self._get_mailer().send_message(message)
        except Exception:
            logger.exception(f"Failed to send {purpose} email to {destination}")
            return False
        logger.info(f"Sent {purpose} email to {destination}")
        return True
