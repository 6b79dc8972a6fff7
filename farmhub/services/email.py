"""
Email service with optional configuration
"""
import logging
from typing import Optional

from fastapi_mail import ConnectionConfig, FastMail, MessageSchema

from farmhub.core.config import Settings

logger = logging.getLogger(__name__)


class EmailService:
    """
    Sends transactional mail through fastapi-mail. When SMTP settings are
    missing every send is skipped with a warning and reports False.
    """

    def __init__(self, settings: Settings):
        self.frontend_url = settings.FRONTEND_URL.rstrip("/")
        self.fm: Optional[FastMail] = None

        if not settings.email_enabled:
            logger.warning("Email service disabled - missing configuration")
            return

        try:
            conf = ConnectionConfig(
                MAIL_USERNAME=settings.MAIL_USERNAME,
                MAIL_PASSWORD=settings.MAIL_PASSWORD,
                MAIL_FROM=settings.MAIL_FROM,
                MAIL_PORT=settings.MAIL_PORT,
                MAIL_SERVER=settings.MAIL_SERVER,
                MAIL_STARTTLS=True,
                MAIL_SSL_TLS=False,
                USE_CREDENTIALS=True,
                VALIDATE_CERTS=True,
            )
            self.fm = FastMail(conf)
            logger.info("Email service initialized successfully")
        except Exception as e:
            logger.warning(f"Email service initialization failed: {e}")

    @property
    def enabled(self) -> bool:
        return self.fm is not None

    async def _send(self, email: str, subject: str, body: str, kind: str) -> bool:
        if self.fm is None:
            logger.warning(f"{kind} email not sent to {email} - service disabled")
            return False

        try:
            message = MessageSchema(subject=subject, recipients=[email], body=body, subtype="html")
            await self.fm.send_message(message)
            logger.info(f"{kind} email sent to {email}")
            return True
        except Exception as e:
            logger.error(f"Failed to send {kind.lower()} email to {email}: {str(e)}")
            return False

    async def send_verification_email(self, email: str, token: str) -> bool:
        verification_url = f"{self.frontend_url}/verify-email?token={token}"
        body = f"""
        <html>
            <body>
                <h2>Welcome to FarmHub!</h2>
                <p>Please click the link below to verify your email:</p>
                <a href="{verification_url}">Verify Email</a>
                <p>Or copy this link: {verification_url}</p>
            </body>
        </html>
        """
        return await self._send(email, "Verify Your Email", body, "Verification")

    async def send_password_reset_email(self, email: str, token: str) -> bool:
        reset_url = f"{self.frontend_url}/reset-password?token={token}"
        body = f"""
        <html>
            <body>
                <h2>Password Reset Request</h2>
                <p>Click the link below to reset your password:</p>
                <a href="{reset_url}">Reset Password</a>
                <p>Or copy this link: {reset_url}</p>
                <p>If you didn't request this, please ignore this email.</p>
            </body>
        </html>
        """
        return await self._send(email, "Reset Your Password", body, "Password reset")

    async def send_invitation_email(
        self, email: str, token: str, farm_name: str, role: str, inviter_name: str
    ) -> bool:
        invitation_url = f"{self.frontend_url}/invitations/{token}"
        body = f"""
        <html>
            <body>
                <h2>You're invited to {farm_name}</h2>
                <p>{inviter_name} invited you to join as {role}.</p>
                <a href="{invitation_url}">View Invitation</a>
                <p>Or copy this link: {invitation_url}</p>
            </body>
        </html>
        """
        return await self._send(email, f"Invitation to join {farm_name}", body, "Invitation")
