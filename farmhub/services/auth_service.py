"""
Authentication service with business logic
"""
import logging
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from farmhub.core.config import Settings
from farmhub.core.errors import (
    AccountInactive,
    AccountNotFound,
    AuthenticationRequired,
    Conflict,
    InvalidStateTransition,
    NoFarmRoleAssigned,
    NotFound,
    TokenExpired,
    ValidationFailed,
)
from farmhub.core.security import (
    TokenClaims,
    TokenCodec,
    TokenKind,
    generate_opaque_token,
    hash_password,
    hash_token,
    verify_password,
)
from farmhub.models import EmailVerification, FarmMembership, PasswordReset, User
from farmhub.models import Session as UserSession
from farmhub.services.role_service import RoleService
from farmhub.utils.date import expires_after, is_expired, utc_now

logger = logging.getLogger(__name__)


class AuthService:
    """Service class for authentication operations"""

    def __init__(self, db: Session, settings: Settings, codec: TokenCodec):
        self.db = db
        self.settings = settings
        self.codec = codec

    # ========================================================================
    # HELPER METHODS
    # ========================================================================

    def _find_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email.strip().lower()).first()

    def _ensure_usable(self, user: User) -> None:
        if not user.is_active or user.deleted_at is not None:
            raise AccountInactive()

    def _active_membership(self, user: User, farm_id) -> Optional[FarmMembership]:
        if farm_id is None:
            return None
        for membership in user.memberships:
            if membership.is_active and str(membership.farm_id) == str(farm_id):
                return membership
        return None

    def _claims_for(self, user: User, farm_id=None) -> TokenClaims:
        role = user.role
        permissions = role.permission_names if role is not None and role.is_active else []
        return TokenClaims(
            subject_id=str(user.id),
            email=user.email,
            role_id=str(user.role_id) if user.role_id else None,
            permissions=permissions,
            farm_id=str(farm_id) if farm_id else None,
        )

    def _issue_tokens(
        self,
        user: User,
        farm_id=None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Tuple[UserSession, Dict[str, Any]]:
        """Create a token pair and the session that backs its refresh token"""
        claims = self._claims_for(user, farm_id)
        access_token = self.codec.issue(claims, TokenKind.ACCESS)
        refresh_token = self.codec.issue(claims, TokenKind.REFRESH)

        session = UserSession(
            user_id=user.id,
            refresh_token_hash=hash_token(refresh_token),
            expires_at=utc_now() + self.codec.lifetime(TokenKind.REFRESH),
            ip_address=ip_address,
            user_agent=user_agent,
            is_active=True,
        )
        self.db.add(session)
        self.db.flush()

        tokens = {
            "accessToken": access_token,
            "refreshToken": refresh_token,
            "expiresIn": self.settings.access_token_expires_in,
            "tokenType": "Bearer",
        }
        return session, tokens

    def _revoke_all_sessions(self, user_id) -> int:
        now = utc_now()
        sessions = (
            self.db.query(UserSession)
            .filter(UserSession.user_id == user_id, UserSession.is_active.is_(True))
            .all()
        )
        for session in sessions:
            session.is_active = False
            session.revoked_at = now
        return len(sessions)

    # ========================================================================
    # REGISTRATION
    # ========================================================================

    def register(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: Optional[str] = None,
    ) -> Tuple[User, str]:
        """
        Create a user with the default role and an email verification token

        Returns:
            (user, verification token)
        """
        if self._find_by_email(email):
            raise Conflict("Email already registered")

        role = RoleService(self.db).default_role()
        user = User(
            email=email.strip().lower(),
            password_hash=hash_password(password, self.settings.BCRYPT_ROUNDS),
            first_name=first_name,
            last_name=last_name,
            role_id=role.id,
            email_verified=False,
            is_active=True,
        )
        self.db.add(user)
        self.db.flush()

        verification_token = generate_opaque_token()
        self.db.add(
            EmailVerification(
                user_id=user.id,
                token=verification_token,
                expires_at=expires_after(hours=self.settings.EMAIL_VERIFICATION_EXPIRE_HOURS),
                is_used=False,
            )
        )
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"User registered: {user.email}")
        return user, verification_token

    def verify_email(self, token: str) -> User:
        verification = (
            self.db.query(EmailVerification).filter(EmailVerification.token == token).first()
        )
        if not verification:
            raise NotFound("Invalid verification token")
        if verification.is_used:
            raise InvalidStateTransition("Verification token has already been used")
        if is_expired(verification.expires_at):
            raise ValidationFailed(["token: Verification token has expired"])

        now = utc_now()
        verification.is_used = True
        verification.used_at = now
        user = verification.user
        user.email_verified = True
        user.email_verified_at = now
        self.db.commit()
        self.db.refresh(user)
        return user

    # ========================================================================
    # LOGIN / TOKENS
    # ========================================================================

    def login(
        self,
        email: str,
        password: str,
        farm_id=None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Tuple[User, Dict[str, Any]]:
        """
        Verify credentials and open a session

        Raises:
            AuthenticationRequired: unknown email or wrong password
            AccountInactive: credentials are right but the account is disabled
        """
        user = self._find_by_email(email)
        if not user or not verify_password(password, user.password_hash):
            logger.info(f"Failed login attempt for {email}")
            raise AuthenticationRequired("Invalid email or password")

        self._ensure_usable(user)

        if farm_id is not None and self._active_membership(user, farm_id) is None:
            raise NoFarmRoleAssigned("No farm role assigned for the selected farm", farmId=str(farm_id))

        _, tokens = self._issue_tokens(user, farm_id, ip_address, user_agent)
        user.last_login_at = utc_now()
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"User logged in: {user.email}")
        return user, tokens

    def refresh(
        self,
        refresh_token: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Exchange a refresh token for a new pair. The presented token's session
        is revoked and linked to its replacement, so each refresh token works
        exactly once.
        """
        verified = self.codec.verify(refresh_token, TokenKind.REFRESH)
        if verified.expired:
            raise TokenExpired("Refresh token has expired")

        session = (
            self.db.query(UserSession)
            .filter(UserSession.refresh_token_hash == hash_token(refresh_token))
            .first()
        )
        if session is None or str(session.user_id) != verified.claims.subject_id:
            raise AuthenticationRequired("Invalid refresh token")
        if not session.is_active:
            logger.warning(f"Revoked refresh token presented for user {session.user_id}")
            raise AuthenticationRequired("Refresh token has been revoked")
        if is_expired(session.expires_at):
            raise TokenExpired("Refresh token has expired")

        user = self.db.query(User).filter(User.id == session.user_id).first()
        if not user:
            raise AccountNotFound()
        self._ensure_usable(user)

        # Keep the farm pin only while the membership still exists
        farm_id = verified.claims.farm_id
        if farm_id and self._active_membership(user, farm_id) is None:
            farm_id = None

        new_session, tokens = self._issue_tokens(user, farm_id, ip_address, user_agent)
        # Conditional revoke: only one rotation of this session can commit
        revoked = (
            self.db.query(UserSession)
            .filter(UserSession.id == session.id, UserSession.is_active.is_(True))
            .update(
                {
                    UserSession.is_active: False,
                    UserSession.revoked_at: utc_now(),
                    UserSession.replaced_by_id: new_session.id,
                },
                synchronize_session=False,
            )
        )
        if revoked != 1:
            logger.warning(f"Concurrent refresh token reuse for user {session.user_id}")
            self.db.rollback()
            raise AuthenticationRequired("Refresh token has been revoked")
        self.db.commit()
        return tokens

    def logout(self, user_id, refresh_token: Optional[str] = None) -> int:
        """Revoke one session, or every session of the user when no token is given"""
        if refresh_token:
            session = (
                self.db.query(UserSession)
                .filter(
                    UserSession.refresh_token_hash == hash_token(refresh_token),
                    UserSession.user_id == user_id,
                    UserSession.is_active.is_(True),
                )
                .first()
            )
            revoked = 0
            if session:
                session.is_active = False
                session.revoked_at = utc_now()
                revoked = 1
        else:
            revoked = self._revoke_all_sessions(user_id)

        self.db.commit()
        return revoked

    # ========================================================================
    # PASSWORDS
    # ========================================================================

    def change_password(self, user_id, current_password: str, new_password: str) -> None:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise AccountNotFound()
        if not verify_password(current_password, user.password_hash):
            raise ValidationFailed(["body.currentPassword: Current password is incorrect"])
        if current_password == new_password:
            raise ValidationFailed(["body.newPassword: New password must differ from the current one"])

        user.password_hash = hash_password(new_password, self.settings.BCRYPT_ROUNDS)
        self._revoke_all_sessions(user.id)
        self.db.commit()
        logger.info(f"Password changed for {user.email}")

    def forgot_password(self, email: str) -> Optional[Tuple[User, str]]:
        """Returns (user, reset token), or None when no usable account matches"""
        user = self._find_by_email(email)
        if not user or not user.is_active or user.deleted_at is not None:
            return None

        now = utc_now()
        for reset in user.password_resets:
            if not reset.is_used:
                reset.is_used = True
                reset.used_at = now

        token = generate_opaque_token()
        self.db.add(
            PasswordReset(
                user_id=user.id,
                token=token,
                expires_at=expires_after(minutes=self.settings.PASSWORD_RESET_EXPIRE_MINUTES),
                is_used=False,
            )
        )
        self.db.commit()
        return user, token

    def reset_password(self, token: str, new_password: str) -> User:
        reset = self.db.query(PasswordReset).filter(PasswordReset.token == token).first()
        if not reset or reset.is_used or is_expired(reset.expires_at):
            raise ValidationFailed(["body.token: Invalid or expired reset token"])

        user = reset.user
        self._ensure_usable(user)

        reset.is_used = True
        reset.used_at = utc_now()
        user.password_hash = hash_password(new_password, self.settings.BCRYPT_ROUNDS)
        self._revoke_all_sessions(user.id)
        self.db.commit()
        logger.info(f"Password reset for {user.email}")
        return user
