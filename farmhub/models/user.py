"""
User, Session, and single-use token models
"""
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Text, Uuid
from sqlalchemy.orm import relationship

from farmhub.core.database import Base
from farmhub.models.base import TimestampMixin, UUIDPrimaryKeyMixin


class User(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """
    User model for authentication and authorization
    Users hold one global role and any number of farm memberships
    """

    __tablename__ = "users"

    email = Column(String(320), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)

    role_id = Column(Uuid(as_uuid=True), ForeignKey("roles.id"), nullable=False, index=True)

    # Email verification
    email_verified = Column(Boolean, default=False, nullable=False)
    email_verified_at = Column(DateTime, nullable=True)

    # Status
    is_active = Column(Boolean, default=True, nullable=False)
    last_login_at = Column(DateTime, nullable=True)

    # Soft delete
    deleted_at = Column(DateTime, nullable=True)

    # Relationships
    role = relationship("Role", back_populates="users")
    sessions = relationship("Session", back_populates="user", cascade="all, delete-orphan")
    memberships = relationship(
        "FarmMembership",
        back_populates="user",
        foreign_keys="FarmMembership.user_id",
        cascade="all, delete-orphan",
    )
    email_verifications = relationship(
        "EmailVerification", back_populates="user", cascade="all, delete-orphan"
    )
    password_resets = relationship(
        "PasswordReset", back_populates="user", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<User {self.email}>"

    @property
    def full_name(self):
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.first_name or self.email


class Session(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """
    Refresh-token session. A rotated session is revoked and points at the
    session that replaced it.
    """

    __tablename__ = "sessions"

    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # sha256 of the refresh token; the token itself is never stored
    refresh_token_hash = Column(String(64), nullable=False, unique=True, index=True)
    expires_at = Column(DateTime, nullable=False)

    # Device/client information
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)

    # Status
    is_active = Column(Boolean, default=True, nullable=False)
    revoked_at = Column(DateTime, nullable=True)
    replaced_by_id = Column(Uuid(as_uuid=True), ForeignKey("sessions.id"), nullable=True)

    # Relationships
    user = relationship("User", back_populates="sessions")

    def __repr__(self):
        return f"<Session {self.user_id} - {self.is_active}>"


class EmailVerification(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """
    Email verification tokens for user email confirmation
    """

    __tablename__ = "email_verifications"

    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    token = Column(String(255), nullable=False, unique=True, index=True)
    expires_at = Column(DateTime, nullable=False)

    is_used = Column(Boolean, default=False, nullable=False)
    used_at = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="email_verifications")

    def __repr__(self):
        return f"<EmailVerification {self.user_id} - used:{self.is_used}>"


class PasswordReset(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """
    Password reset tokens, consumed once
    """

    __tablename__ = "password_resets"

    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    token = Column(String(255), nullable=False, unique=True, index=True)
    expires_at = Column(DateTime, nullable=False)

    is_used = Column(Boolean, default=False, nullable=False)
    used_at = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="password_resets")

    def __repr__(self):
        return f"<PasswordReset {self.user_id} - used:{self.is_used}>"
