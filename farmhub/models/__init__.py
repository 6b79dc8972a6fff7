"""
SQLAlchemy models for the application
"""
from farmhub.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from farmhub.models.role import Role, Permission, role_permissions
from farmhub.models.user import User, Session, EmailVerification, PasswordReset
from farmhub.models.farm import (
    Farm,
    FarmMembership,
    FarmInvitation,
    FarmRole,
    InvitationStatus,
)
from farmhub.models.finance import FinancialTransaction, TransactionType

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "Role",
    "Permission",
    "role_permissions",
    "User",
    "Session",
    "EmailVerification",
    "PasswordReset",
    "Farm",
    "FarmMembership",
    "FarmInvitation",
    "FarmRole",
    "InvitationStatus",
    "FinancialTransaction",
    "TransactionType",
]
