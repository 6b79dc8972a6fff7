"""
Farm tenancy models: farms, memberships and invitations
"""
import enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from farmhub.core.database import Base
from farmhub.models.base import TimestampMixin, UUIDPrimaryKeyMixin


class FarmRole(str, enum.Enum):
    """Tenant-scoped role, independent of the global Role entity"""

    OWNER = "OWNER"
    MANAGER = "MANAGER"
    WORKER = "WORKER"
    VIEWER = "VIEWER"


class InvitationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class Farm(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """
    Farm model - the tenant unit
    Most business data is scoped to exactly one farm
    """

    __tablename__ = "farms"

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    owner_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)

    memberships = relationship("FarmMembership", back_populates="farm", cascade="all, delete-orphan")
    invitations = relationship("FarmInvitation", back_populates="farm", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Farm {self.name}>"


class FarmMembership(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Binds a user to a farm with a farm-scoped role"""

    __tablename__ = "farm_memberships"
    __table_args__ = (
        UniqueConstraint("farm_id", "user_id", name="uq_farm_memberships_farm_user"),
    )

    farm_id = Column(
        Uuid(as_uuid=True), ForeignKey("farms.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role = Column(Enum(FarmRole, native_enum=False, length=20), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    joined_at = Column(DateTime, nullable=True)
    invited_by_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True)

    farm = relationship("Farm", back_populates="memberships")
    user = relationship("User", back_populates="memberships", foreign_keys=[user_id])

    def __repr__(self):
        return f"<FarmMembership farm={self.farm_id} user={self.user_id} ({self.role})>"


class FarmInvitation(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Pending offer of farm membership; consumed exactly once"""

    __tablename__ = "farm_invitations"

    farm_id = Column(
        Uuid(as_uuid=True), ForeignKey("farms.id", ondelete="CASCADE"), nullable=False, index=True
    )
    invitee_email = Column(String(320), nullable=False, index=True)
    invitee_name = Column(String(255), nullable=True)
    role = Column(Enum(FarmRole, native_enum=False, length=20), nullable=False)
    status = Column(
        Enum(InvitationStatus, native_enum=False, length=20),
        default=InvitationStatus.PENDING,
        nullable=False,
    )
    token = Column(String(128), nullable=False, unique=True, index=True)
    message = Column(Text, nullable=True)
    expires_at = Column(DateTime, nullable=False)
    responded_at = Column(DateTime, nullable=True)

    invited_by_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)
    accepted_by_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True)

    farm = relationship("Farm", back_populates="invitations")
    invited_by = relationship("User", foreign_keys=[invited_by_id])

    def __repr__(self):
        return f"<FarmInvitation {self.invitee_email} ({self.status})>"
