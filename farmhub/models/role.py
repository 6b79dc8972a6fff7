"""Global roles and the permissions they bundle"""
from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, Table, Text, Uuid
from sqlalchemy.orm import relationship

from farmhub.core.database import Base
from farmhub.models.base import TimestampMixin, UUIDPrimaryKeyMixin

# Composite primary key keeps a role's permission set free of duplicates
role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", Uuid(as_uuid=True), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column(
        "permission_id",
        Uuid(as_uuid=True),
        ForeignKey("permissions.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class Role(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Named bundle of permissions, organisation-wide (not farm-scoped)"""

    __tablename__ = "roles"

    name = Column(String(100), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    # Higher level means more senior; used when assigning roles to others
    level = Column(Integer, default=0, nullable=False)
    is_system = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    permissions = relationship("Permission", secondary=role_permissions, back_populates="roles")
    users = relationship("User", back_populates="role")

    @property
    def permission_names(self):
        return sorted({p.name for p in self.permissions if p.is_active})

    def __repr__(self) -> str:  # pragma: no cover - repr helper
        return f"<Role {self.name} (level={self.level})>"


class Permission(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Atomic capability, named <module>:<action>"""

    __tablename__ = "permissions"

    name = Column(String(100), unique=True, nullable=False, index=True)
    module = Column(String(50), nullable=False, index=True)
    action = Column(String(20), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    roles = relationship("Role", secondary=role_permissions, back_populates="permissions")

    def __repr__(self) -> str:  # pragma: no cover - repr helper
        return f"<Permission {self.name}>"
