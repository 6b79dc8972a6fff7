"""
Role and permission management, plus seeding of the built-in roles
"""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from farmhub.core.errors import Conflict, InsufficientPermissions, NotFound, ValidationFailed
from farmhub.core.permissions import ACTIONS, DEFAULT_ROLE, MODULES, SYSTEM_ROLES, permission_name
from farmhub.models import Permission, Role, User
from farmhub.schemas.role import RoleCreate, RoleUpdate

logger = logging.getLogger(__name__)


def seed_permissions_and_roles(db: Session) -> None:
    """
    Create missing permissions and system roles. Safe to run on every start;
    system role permissions are reset to their SYSTEM_ROLES template.
    """
    existing = {p.name: p for p in db.query(Permission).all()}
    for module in MODULES:
        for action in ACTIONS:
            name = permission_name(module, action)
            if name not in existing:
                perm = Permission(
                    name=name,
                    module=module,
                    action=action,
                    description=f"{action.capitalize()} {module}",
                )
                db.add(perm)
                existing[name] = perm
    db.flush()

    for role_name, template in SYSTEM_ROLES.items():
        role = db.query(Role).filter(Role.name == role_name).first()
        if role is None:
            role = Role(
                name=role_name,
                description=template["description"],
                level=template["level"],
                is_system=True,
                is_active=True,
            )
            db.add(role)
            logger.info(f"Seeded system role {role_name}")
        role.permissions = [existing[name] for name in template["permissions"]]

    db.commit()


class RoleService:
    """Service class for role operations"""

    def __init__(self, db: Session):
        self.db = db

    def get_role(self, role_id) -> Role:
        role = self.db.query(Role).filter(Role.id == role_id).first()
        if not role:
            raise NotFound("Role not found")
        return role

    def get_by_name(self, name: str) -> Optional[Role]:
        return self.db.query(Role).filter(Role.name == name).first()

    def default_role(self) -> Role:
        role = self.get_by_name(DEFAULT_ROLE)
        if role is None:
            raise NotFound(f"Default role '{DEFAULT_ROLE}' is not seeded")
        return role

    def list_roles(self, is_active: Optional[bool] = None) -> List[Role]:
        query = self.db.query(Role)
        if is_active is not None:
            query = query.filter(Role.is_active == is_active)
        return query.order_by(Role.level.desc(), Role.name.asc()).all()

    def list_permissions(self, module: Optional[str] = None) -> List[Permission]:
        query = self.db.query(Permission).filter(Permission.is_active.is_(True))
        if module:
            query = query.filter(Permission.module == module)
        return query.order_by(Permission.module.asc(), Permission.action.asc()).all()

    def _resolve_permissions(self, names: List[str]) -> List[Permission]:
        if not names:
            return []
        found = self.db.query(Permission).filter(Permission.name.in_(names)).all()
        unknown = sorted(set(names) - {p.name for p in found})
        if unknown:
            raise ValidationFailed([f"permissions: unknown permission '{name}'" for name in unknown])
        return found

    def create_role(self, payload: RoleCreate) -> Role:
        if self.get_by_name(payload.name):
            raise Conflict("Role name already exists")

        role = Role(
            name=payload.name,
            description=payload.description,
            level=payload.level,
            is_active=payload.isActive,
            is_system=False,
        )
        role.permissions = self._resolve_permissions(payload.permissions)
        self.db.add(role)
        self.db.commit()
        self.db.refresh(role)
        logger.info(f"Role created: {role.name}")
        return role

    def update_role(self, role_id, payload: RoleUpdate) -> Role:
        role = self.get_role(role_id)

        # System roles are re-synced from SYSTEM_ROLES on every start
        if role.is_system and any(
            value is not None for value in (payload.level, payload.isActive, payload.permissions)
        ):
            raise InsufficientPermissions(
                "System role level, status and permissions cannot be changed",
                requirement="system_role",
            )

        if payload.name and payload.name != role.name:
            if role.is_system:
                raise InsufficientPermissions(
                    "System roles cannot be renamed", requirement="system_role"
                )
            if self.get_by_name(payload.name):
                raise Conflict("Role name already exists")
            role.name = payload.name

        if payload.description is not None:
            role.description = payload.description
        if payload.level is not None:
            role.level = payload.level
        if payload.isActive is not None:
            role.is_active = payload.isActive
        if payload.permissions is not None:
            role.permissions = self._resolve_permissions(payload.permissions)

        self.db.commit()
        self.db.refresh(role)
        return role

    def delete_role(self, role_id) -> bool:
        """
        Delete a custom role. Returns False when the role is still assigned
        and was disabled instead.
        """
        role = self.get_role(role_id)
        if role.is_system:
            raise InsufficientPermissions(
                "System roles cannot be deleted", requirement="system_role"
            )

        in_use = self.db.query(User.id).filter(User.role_id == role.id).first() is not None
        if in_use:
            role.is_active = False
            self.db.commit()
            logger.info(f"Role {role.name} is assigned to users; disabled instead of deleted")
            return False

        self.db.delete(role)
        self.db.commit()
        logger.info(f"Role deleted: {role.name}")
        return True
