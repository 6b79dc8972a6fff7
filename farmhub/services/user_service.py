"""
User management
"""
import logging
from typing import Any, Dict, List, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from farmhub.core.config import Settings
from farmhub.core.errors import Conflict, InsufficientPermissions, NotFound
from farmhub.core.permissions import can_assign_role
from farmhub.core.principal import Principal
from farmhub.core.security import hash_password
from farmhub.models import Role, User
from farmhub.schemas.user import UserCreate, UserListQuery, UserUpdate
from farmhub.services.role_service import RoleService
from farmhub.utils.date import to_iso, utc_now

logger = logging.getLogger(__name__)

SORTABLE = {
    "email": User.email,
    "firstName": User.first_name,
    "lastName": User.last_name,
    "createdAt": User.created_at,
    "lastLoginAt": User.last_login_at,
}


def serialize_user(user: User) -> Dict[str, Any]:
    return {
        "id": str(user.id),
        "email": user.email,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "fullName": user.full_name,
        "role": user.role.name if user.role else None,
        "roleId": str(user.role_id) if user.role_id else None,
        "emailVerified": user.email_verified,
        "isActive": user.is_active,
        "lastLoginAt": to_iso(user.last_login_at),
        "createdAt": to_iso(user.created_at),
    }


class UserService:
    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings

    def get_user(self, user_id) -> User:
        user = (
            self.db.query(User)
            .options(joinedload(User.role))
            .filter(User.id == user_id, User.deleted_at.is_(None))
            .first()
        )
        if not user:
            raise NotFound("User not found")
        return user

    def list_users(self, filters: UserListQuery) -> Tuple[List[User], int]:
        query = self.db.query(User).filter(User.deleted_at.is_(None))

        if filters.search:
            term = f"%{filters.search.strip()}%"
            query = query.filter(
                or_(User.email.ilike(term), User.first_name.ilike(term), User.last_name.ilike(term))
            )
        if filters.isActive is not None:
            query = query.filter(User.is_active == filters.isActive)
        if filters.roleId is not None:
            query = query.filter(User.role_id == filters.roleId)

        total = query.count()
        column = SORTABLE.get(filters.sort or "createdAt", User.created_at)
        ordering = column.asc() if filters.order == "asc" else column.desc()
        users = (
            query.options(joinedload(User.role))
            .order_by(ordering)
            .offset(filters.offset)
            .limit(filters.limit)
            .all()
        )
        return users, total

    def _assignable_role(self, actor: Principal, role_id) -> Role:
        role = RoleService(self.db).get_role(role_id)
        if not role.is_active:
            raise Conflict("Role is not active")
        if not can_assign_role(actor, role.level):
            raise InsufficientPermissions(
                "Cannot assign a role above your own level",
                requirement="role_level",
                required=[role.level],
                current=actor.role_level,
            )
        return role

    def create_user(self, actor: Principal, payload: UserCreate) -> User:
        email = payload.email.strip().lower()
        if self.db.query(User).filter(User.email == email).first():
            raise Conflict("Email already registered")

        if payload.roleId is not None:
            role = self._assignable_role(actor, payload.roleId)
        else:
            role = RoleService(self.db).default_role()

        user = User(
            email=email,
            password_hash=hash_password(payload.password, self.settings.BCRYPT_ROUNDS),
            first_name=payload.firstName,
            last_name=payload.lastName,
            role_id=role.id,
            is_active=payload.isActive,
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"User {user.email} created by {actor.email}")
        return user

    def update_user(self, user_id, payload: UserUpdate) -> User:
        user = self.get_user(user_id)
        if payload.firstName is not None:
            user.first_name = payload.firstName
        if payload.lastName is not None:
            user.last_name = payload.lastName
        if payload.isActive is not None:
            user.is_active = payload.isActive
        self.db.commit()
        self.db.refresh(user)
        return user

    def change_role(self, actor: Principal, user_id, role_id) -> User:
        user = self.get_user(user_id)
        if user.role is not None and not can_assign_role(actor, user.role.level):
            raise InsufficientPermissions(
                "Cannot change the role of a more senior user",
                requirement="role_level",
                required=[user.role.level],
                current=actor.role_level,
            )
        role = self._assignable_role(actor, role_id)
        user.role_id = role.id
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"Role of {user.email} changed to {role.name} by {actor.email}")
        return user

    def deactivate_user(self, actor: Principal, user_id) -> User:
        """Soft delete: the account stops authenticating on its next request"""
        user = self.get_user(user_id)
        if str(user.id) == str(actor.id):
            raise Conflict("You cannot deactivate your own account")
        user.is_active = False
        user.deleted_at = utc_now()
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"User {user.email} deactivated by {actor.email}")
        return user
