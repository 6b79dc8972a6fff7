"""
Per-request identity and farm context

A Principal is built fresh on every request from the token subject; it is
never cached across requests, so deactivation and role changes apply on
the caller's next request.
"""
import logging
from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session, joinedload

from farmhub.core.errors import (
    AccountInactive,
    AccountNotFound,
    AppError,
    FarmInactive,
    FarmSelectionRequired,
    NoFarmRoleAssigned,
)
from farmhub.core.security import parse_subject_id
from farmhub.models import FarmMembership, FarmRole, Role, User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MembershipView:
    farm_id: UUID
    farm_name: str
    farm_active: bool
    role: FarmRole


@dataclass(frozen=True)
class Principal:
    id: UUID
    email: str
    is_active: bool
    email_verified: bool
    role_id: Optional[UUID]
    role_name: Optional[str]
    role_level: int
    permissions: FrozenSet[str] = field(default_factory=frozenset)
    memberships: Tuple[MembershipView, ...] = ()
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    def membership_for(self, farm_id: UUID) -> Optional[MembershipView]:
        for membership in self.memberships:
            if UUID(str(membership.farm_id)) == farm_id:
                return membership
        return None

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "isActive": self.is_active,
            "emailVerified": self.email_verified,
            "role": {"id": str(self.role_id) if self.role_id else None, "name": self.role_name, "level": self.role_level},
            "permissions": sorted(self.permissions),
            "farms": [
                {"farmId": str(m.farm_id), "farmName": m.farm_name, "role": m.role.value}
                for m in self.memberships
            ],
        }


@dataclass(frozen=True)
class FarmContext:
    farm_id: UUID
    farm_name: str
    farm_role: FarmRole
    # header, token or membership
    source: str

    def to_dict(self) -> dict:
        return {
            "farmId": str(self.farm_id),
            "farmName": self.farm_name,
            "farmRole": self.farm_role.value,
            "source": self.source,
        }


# -------------------------
# PRINCIPAL RESOLUTION
# -------------------------
def build_principal(user: User) -> Principal:
    # Disabled roles count as no role
    role = user.role if user.role is not None and user.role.is_active else None
    permissions = frozenset(role.permission_names) if role is not None else frozenset()
    memberships = tuple(
        MembershipView(
            farm_id=m.farm_id,
            farm_name=m.farm.name if m.farm is not None else "",
            farm_active=bool(m.farm.is_active) if m.farm is not None else False,
            role=FarmRole(m.role),
        )
        for m in user.memberships
        if m.is_active
    )
    return Principal(
        id=user.id,
        email=user.email,
        is_active=bool(user.is_active) and user.deleted_at is None,
        email_verified=bool(user.email_verified),
        role_id=role.id if role is not None else None,
        role_name=role.name if role is not None else None,
        role_level=role.level if role is not None else 0,
        permissions=permissions,
        memberships=memberships,
        first_name=user.first_name,
        last_name=user.last_name,
    )


class PrincipalResolver:
    """Loads user, role, permissions and memberships in a single query"""

    def __init__(self, db: Session):
        self.db = db

    def load_user(self, subject_id) -> Optional[User]:
        try:
            user_id = parse_subject_id(subject_id)
        except ValueError:
            return None
        return (
            self.db.query(User)
            .options(
                joinedload(User.role).joinedload(Role.permissions),
                joinedload(User.memberships).joinedload(FarmMembership.farm),
            )
            .filter(User.id == user_id)
            .first()
        )

    def resolve(self, subject_id) -> Principal:
        user = self.load_user(subject_id)
        if user is None:
            raise AccountNotFound()
        principal = build_principal(user)
        if not principal.is_active:
            raise AccountInactive()
        return principal

    def resolve_optional(self, subject_id) -> Optional[Principal]:
        try:
            return self.resolve(subject_id)
        except AppError as exc:
            logger.debug(f"Optional principal not resolved: {exc.code}")
            return None


# -------------------------
# FARM CONTEXT RESOLUTION
# -------------------------
def resolve_farm_context(
    principal: Principal,
    requested_farm_id: Optional[str] = None,
    token_farm_id: Optional[str] = None,
) -> FarmContext:
    """
    Pick the farm a request is scoped to. First match wins:
    X-Farm-Id header, then the token's farm_id claim, then the principal's
    only active membership.

    Raises:
        FarmSelectionRequired: nothing identifies a farm unambiguously
        NoFarmRoleAssigned: the farm is known but the principal is not a member
        FarmInactive: the farm has been deactivated
    """
    if requested_farm_id:
        farm_id, source = requested_farm_id, "header"
    elif token_farm_id:
        farm_id, source = token_farm_id, "token"
    elif len(principal.memberships) == 1:
        farm_id, source = str(principal.memberships[0].farm_id), "membership"
    elif not principal.memberships:
        raise FarmSelectionRequired("Farm selection required. You are not a member of any farm")
    else:
        raise FarmSelectionRequired("Farm selection required. Provide the X-Farm-Id header")

    try:
        farm_id = UUID(str(farm_id))
    except ValueError:
        raise FarmSelectionRequired(f"Invalid farm id from {source}: {farm_id}")

    membership = principal.membership_for(farm_id)
    if membership is None:
        raise NoFarmRoleAssigned("No farm role assigned for the selected farm", farmId=str(farm_id))
    if not membership.farm_active:
        raise FarmInactive(farmId=str(farm_id))

    return FarmContext(
        farm_id=membership.farm_id,
        farm_name=membership.farm_name,
        farm_role=membership.role,
        source=source,
    )
