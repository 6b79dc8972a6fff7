"""
Farm tenancy: farms and memberships
"""
import logging
from typing import Any, Dict, List

from sqlalchemy.orm import Session, joinedload

from farmhub.core.errors import Conflict, InsufficientPermissions, NotFound
from farmhub.core.principal import FarmContext, Principal
from farmhub.models import Farm, FarmMembership, FarmRole
from farmhub.schemas.farm import FarmCreate
from farmhub.utils.date import to_iso, utc_now

logger = logging.getLogger(__name__)


def serialize_farm(farm: Farm) -> Dict[str, Any]:
    return {
        "id": str(farm.id),
        "name": farm.name,
        "description": farm.description,
        "location": farm.location,
        "isActive": farm.is_active,
        "ownerId": str(farm.owner_id),
        "createdAt": to_iso(farm.created_at),
    }


def serialize_membership(membership: FarmMembership) -> Dict[str, Any]:
    user = membership.user
    return {
        "userId": str(membership.user_id),
        "email": user.email if user else None,
        "fullName": user.full_name if user else None,
        "role": FarmRole(membership.role).value,
        "isActive": membership.is_active,
        "joinedAt": to_iso(membership.joined_at),
    }


class FarmService:
    def __init__(self, db: Session):
        self.db = db

    def create_farm(self, principal: Principal, payload: FarmCreate) -> Farm:
        """The creator becomes the farm's first OWNER"""
        farm = Farm(
            name=payload.name,
            description=payload.description,
            location=payload.location,
            owner_id=principal.id,
            is_active=True,
        )
        self.db.add(farm)
        self.db.flush()
        self.db.add(
            FarmMembership(
                farm_id=farm.id,
                user_id=principal.id,
                role=FarmRole.OWNER,
                is_active=True,
                joined_at=utc_now(),
            )
        )
        self.db.commit()
        self.db.refresh(farm)
        logger.info(f"Farm {farm.name} created by {principal.email}")
        return farm

    def list_user_farms(self, principal: Principal) -> List[Dict[str, Any]]:
        memberships = (
            self.db.query(FarmMembership)
            .options(joinedload(FarmMembership.farm))
            .filter(FarmMembership.user_id == principal.id, FarmMembership.is_active.is_(True))
            .order_by(FarmMembership.joined_at.asc())
            .all()
        )
        return [
            {**serialize_farm(m.farm), "role": FarmRole(m.role).value, "joinedAt": to_iso(m.joined_at)}
            for m in memberships
        ]

    def get_farm(self, farm_id) -> Farm:
        farm = self.db.query(Farm).filter(Farm.id == farm_id).first()
        if not farm:
            raise NotFound("Farm not found")
        return farm

    def list_members(self, farm_id) -> List[FarmMembership]:
        return (
            self.db.query(FarmMembership)
            .options(joinedload(FarmMembership.user))
            .filter(FarmMembership.farm_id == farm_id, FarmMembership.is_active.is_(True))
            .order_by(FarmMembership.joined_at.asc())
            .all()
        )

    def _membership(self, farm_id, user_id) -> FarmMembership:
        membership = (
            self.db.query(FarmMembership)
            .filter(
                FarmMembership.farm_id == farm_id,
                FarmMembership.user_id == user_id,
                FarmMembership.is_active.is_(True),
            )
            .first()
        )
        if not membership:
            raise NotFound("Farm member not found")
        return membership

    def _owner_count(self, farm_id) -> int:
        return (
            self.db.query(FarmMembership)
            .filter(
                FarmMembership.farm_id == farm_id,
                FarmMembership.role == FarmRole.OWNER,
                FarmMembership.is_active.is_(True),
            )
            .count()
        )

    def change_member_role(self, context: FarmContext, user_id, role: FarmRole) -> FarmMembership:
        """Explicit role change; a farm always keeps at least one OWNER"""
        membership = self._membership(context.farm_id, user_id)
        current = FarmRole(membership.role)
        if current == role:
            return membership

        if current == FarmRole.OWNER and self._owner_count(context.farm_id) <= 1:
            raise Conflict("A farm must keep at least one owner")

        membership.role = role
        self.db.commit()
        self.db.refresh(membership)
        logger.info(f"Farm {context.farm_id}: member {user_id} role {current.value} -> {role.value}")
        return membership

    def remove_member(self, context: FarmContext, principal: Principal, user_id) -> FarmMembership:
        membership = self._membership(context.farm_id, user_id)
        target_role = FarmRole(membership.role)

        if target_role == FarmRole.OWNER and context.farm_role != FarmRole.OWNER:
            raise InsufficientPermissions(
                "Only owners can remove an owner",
                requirement="farm_role",
                required=[FarmRole.OWNER.value],
                current=context.farm_role.value,
            )
        if target_role == FarmRole.OWNER and self._owner_count(context.farm_id) <= 1:
            raise Conflict("A farm must keep at least one owner")

        membership.is_active = False
        self.db.commit()
        self.db.refresh(membership)
        logger.info(f"Farm {context.farm_id}: member {user_id} removed by {principal.email}")
        return membership
