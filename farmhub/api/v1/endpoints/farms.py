"""
Farm tenancy endpoints

/farms/current/* routes are scoped by the farm-context resolver: X-Farm-Id
header, then the token's farm claim, then the caller's only membership.
"""
from typing import Any

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from farmhub.core.database import get_db
from farmhub.core.dependencies import require_active, require_farm_role, require_verified_email
from farmhub.core.permissions import FARM_ADMINS, FARM_ANY, FARM_OWNER
from farmhub.core.principal import FarmContext, Principal
from farmhub.middleware.validation import ValidatedRequest, validate
from farmhub.schemas.farm import FarmCreate, MemberParams, MemberRoleUpdate
from farmhub.services.farm_service import FarmService, serialize_farm, serialize_membership
from farmhub.utils.responses import success_response

router = APIRouter(prefix="/farms", tags=["Farms"])


def get_farm_service(db: Session = Depends(get_db)) -> FarmService:
    return FarmService(db)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_farm(
    principal: Principal = Depends(require_verified_email),
    validated: ValidatedRequest = Depends(validate(body=FarmCreate)),
    service: FarmService = Depends(get_farm_service),
) -> Any:
    farm = service.create_farm(principal, validated.body)
    return success_response({**serialize_farm(farm), "role": "OWNER"}, "Farm created successfully")


@router.get("")
def list_my_farms(
    principal: Principal = Depends(require_active),
    service: FarmService = Depends(get_farm_service),
) -> Any:
    return success_response(service.list_user_farms(principal), "Farms retrieved successfully")


@router.get("/current")
def current_farm(
    context: FarmContext = Depends(require_farm_role(*FARM_ANY)),
    service: FarmService = Depends(get_farm_service),
) -> Any:
    farm = service.get_farm(context.farm_id)
    return success_response({**serialize_farm(farm), **context.to_dict()}, "Farm context resolved")


@router.get("/current/members")
def list_members(
    context: FarmContext = Depends(require_farm_role(*FARM_ANY)),
    service: FarmService = Depends(get_farm_service),
) -> Any:
    members = service.list_members(context.farm_id)
    return success_response([serialize_membership(m) for m in members], "Members retrieved successfully")


@router.patch("/current/members/{user_id}/role")
def change_member_role(
    context: FarmContext = Depends(require_farm_role(*FARM_OWNER)),
    validated: ValidatedRequest = Depends(validate(params=MemberParams, body=MemberRoleUpdate)),
    service: FarmService = Depends(get_farm_service),
) -> Any:
    membership = service.change_member_role(context, validated.params.user_id, validated.body.role)
    return success_response(serialize_membership(membership), "Member role updated successfully")


@router.delete("/current/members/{user_id}")
def remove_member(
    context: FarmContext = Depends(require_farm_role(*FARM_ADMINS)),
    principal: Principal = Depends(require_active),
    validated: ValidatedRequest = Depends(validate(params=MemberParams)),
    service: FarmService = Depends(get_farm_service),
) -> Any:
    membership = service.remove_member(context, principal, validated.params.user_id)
    return success_response(serialize_membership(membership), "Member removed successfully")
