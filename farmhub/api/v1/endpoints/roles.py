"""Role management endpoints"""
from typing import Any, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from farmhub.core.database import get_db
from farmhub.core.dependencies import require_permission
from farmhub.core.permissions import ROLES_MANAGE
from farmhub.middleware.validation import ValidatedRequest, validate
from farmhub.models import Permission, Role
from farmhub.schemas.common import IdParams
from farmhub.schemas.role import RoleCreate, RoleUpdate
from farmhub.services.role_service import RoleService
from farmhub.utils.date import to_iso
from farmhub.utils.responses import success_response

router = APIRouter(
    prefix="/roles",
    tags=["Roles"],
    dependencies=[Depends(require_permission(ROLES_MANAGE))],
)


class RoleListQuery(BaseModel):
    isActive: Optional[bool] = None


class PermissionListQuery(BaseModel):
    module: Optional[str] = None


def _to_role_response(role: Role) -> dict:
    return {
        "id": str(role.id),
        "name": role.name,
        "description": role.description,
        "level": role.level,
        "permissions": role.permission_names,
        "isSystem": role.is_system,
        "isActive": role.is_active,
        "createdAt": to_iso(role.created_at),
        "updatedAt": to_iso(role.updated_at),
    }


def _to_permission_response(permission: Permission) -> dict:
    return {
        "id": str(permission.id),
        "name": permission.name,
        "module": permission.module,
        "action": permission.action,
        "description": permission.description,
    }


def get_role_service(db: Session = Depends(get_db)) -> RoleService:
    return RoleService(db)


@router.get("")
def list_roles(
    validated: ValidatedRequest = Depends(validate(query=RoleListQuery)),
    service: RoleService = Depends(get_role_service),
) -> Any:
    roles = service.list_roles(validated.query.isActive)
    return success_response([_to_role_response(role) for role in roles], "Roles retrieved successfully")


@router.get("/permissions")
def list_permissions(
    validated: ValidatedRequest = Depends(validate(query=PermissionListQuery)),
    service: RoleService = Depends(get_role_service),
) -> Any:
    permissions = service.list_permissions(validated.query.module)
    return success_response(
        [_to_permission_response(p) for p in permissions], "Permissions retrieved successfully"
    )


@router.post("", status_code=status.HTTP_201_CREATED)
def create_role(
    validated: ValidatedRequest = Depends(validate(body=RoleCreate)),
    service: RoleService = Depends(get_role_service),
) -> Any:
    role = service.create_role(validated.body)
    return success_response(_to_role_response(role), "Role created successfully")


@router.get("/{id}")
def get_role(
    validated: ValidatedRequest = Depends(validate(params=IdParams)),
    service: RoleService = Depends(get_role_service),
) -> Any:
    role = service.get_role(validated.params.id)
    return success_response(_to_role_response(role), "Role retrieved successfully")


@router.patch("/{id}")
def update_role(
    validated: ValidatedRequest = Depends(validate(params=IdParams, body=RoleUpdate)),
    service: RoleService = Depends(get_role_service),
) -> Any:
    role = service.update_role(validated.params.id, validated.body)
    return success_response(_to_role_response(role), "Role updated successfully")


@router.delete("/{id}")
def delete_role(
    validated: ValidatedRequest = Depends(validate(params=IdParams)),
    service: RoleService = Depends(get_role_service),
) -> Any:
    deleted = service.delete_role(validated.params.id)
    message = "Role deleted successfully" if deleted else "Role is in use and has been disabled"
    return success_response({"deleted": deleted}, message)
