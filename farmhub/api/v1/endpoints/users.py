"""User management endpoints"""
from typing import Any

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from farmhub.core.database import get_db
from farmhub.core.dependencies import require_ownership_or_role, require_permission
from farmhub.core.permissions import (
    ADMIN_ROLE,
    USERS_CREATE,
    USERS_DELETE,
    USERS_MANAGE,
    USERS_READ,
    USERS_UPDATE,
)
from farmhub.core.principal import Principal
from farmhub.middleware.validation import ValidatedRequest, validate
from farmhub.schemas.user import UserCreate, UserListQuery, UserParams, UserRoleUpdate, UserUpdate
from farmhub.services.user_service import UserService, serialize_user
from farmhub.utils.responses import pagination_meta, success_response

router = APIRouter(prefix="/users", tags=["Users"])


def get_user_service(request: Request, db: Session = Depends(get_db)) -> UserService:
    return UserService(db, request.app.state.settings)


@router.get("")
def list_users(
    principal: Principal = Depends(require_permission(USERS_READ)),
    validated: ValidatedRequest = Depends(validate(query=UserListQuery)),
    service: UserService = Depends(get_user_service),
) -> Any:
    filters = validated.query
    users, total = service.list_users(filters)
    return success_response(
        [serialize_user(user) for user in users],
        "Users retrieved successfully",
        pagination=pagination_meta(filters.page, filters.limit, total),
    )


@router.post("", status_code=status.HTTP_201_CREATED)
def create_user(
    principal: Principal = Depends(require_permission(USERS_CREATE)),
    validated: ValidatedRequest = Depends(validate(body=UserCreate)),
    service: UserService = Depends(get_user_service),
) -> Any:
    user = service.create_user(principal, validated.body)
    return success_response(serialize_user(user), "User created successfully")


@router.get("/{user_id}")
def get_user(
    principal: Principal = Depends(require_ownership_or_role("user_id", ADMIN_ROLE)),
    validated: ValidatedRequest = Depends(validate(params=UserParams)),
    service: UserService = Depends(get_user_service),
) -> Any:
    user = service.get_user(validated.params.user_id)
    return success_response(serialize_user(user), "User retrieved successfully")


@router.patch("/{user_id}")
def update_user(
    principal: Principal = Depends(require_permission(USERS_UPDATE)),
    validated: ValidatedRequest = Depends(validate(params=UserParams, body=UserUpdate)),
    service: UserService = Depends(get_user_service),
) -> Any:
    user = service.update_user(validated.params.user_id, validated.body)
    return success_response(serialize_user(user), "User updated successfully")


@router.patch("/{user_id}/role")
def change_user_role(
    principal: Principal = Depends(require_permission(USERS_MANAGE)),
    validated: ValidatedRequest = Depends(validate(params=UserParams, body=UserRoleUpdate)),
    service: UserService = Depends(get_user_service),
) -> Any:
    user = service.change_role(principal, validated.params.user_id, validated.body.roleId)
    return success_response(serialize_user(user), "User role updated successfully")


@router.delete("/{user_id}")
def deactivate_user(
    principal: Principal = Depends(require_permission(USERS_DELETE)),
    validated: ValidatedRequest = Depends(validate(params=UserParams)),
    service: UserService = Depends(get_user_service),
) -> Any:
    user = service.deactivate_user(principal, validated.params.user_id)
    return success_response(serialize_user(user), "User deactivated successfully")
