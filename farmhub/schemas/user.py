"""User management schemas"""
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from farmhub.schemas.auth import StrongPassword
from farmhub.schemas.common import PaginationQuery


class UserListQuery(PaginationQuery):
    search: Optional[str] = Field(None, max_length=100)
    isActive: Optional[bool] = None
    roleId: Optional[UUID] = None


class UserParams(BaseModel):
    user_id: UUID


class UserCreate(BaseModel):
    email: EmailStr
    password: StrongPassword
    firstName: str = Field(..., min_length=2, max_length=100)
    lastName: Optional[str] = Field(None, min_length=2, max_length=100)
    roleId: Optional[UUID] = None
    isActive: bool = True


class UserUpdate(BaseModel):
    firstName: Optional[str] = Field(None, min_length=2, max_length=100)
    lastName: Optional[str] = Field(None, min_length=2, max_length=100)
    isActive: Optional[bool] = None


class UserRoleUpdate(BaseModel):
    roleId: UUID
