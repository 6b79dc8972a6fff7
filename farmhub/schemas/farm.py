"""Farm tenancy schemas"""
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from farmhub.models.farm import FarmRole


class FarmCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    description: Optional[str] = None
    location: Optional[str] = Field(None, max_length=255)


class MemberParams(BaseModel):
    user_id: UUID


class MemberRoleUpdate(BaseModel):
    role: FarmRole
