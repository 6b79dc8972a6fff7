"""Role and permission schemas"""
from typing import Annotated, List, Optional

from pydantic import AfterValidator, BaseModel, Field


def _dedupe(names: List[str]) -> List[str]:
    return list(dict.fromkeys(name.strip() for name in names if name.strip()))


PermissionNames = Annotated[List[str], AfterValidator(_dedupe)]


class RoleCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    description: Optional[str] = None
    level: int = Field(0, ge=0, le=100)
    permissions: PermissionNames = Field(default_factory=list)
    isActive: bool = True


class RoleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    description: Optional[str] = None
    level: Optional[int] = Field(None, ge=0, le=100)
    permissions: Optional[PermissionNames] = None
    isActive: Optional[bool] = None
