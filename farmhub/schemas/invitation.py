"""Invitation schemas"""
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from farmhub.models.farm import FarmRole


class InvitationCreate(BaseModel):
    email: EmailStr
    name: Optional[str] = Field(None, max_length=255)
    role: FarmRole = FarmRole.VIEWER
    message: Optional[str] = Field(None, max_length=1000)


class InvitationTokenParams(BaseModel):
    token: str = Field(..., min_length=16, max_length=128, pattern=r"^[0-9a-f]+$")


class InvitationIdParams(BaseModel):
    invitation_id: UUID
