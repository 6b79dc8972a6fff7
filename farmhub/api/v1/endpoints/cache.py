"""Cache administration (system admins only)"""
from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from farmhub.core.dependencies import require_role
from farmhub.core.permissions import ADMIN_ROLE
from farmhub.middleware.validation import ValidatedRequest, validate
from farmhub.utils.responses import success_response

router = APIRouter(
    prefix="/cache",
    tags=["Cache"],
    dependencies=[Depends(require_role(ADMIN_ROLE))],
)


class PatternRequest(BaseModel):
    pattern: str = Field(..., min_length=1, max_length=200)


@router.get("/stats")
async def stats(request: Request) -> Any:
    return success_response(await request.app.state.cache.stats(), "Cache statistics retrieved successfully")


@router.post("/invalidate")
async def invalidate(
    request: Request,
    validated: ValidatedRequest = Depends(validate(body=PatternRequest)),
) -> Any:
    pattern = validated.body.pattern
    deleted = await request.app.state.cache.invalidate(pattern)
    return success_response({"pattern": pattern, "deleted": deleted}, "Cache invalidated")
