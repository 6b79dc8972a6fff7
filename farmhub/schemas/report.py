"""Report schemas"""
from typing import Optional

from pydantic import BaseModel, Field

from farmhub.schemas.common import DateRangeQuery


class ProfitLossQuery(DateRangeQuery):
    category: Optional[str] = Field(None, max_length=100)


class CacheInvalidateRequest(BaseModel):
    pattern: Optional[str] = Field(None, min_length=1, max_length=200)
