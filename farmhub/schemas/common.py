"""
Reusable request fragments: pagination, id path parameters, date ranges
"""
from datetime import date
from typing import Literal, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


class PaginationQuery(BaseModel):
    """page >= 1, limit 1..100, order asc|desc (default desc)"""

    model_config = ConfigDict(extra="ignore")

    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)
    sort: Optional[str] = Field(None, max_length=50)
    order: Literal["asc", "desc"] = "desc"

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class IdParams(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: UUID


class DateRangeQuery(BaseModel):
    """
    startDate/endDate (also accepted as dateFrom/dateTo). When both are
    present endDate must be strictly after startDate.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    startDate: Optional[date] = Field(None, validation_alias=AliasChoices("startDate", "dateFrom"))
    endDate: Optional[date] = Field(None, validation_alias=AliasChoices("endDate", "dateTo"))

    @model_validator(mode="after")
    def check_range(self):
        if self.startDate and self.endDate and self.endDate <= self.startDate:
            raise ValueError("endDate must be after startDate")
        return self


class PaginatedDateRangeQuery(PaginationQuery, DateRangeQuery):
    pass
