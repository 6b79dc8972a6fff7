"""Finance schemas"""
from datetime import date
from decimal import Decimal
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from farmhub.models.finance import TransactionType
from farmhub.schemas.common import PaginatedDateRangeQuery


class TransactionCreate(BaseModel):
    type: TransactionType
    category: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    transactionDate: date
    description: Optional[str] = Field(None, max_length=1000)


class TransactionListQuery(PaginatedDateRangeQuery):
    limit: int = Field(20, ge=1, le=100)
    type: Optional[TransactionType] = None
    category: Optional[str] = Field(None, max_length=100)
    sort: Optional[Literal["transactionDate", "amount", "createdAt"]] = None


class TransactionParams(BaseModel):
    transaction_id: UUID
