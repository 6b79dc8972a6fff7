"""
Financial transaction model
"""
import enum

from sqlalchemy import Column, Date, Enum, ForeignKey, Numeric, String, Text, Uuid

from farmhub.core.database import Base
from farmhub.models.base import TimestampMixin, UUIDPrimaryKeyMixin


class TransactionType(str, enum.Enum):
    INCOME = "income"
    EXPENSE = "expense"


class FinancialTransaction(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Income or expense entry recorded against one farm"""

    __tablename__ = "financial_transactions"

    farm_id = Column(
        Uuid(as_uuid=True), ForeignKey("farms.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type = Column(Enum(TransactionType, native_enum=False, length=20), nullable=False)
    category = Column(String(100), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    transaction_date = Column(Date, nullable=False, index=True)
    description = Column(Text, nullable=True)
    created_by_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)

    def __repr__(self):
        return f"<FinancialTransaction {self.type} {self.amount}>"
