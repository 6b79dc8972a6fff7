"""
Farm financial transactions
"""
import logging
from typing import Any, Dict, List, Tuple

from sqlalchemy.orm import Session

from farmhub.core.errors import NotFound
from farmhub.core.permissions import check_ownership_or_role
from farmhub.core.principal import FarmContext, Principal
from farmhub.models import FinancialTransaction, TransactionType
from farmhub.schemas.finance import TransactionCreate, TransactionListQuery
from farmhub.utils.date import to_iso

logger = logging.getLogger(__name__)

SORTABLE = {
    "transactionDate": FinancialTransaction.transaction_date,
    "amount": FinancialTransaction.amount,
    "createdAt": FinancialTransaction.created_at,
}

# Farm or global roles that may delete entries recorded by someone else
DELETE_ESCALATION_ROLES = ("OWNER", "MANAGER", "admin")


def serialize_transaction(txn: FinancialTransaction) -> Dict[str, Any]:
    return {
        "id": str(txn.id),
        "farmId": str(txn.farm_id),
        "type": TransactionType(txn.type).value,
        "category": txn.category,
        "amount": float(txn.amount),
        "transactionDate": txn.transaction_date.isoformat(),
        "description": txn.description,
        "createdById": str(txn.created_by_id),
        "createdAt": to_iso(txn.created_at),
    }


class FinanceService:
    def __init__(self, db: Session):
        self.db = db

    def list_transactions(self, farm_id, filters: TransactionListQuery) -> Tuple[List[FinancialTransaction], int]:
        query = self.db.query(FinancialTransaction).filter(FinancialTransaction.farm_id == farm_id)

        if filters.startDate:
            query = query.filter(FinancialTransaction.transaction_date >= filters.startDate)
        if filters.endDate:
            query = query.filter(FinancialTransaction.transaction_date <= filters.endDate)
        if filters.type:
            query = query.filter(FinancialTransaction.type == filters.type)
        if filters.category:
            query = query.filter(FinancialTransaction.category == filters.category)

        total = query.count()
        column = SORTABLE[filters.sort or "transactionDate"]
        ordering = column.asc() if filters.order == "asc" else column.desc()
        items = query.order_by(ordering).offset(filters.offset).limit(filters.limit).all()
        return items, total

    def create_transaction(
        self, context: FarmContext, principal: Principal, payload: TransactionCreate
    ) -> FinancialTransaction:
        txn = FinancialTransaction(
            farm_id=context.farm_id,
            type=payload.type,
            category=payload.category.strip(),
            amount=payload.amount,
            transaction_date=payload.transactionDate,
            description=payload.description,
            created_by_id=principal.id,
        )
        self.db.add(txn)
        self.db.commit()
        self.db.refresh(txn)
        logger.info(f"Transaction {txn.id} recorded on farm {context.farm_id}")
        return txn

    def delete_transaction(self, context: FarmContext, principal: Principal, transaction_id) -> None:
        """The recorder may delete their own entry; farm owners and managers any entry"""
        txn = (
            self.db.query(FinancialTransaction)
            .filter(
                FinancialTransaction.id == transaction_id,
                FinancialTransaction.farm_id == context.farm_id,
            )
            .first()
        )
        if not txn:
            raise NotFound("Transaction not found")

        check_ownership_or_role(principal, txn.created_by_id, DELETE_ESCALATION_ROLES, context)

        self.db.delete(txn)
        self.db.commit()
        logger.info(f"Transaction {transaction_id} deleted by {principal.email}")
