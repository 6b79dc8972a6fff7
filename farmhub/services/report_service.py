"""
Profit and loss aggregation over a farm's transactions
"""
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from farmhub.models import FinancialTransaction, TransactionType


def _money(value: Decimal) -> float:
    return float(round(value, 2))


class ReportService:
    def __init__(self, db: Session):
        self.db = db

    def profit_loss(
        self,
        farm_id,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        category: Optional[str] = None,
    ) -> Dict[str, Any]:
        query = (
            self.db.query(
                FinancialTransaction.type,
                FinancialTransaction.category,
                func.sum(FinancialTransaction.amount),
                func.count(FinancialTransaction.id),
            )
            .filter(FinancialTransaction.farm_id == farm_id)
            .group_by(FinancialTransaction.type, FinancialTransaction.category)
        )
        if start_date:
            query = query.filter(FinancialTransaction.transaction_date >= start_date)
        if end_date:
            query = query.filter(FinancialTransaction.transaction_date <= end_date)
        if category:
            query = query.filter(FinancialTransaction.category == category)

        totals = {TransactionType.INCOME: Decimal("0"), TransactionType.EXPENSE: Decimal("0")}
        counts = {TransactionType.INCOME: 0, TransactionType.EXPENSE: 0}
        by_category = {TransactionType.INCOME: defaultdict(Decimal), TransactionType.EXPENSE: defaultdict(Decimal)}

        for txn_type, txn_category, amount, count in query.all():
            txn_type = TransactionType(txn_type)
            amount = Decimal(str(amount or 0))
            totals[txn_type] += amount
            counts[txn_type] += count
            by_category[txn_type][txn_category] += amount

        income = totals[TransactionType.INCOME]
        expenses = totals[TransactionType.EXPENSE]
        net = income - expenses
        margin = (net / income * 100) if income > 0 else Decimal("0")

        return {
            "totalIncome": _money(income),
            "totalExpenses": _money(expenses),
            "netProfitLoss": _money(net),
            "profitMargin": _money(margin),
            "incomeByCategory": {k: _money(v) for k, v in sorted(by_category[TransactionType.INCOME].items())},
            "expensesByCategory": {k: _money(v) for k, v in sorted(by_category[TransactionType.EXPENSE].items())},
            "period": {
                "startDate": start_date.isoformat() if start_date else None,
                "endDate": end_date.isoformat() if end_date else None,
            },
            "transactionCount": {
                "income": counts[TransactionType.INCOME],
                "expenses": counts[TransactionType.EXPENSE],
                "total": counts[TransactionType.INCOME] + counts[TransactionType.EXPENSE],
            },
        }
