"""Farm finance endpoints"""
from typing import Any

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from farmhub.core.database import get_db
from farmhub.core.dependencies import get_current_principal, require_farm_role
from farmhub.core.permissions import FARM_ANY, FARM_STAFF
from farmhub.core.principal import FarmContext, Principal
from farmhub.middleware.cache import invalidates_cache
from farmhub.middleware.validation import ValidatedRequest, validate
from farmhub.schemas.finance import TransactionCreate, TransactionListQuery, TransactionParams
from farmhub.services.finance_service import FinanceService, serialize_transaction
from farmhub.utils.responses import pagination_meta, success_response

router = APIRouter(prefix="/finance", tags=["Finance"])


def get_finance_service(db: Session = Depends(get_db)) -> FinanceService:
    return FinanceService(db)


@router.get("/transactions")
def list_transactions(
    context: FarmContext = Depends(require_farm_role(*FARM_ANY)),
    validated: ValidatedRequest = Depends(validate(query=TransactionListQuery)),
    service: FinanceService = Depends(get_finance_service),
) -> Any:
    filters = validated.query
    items, total = service.list_transactions(context.farm_id, filters)
    return success_response(
        [serialize_transaction(txn) for txn in items],
        "Transactions retrieved successfully",
        pagination=pagination_meta(filters.page, filters.limit, total),
    )


@router.post("/transactions", status_code=status.HTTP_201_CREATED)
@invalidates_cache("{api}/reports")
def create_transaction(
    request: Request,
    context: FarmContext = Depends(require_farm_role(*FARM_STAFF)),
    principal: Principal = Depends(get_current_principal),
    validated: ValidatedRequest = Depends(validate(body=TransactionCreate)),
    service: FinanceService = Depends(get_finance_service),
) -> Any:
    """Record income or an expense; cached reports are dropped afterwards"""
    txn = service.create_transaction(context, principal, validated.body)
    return success_response(serialize_transaction(txn), "Transaction recorded successfully")


@router.delete("/transactions/{transaction_id}")
@invalidates_cache("{api}/reports")
def delete_transaction(
    request: Request,
    context: FarmContext = Depends(require_farm_role(*FARM_STAFF)),
    principal: Principal = Depends(get_current_principal),
    validated: ValidatedRequest = Depends(validate(params=TransactionParams)),
    service: FinanceService = Depends(get_finance_service),
) -> Any:
    service.delete_transaction(context, principal, validated.params.transaction_id)
    return success_response(None, "Transaction deleted successfully")
