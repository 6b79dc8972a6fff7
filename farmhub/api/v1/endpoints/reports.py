"""
Report endpoints

Profit and loss responses are cached per path, query and farm; finance
writes invalidate everything under the reports path. The cache routes
here only see and clear the current farm's entries; /api/cache covers the
whole keyspace for admins.
"""
from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from farmhub.core.database import get_db
from farmhub.core.dependencies import require_farm_role
from farmhub.core.permissions import FARM_ADMINS, FARM_ANY
from farmhub.core.principal import FarmContext
from farmhub.middleware.cache import cached
from farmhub.middleware.rate_limit import reports_limit
from farmhub.middleware.validation import ValidatedRequest, validate
from farmhub.schemas.report import CacheInvalidateRequest, ProfitLossQuery
from farmhub.services.report_service import ReportService
from farmhub.utils.responses import success_response

router = APIRouter(prefix="/reports", tags=["Reports"])


def get_report_service(db: Session = Depends(get_db)) -> ReportService:
    return ReportService(db)


@router.get("/profit-loss", dependencies=[Depends(reports_limit)])
@cached(ttl_setting="REPORTS_CACHE_TTL_MINUTES")
def profit_loss(
    request: Request,
    context: FarmContext = Depends(require_farm_role(*FARM_ANY)),
    validated: ValidatedRequest = Depends(validate(query=ProfitLossQuery)),
    service: ReportService = Depends(get_report_service),
) -> Any:
    query = validated.query
    report = service.profit_loss(context.farm_id, query.startDate, query.endDate, query.category)
    return success_response(report, "Profit and loss report generated successfully")


@router.get("/cache/stats")
async def cache_stats(
    request: Request,
    context: FarmContext = Depends(require_farm_role(*FARM_ADMINS)),
) -> Any:
    stats = await request.app.state.cache.stats(farm_id=context.farm_id)
    return success_response(stats, "Cache statistics retrieved successfully")


@router.post("/cache/invalidate")
async def invalidate_report_cache(
    request: Request,
    context: FarmContext = Depends(require_farm_role(*FARM_ADMINS)),
    validated: ValidatedRequest = Depends(validate(body=CacheInvalidateRequest)),
) -> Any:
    pattern = validated.body.pattern or f"{request.app.state.settings.API_PREFIX}/reports"
    deleted = await request.app.state.cache.invalidate(pattern, farm_id=context.farm_id)
    return success_response({"pattern": pattern, "deleted": deleted}, "Report cache invalidated")
