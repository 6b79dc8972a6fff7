# farmhub/api/v1/router.py
from fastapi import APIRouter, Depends

from farmhub.api.v1.endpoints import (
    auth,
    users,
    roles,
    farms,
    invitations,
    finance,
    reports,
    cache,
)
from farmhub.middleware.rate_limit import general_limit

# The general limiter counts every API request before any other stage runs
api_router = APIRouter(dependencies=[Depends(general_limit)])
api_router.include_router(auth.router)
api_router.include_router(users.router)
api_router.include_router(roles.router)
api_router.include_router(farms.router)
api_router.include_router(invitations.router)
api_router.include_router(finance.router)
api_router.include_router(reports.router)
api_router.include_router(cache.router)
