from starlette.middleware.base import BaseHTTPMiddleware
from fastapi import Request

FARM_HEADER = "X-Farm-Id"


class FarmHeaderMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        # Explicit farm selection; resolved against memberships later in the pipeline
        farm_id = request.headers.get(FARM_HEADER, "").strip()
        request.state.requested_farm_id = farm_id or None
        response = await call_next(request)
        return response
