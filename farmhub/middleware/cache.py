"""
Response caching for read endpoints and pattern invalidation for writes

Both are endpoint decorators so they run after the authentication,
authorization and validation dependencies have passed. The decorated
endpoint must accept ``request: Request``.
"""
import asyncio
import functools
import json
import logging
from typing import Any, Callable, Optional

from fastapi import Request
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from starlette.responses import Response

from farmhub.services.cache_service import KEY_PREFIX, CacheService

logger = logging.getLogger(__name__)


def build_cache_key(request: Request) -> str:
    """
    cache:<path>:<query as JSON with sorted keys>

    Farm-scoped requests get the farm id appended so two farms never share
    an entry; the key still starts with the path for pattern invalidation.
    """
    query = dict(sorted(request.query_params.items()))
    key = f"{KEY_PREFIX}{request.url.path}:{json.dumps(query, separators=(',', ':'))}"
    context = getattr(request.state, "farm_context", None)
    if context is not None:
        key = f"{key}:farm={context.farm_id}"
    return key


def _find_request(args, kwargs) -> Request:
    request = kwargs.get("request")
    if isinstance(request, Request):
        return request
    for value in list(args) + list(kwargs.values()):
        if isinstance(value, Request):
            return value
    raise RuntimeError("Cached endpoints must declare a 'request: Request' parameter")


async def _call_endpoint(func: Callable, *args, **kwargs) -> Any:
    if asyncio.iscoroutinefunction(func):
        return await func(*args, **kwargs)
    return await run_in_threadpool(func, *args, **kwargs)


def _is_cacheable(payload: Any) -> bool:
    return isinstance(payload, dict) and payload.get("success") is True and "data" in payload


def cached(ttl_minutes: Optional[int] = None, ttl_setting: str = "CACHE_DEFAULT_TTL_MINUTES"):
    """
    Serve GET responses from the cache

    Only {success: true, data} payloads are stored. A hit is returned with
    "cached": true and the endpoint is not called. The TTL is ttl_minutes, or
    the named setting when ttl_minutes is not given.
    """

    def decorator(func: Callable):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            request = _find_request(args, kwargs)
            if request.method != "GET":
                return await _call_endpoint(func, *args, **kwargs)

            cache: CacheService = request.app.state.cache
            key = build_cache_key(request)

            hit = await cache.get(key)
            if hit is not None:
                logger.debug(f"Cache hit: {key}")
                return {**hit, "cached": True}

            logger.debug(f"Cache miss: {key}")
            result = await _call_endpoint(func, *args, **kwargs)
            if isinstance(result, Response):
                return result

            payload = jsonable_encoder(result)
            if _is_cacheable(payload):
                ttl = ttl_minutes
                if ttl is None:
                    ttl = getattr(request.app.state.settings, ttl_setting)
                await cache.set(key, payload, ttl * 60)
            return payload

        return wrapper

    return decorator


def invalidates_cache(*patterns: str):
    """
    Delete cache entries matching patterns after the endpoint succeeds.
    "{api}" in a pattern is replaced with the configured API prefix.

    Usage:
        @router.post("/transactions")
        @invalidates_cache("{api}/reports")
        async def create_transaction(request: Request, ...):
    """

    def decorator(func: Callable):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            request = _find_request(args, kwargs)
            result = await _call_endpoint(func, *args, **kwargs)
            if isinstance(result, Response) and result.status_code >= 400:
                return result

            cache: CacheService = request.app.state.cache
            api_prefix = request.app.state.settings.API_PREFIX
            for pattern in patterns:
                await cache.invalidate(pattern.format(api=api_prefix))
            return result

        return wrapper

    return decorator
