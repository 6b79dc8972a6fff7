"""
Pipeline stages as FastAPI dependencies

token -> principal -> farm context -> gates. Each stage either returns the
context it resolved or raises a typed AppError; FastAPI caches sub-dependencies
per request, so a route listing several gates resolves the principal once.
"""
import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from farmhub.core.database import get_db
from farmhub.core.errors import AppError, AuthenticationRequired, TokenExpired
from farmhub.core.permissions import (
    check_active,
    check_farm_role,
    check_ownership_or_role,
    check_permission,
    check_role,
    check_verified_email,
)
from farmhub.core.principal import FarmContext, Principal, PrincipalResolver, resolve_farm_context
from farmhub.core.security import TokenClaims, TokenCodec, TokenKind
from farmhub.models.farm import FarmRole

logger = logging.getLogger(__name__)

# HTTP Bearer authentication; missing credentials are reported by the pipeline
security = HTTPBearer(auto_error=False)


# -------------------------
# APP STATE ACCESSORS
# -------------------------
def get_token_codec(request: Request) -> TokenCodec:
    return request.app.state.token_codec


# -------------------------
# AUTHENTICATION
# -------------------------
def get_token_claims(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    codec: TokenCodec = Depends(get_token_codec),
) -> TokenClaims:
    """
    Verify the bearer access token

    Raises:
        AuthenticationRequired: header missing, token malformed or forged
        TokenExpired: token was genuine but has expired
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationRequired("Access token required")

    verified = codec.verify(credentials.credentials, TokenKind.ACCESS)
    if verified.expired:
        logger.info(f"Expired access token presented for user {verified.claims.subject_id}")
        raise TokenExpired()

    request.state.token_claims = verified.claims
    return verified.claims


def get_current_principal(
    request: Request,
    claims: TokenClaims = Depends(get_token_claims),
    db: Session = Depends(get_db),
) -> Principal:
    principal = PrincipalResolver(db).resolve(claims.subject_id)
    request.state.principal = principal
    return principal


def get_optional_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    codec: TokenCodec = Depends(get_token_codec),
    db: Session = Depends(get_db),
) -> Optional[Principal]:
    """
    Get current principal if authenticated, None otherwise
    Useful for endpoints that work both with and without authentication
    """
    if credentials is None or not credentials.credentials:
        return None
    try:
        verified = codec.verify(credentials.credentials, TokenKind.ACCESS)
    except AppError:
        return None
    if verified.expired:
        return None
    principal = PrincipalResolver(db).resolve_optional(verified.claims.subject_id)
    request.state.principal = principal
    return principal


# -------------------------
# FARM CONTEXT
# -------------------------
def get_farm_context(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    claims: TokenClaims = Depends(get_token_claims),
) -> FarmContext:
    context = resolve_farm_context(
        principal,
        requested_farm_id=getattr(request.state, "requested_farm_id", None),
        token_farm_id=claims.farm_id,
    )
    request.state.farm_context = context
    return context


# -------------------------
# AUTHORIZATION GATES
# -------------------------
def require_active(principal: Principal = Depends(get_current_principal)) -> Principal:
    check_active(principal)
    return principal


def require_verified_email(principal: Principal = Depends(get_current_principal)) -> Principal:
    check_verified_email(principal)
    return principal


def require_role(*allowed_roles: str):
    """
    Dependency factory for global role checks

    Usage:
        @router.get("/admin-only", dependencies=[Depends(require_role("admin"))])
    """

    def role_checker(principal: Principal = Depends(get_current_principal)) -> Principal:
        check_role(principal, allowed_roles)
        return principal

    return role_checker


def require_permission(*permissions: str, mode: str = "any"):
    if mode not in ("any", "all"):
        raise ValueError(f"Unknown permission mode: {mode}")

    def permission_checker(principal: Principal = Depends(get_current_principal)) -> Principal:
        check_permission(principal, permissions, mode)
        return principal

    return permission_checker


def require_farm_role(*allowed_roles: FarmRole):
    def farm_role_checker(
        principal: Principal = Depends(get_current_principal),
        context: FarmContext = Depends(get_farm_context),
    ) -> FarmContext:
        check_farm_role(principal, context, allowed_roles)
        return context

    return farm_role_checker


def require_ownership_or_role(resource_owner_field: str, escalation_role: str):
    """
    Pass when the request names the caller as the resource owner, or the
    caller holds escalation_role. The owner id is read from the path
    parameters, then the query string, then a JSON body.
    """

    async def ownership_checker(
        request: Request,
        principal: Principal = Depends(get_current_principal),
    ) -> Principal:
        owner_id = request.path_params.get(resource_owner_field)
        if owner_id is None:
            owner_id = request.query_params.get(resource_owner_field)
        if owner_id is None and request.headers.get("content-type", "").startswith("application/json"):
            try:
                body = await request.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                owner_id = body.get(resource_owner_field)

        context = getattr(request.state, "farm_context", None)
        check_ownership_or_role(principal, owner_id, [escalation_role], context)
        return principal

    return ownership_checker
