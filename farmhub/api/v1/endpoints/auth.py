"""
Authentication API endpoints
Handles registration, email verification, login, token refresh, logout and passwords
"""
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from sqlalchemy.orm import Session

from farmhub.core.database import get_db
from farmhub.core.dependencies import get_current_principal
from farmhub.core.principal import Principal
from farmhub.middleware.rate_limit import auth_limit, password_reset_limit, refresh_limit
from farmhub.schemas.auth import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LogoutRequest,
    RefreshTokenRequest,
    RegisterRequest,
    ResetPasswordRequest,
)
from farmhub.services.auth_service import AuthService
from farmhub.services.user_service import serialize_user
from farmhub.utils.responses import success_response

router = APIRouter(prefix="/auth", tags=["authentication"])


def get_auth_service(request: Request, db: Session = Depends(get_db)) -> AuthService:
    return AuthService(db, request.app.state.settings, request.app.state.token_codec)


def _client_info(request: Request):
    ip_address = request.client.host if request.client else None
    return ip_address, request.headers.get("user-agent")


@router.post("/register", status_code=status.HTTP_201_CREATED, dependencies=[Depends(auth_limit)])
async def register(
    payload: RegisterRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    service: AuthService = Depends(get_auth_service),
) -> Any:
    """
    Register a new user with the default role
    Sends an email verification link
    """
    user, verification_token = service.register(
        payload.email, payload.password, payload.firstName, payload.lastName
    )
    background_tasks.add_task(
        request.app.state.email.send_verification_email, user.email, verification_token
    )
    return success_response(
        {"user": serialize_user(user)},
        "Registration successful. Please check your email to verify your account.",
    )


@router.post("/login", dependencies=[Depends(auth_limit)])
async def login(
    payload: LoginRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
) -> Any:
    """
    Authenticate user and return JWT tokens
    """
    ip_address, user_agent = _client_info(request)
    user, tokens = service.login(
        payload.email, payload.password, payload.farmId, ip_address, user_agent
    )
    return success_response({"user": serialize_user(user), "tokens": tokens}, "Login successful")


@router.post("/refresh-token", dependencies=[Depends(refresh_limit)])
async def refresh_token(
    payload: RefreshTokenRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
) -> Any:
    """
    Exchange a refresh token for a new token pair; the old refresh token stops working
    """
    ip_address, user_agent = _client_info(request)
    tokens = service.refresh(payload.refreshToken, ip_address, user_agent)
    return success_response({"tokens": tokens}, "Token refreshed successfully")


@router.post("/logout")
async def logout(
    payload: Optional[LogoutRequest] = None,
    principal: Principal = Depends(get_current_principal),
    service: AuthService = Depends(get_auth_service),
) -> Any:
    """
    Revoke the given refresh token's session, or every session when none is given
    """
    revoked = service.logout(principal.id, payload.refreshToken if payload else None)
    return success_response({"revokedSessions": revoked}, "Logged out successfully")


@router.get("/me")
async def me(principal: Principal = Depends(get_current_principal)) -> Any:
    return success_response(principal.to_dict(), "Profile retrieved successfully")


@router.post("/change-password")
async def change_password(
    payload: ChangePasswordRequest,
    principal: Principal = Depends(get_current_principal),
    service: AuthService = Depends(get_auth_service),
) -> Any:
    service.change_password(principal.id, payload.currentPassword, payload.newPassword)
    return success_response(None, "Password changed successfully. Please log in again.")


@router.post("/forgot-password", dependencies=[Depends(password_reset_limit)])
async def forgot_password(
    payload: ForgotPasswordRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    service: AuthService = Depends(get_auth_service),
) -> Any:
    """
    Always answers the same way so the endpoint cannot be used to discover which accounts exist
    """
    issued = service.forgot_password(payload.email)
    if issued is not None:
        user, token = issued
        background_tasks.add_task(request.app.state.email.send_password_reset_email, user.email, token)
    return success_response(
        None, "If an account exists for this email, a password reset link has been sent."
    )


@router.post("/reset-password", dependencies=[Depends(password_reset_limit)])
async def reset_password(
    payload: ResetPasswordRequest,
    service: AuthService = Depends(get_auth_service),
) -> Any:
    service.reset_password(payload.token, payload.newPassword)
    return success_response(None, "Password has been reset. Please log in with your new password.")


@router.get("/verify-email/{token}")
async def verify_email(token: str, service: AuthService = Depends(get_auth_service)) -> Any:
    user = service.verify_email(token)
    return success_response({"user": serialize_user(user)}, "Email verified successfully")
