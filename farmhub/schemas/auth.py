"""
Authentication request schemas
"""
import re
from typing import Annotated, Optional
from uuid import UUID

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field


def check_password_strength(v: str) -> str:
    """Validate password strength"""
    if not re.search(r"[A-Z]", v):
        raise ValueError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", v):
        raise ValueError("Password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", v):
        raise ValueError("Password must contain at least one number")
    return v


# bcrypt only looks at the first 72 bytes
StrongPassword = Annotated[
    str, Field(min_length=8, max_length=72), AfterValidator(check_password_strength)
]


# ============================================================================
# REGISTRATION / LOGIN
# ============================================================================


class RegisterRequest(BaseModel):
    """Request schema for user registration"""
    email: EmailStr = Field(..., description="User email address")
    password: StrongPassword
    firstName: str = Field(..., min_length=2, max_length=100)
    lastName: Optional[str] = Field(None, min_length=2, max_length=100)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "email": "farmer@example.com",
                "password": "SecurePassword123",
                "firstName": "Ada",
                "lastName": "Okafor",
            }
        }
    )


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)
    # Optional farm to pin into the token claims
    farmId: Optional[UUID] = None


class RefreshTokenRequest(BaseModel):
    refreshToken: str = Field(..., min_length=1)


class LogoutRequest(BaseModel):
    refreshToken: Optional[str] = None


# ============================================================================
# PASSWORD MANAGEMENT
# ============================================================================


class ChangePasswordRequest(BaseModel):
    currentPassword: str = Field(..., min_length=1)
    newPassword: StrongPassword


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    newPassword: StrongPassword
