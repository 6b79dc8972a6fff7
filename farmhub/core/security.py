import enum
import hashlib
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

import bcrypt
from jose import jwt, JWTError, ExpiredSignatureError

from farmhub.core.config import Settings
from farmhub.core.errors import AuthenticationRequired
from farmhub.utils.date import utc_now


# -------------------------
# PASSWORD UTILITIES
# -------------------------
def hash_password(password: str, rounds: int = 12) -> str:
    """Hash a plain password using bcrypt"""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against its hash"""
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False


def generate_opaque_token() -> str:
    """Unguessable single-use token for invitation / reset / verification links"""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """Stable digest used to store refresh tokens without keeping them"""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


# -------------------------
# TOKEN CODEC
# -------------------------
class TokenKind(str, enum.Enum):
    ACCESS = "access"
    REFRESH = "refresh"


@dataclass
class TokenClaims:
    """Identity carried inside a signed token"""

    subject_id: str
    email: str
    role_id: Optional[str] = None
    permissions: List[str] = field(default_factory=list)
    farm_id: Optional[str] = None
    expires_at: Optional[int] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "TokenClaims":
        permissions = payload.get("permissions") or []
        return cls(
            subject_id=str(payload.get("sub") or ""),
            email=payload.get("email") or "",
            role_id=payload.get("role_id"),
            permissions=list(permissions) if isinstance(permissions, list) else [],
            farm_id=payload.get("farm_id"),
            expires_at=payload.get("exp"),
        )


@dataclass
class VerifiedToken:
    claims: TokenClaims
    expired: bool = False


class TokenCodec:
    """
    Issues and verifies signed access/refresh tokens.

    Each kind has its own secret and lifetime. verify() never raises on
    expiry; it returns expired=True so callers can tell a token that needs
    refreshing from a forged or malformed one, which raises.
    """

    def __init__(self, settings: Settings):
        self._algorithm = settings.JWT_ALGORITHM
        self._issuer = settings.JWT_ISSUER
        self._audience = settings.JWT_AUDIENCE
        self._secrets = {
            TokenKind.ACCESS: settings.JWT_ACCESS_SECRET,
            TokenKind.REFRESH: settings.JWT_REFRESH_SECRET,
        }
        self._lifetimes = {
            TokenKind.ACCESS: timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
            TokenKind.REFRESH: timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        }

    def lifetime(self, kind: TokenKind) -> timedelta:
        return self._lifetimes[kind]

    def issue(
        self,
        claims: TokenClaims,
        kind: TokenKind,
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        """Create a signed token of the given kind"""
        now = utc_now()
        expire = now + (expires_delta if expires_delta is not None else self._lifetimes[kind])
        payload: Dict[str, Any] = {
            "sub": str(claims.subject_id),
            "email": claims.email,
            "role_id": str(claims.role_id) if claims.role_id else None,
            "permissions": list(claims.permissions),
            "type": kind.value,
            "iss": self._issuer,
            "aud": self._audience,
            "iat": now,
            "exp": expire,
            # Unique per token so two tokens issued in the same second differ
            "jti": uuid.uuid4().hex,
        }
        if claims.farm_id:
            payload["farm_id"] = str(claims.farm_id)
        return jwt.encode(payload, self._secrets[kind], algorithm=self._algorithm)

    def verify(self, token: str, kind: TokenKind) -> VerifiedToken:
        """
        Verify signature, issuer, audience and type of a token

        Returns:
            VerifiedToken with expired=True when only the expiry check failed

        Raises:
            AuthenticationRequired: malformed, forged or wrong-kind token
        """
        try:
            payload = jwt.decode(
                token,
                self._secrets[kind],
                algorithms=[self._algorithm],
                audience=self._audience,
                issuer=self._issuer,
            )
        except ExpiredSignatureError:
            # Signature was checked before the expiry claim; claims are authentic
            payload = self.decode_unsafe(token)
            if payload is None:
                raise AuthenticationRequired("Invalid token")
            self._check_kind(payload, kind)
            return VerifiedToken(claims=TokenClaims.from_payload(payload), expired=True)
        except JWTError:
            raise AuthenticationRequired("Invalid token")

        self._check_kind(payload, kind)
        if not payload.get("sub"):
            raise AuthenticationRequired("Invalid token: subject missing")
        return VerifiedToken(claims=TokenClaims.from_payload(payload), expired=False)

    @staticmethod
    def decode_unsafe(token: str) -> Optional[Dict[str, Any]]:
        """
        Read claims without verifying anything. Only for inspecting whose
        session expired; never treat the result as authenticated.
        """
        try:
            return jwt.get_unverified_claims(token)
        except JWTError:
            return None

    @staticmethod
    def _check_kind(payload: Dict[str, Any], kind: TokenKind) -> None:
        if payload.get("type") != kind.value:
            raise AuthenticationRequired(f"Invalid token type. Expected {kind.value}")


# -------------------------
# BEARER HEADER PARSING
# -------------------------
def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        return None
    return parts[1]


def parse_subject_id(raw: Union[str, UUID, None]) -> UUID:
    """Parse a token subject into a user id"""
    if raw is None or raw == "":
        raise ValueError("User ID is None")
    if isinstance(raw, UUID):
        return raw
    return UUID(str(raw))
