"""
Application configuration
Loads settings from environment variables
"""
from functools import lru_cache
from typing import Optional, List, Union, Tuple

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "FarmHub API"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # API
    API_PREFIX: str = "/api"

    # Security
    JWT_ACCESS_SECRET: str
    JWT_REFRESH_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    JWT_ISSUER: str = "farmhub"
    JWT_AUDIENCE: str = "farmhub-clients"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    BCRYPT_ROUNDS: int = 12
    PASSWORD_RESET_EXPIRE_MINUTES: int = 60
    EMAIL_VERIFICATION_EXPIRE_HOURS: int = 24
    INVITATION_EXPIRE_DAYS: int = 7

    # Database
    DATABASE_URL: str
    DATABASE_POOL_SIZE: int = 5
    DATABASE_MAX_OVERFLOW: int = 0
    AUTO_CREATE_TABLES: bool = True

    # Cache
    REDIS_URL: Optional[str] = None
    CACHE_DEFAULT_TTL_MINUTES: int = 10
    REPORTS_CACHE_TTL_MINUTES: int = 15
    CACHE_CLEANUP_INTERVAL_SECONDS: int = 300

    # Rate limiting (max requests, window minutes)
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_STORAGE_URI: str = "async+memory://"
    RATE_LIMIT_GENERAL: Tuple[int, int] = (100, 15)
    RATE_LIMIT_AUTH: Tuple[int, int] = (5, 15)
    RATE_LIMIT_REFRESH: Tuple[int, int] = (10, 15)
    RATE_LIMIT_PASSWORD_RESET: Tuple[int, int] = (3, 15)
    RATE_LIMIT_REPORTS: Tuple[int, int] = (10, 5)

    # Email (SMTP)
    MAIL_USERNAME: Optional[str] = None
    MAIL_PASSWORD: Optional[str] = None
    MAIL_FROM: Optional[str] = None
    MAIL_PORT: int = 587
    MAIL_SERVER: str = "smtp.gmail.com"

    # Frontend
    FRONTEND_URL: str = "http://localhost:3000"

    # CORS Origins
    CORS_ORIGINS: Union[List[str], str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from string or list"""
        if isinstance(v, list):
            return v

        if isinstance(v, str):
            if not v.strip():
                return []
            origins = [origin.strip() for origin in v.split(",")]
            return [origin for origin in origins if origin]

        return ["http://localhost:3000", "http://localhost:5173"]

    @model_validator(mode="after")
    def check_distinct_secrets(self):
        """Access and refresh tokens must be signed with different secrets"""
        if self.JWT_ACCESS_SECRET == self.JWT_REFRESH_SECRET:
            raise ValueError("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must differ")
        return self

    @property
    def access_token_expires_in(self) -> int:
        """Access token lifetime in seconds"""
        return self.ACCESS_TOKEN_EXPIRE_MINUTES * 60

    @property
    def email_enabled(self) -> bool:
        return all([self.MAIL_USERNAME, self.MAIL_PASSWORD, self.MAIL_FROM])

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, read once from the environment"""
    return Settings()
