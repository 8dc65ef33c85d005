from functools import lru_cache
from pydantic_settings import BaseSettings
from typing import List, Optional

class Settings(BaseSettings):
    # App settings
    APP_NAME: str = "Account Service API"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    API_V1_STR: str = "/api/v1"

    # Token settings (each token kind signs with its own secret)
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_SECRET: str
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_SECRET: str
    REFRESH_TOKEN_EXPIRE_DAYS: int = 10

    # Cookie flags for accessToken / refreshToken
    COOKIE_SECURE: bool = True
    COOKIE_SAMESITE: str = "lax"

    # CORS settings
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    LOG_TTL_DAYS: int = 7

    # MongoDB (default store)
    USE_MONGO: bool = True
    MONGO_URI: Optional[str] = None
    MONGO_DB: str = "accounts"

    # SQL store, used when USE_MONGO is false
    DATABASE_URL: Optional[str] = None
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_RECYCLE: int = 300
    DB_POOL_TIMEOUT: int = 10
    DB_PRE_PING: bool = True

    # Media hosting (Cloudinary)
    CLOUDINARY_CLOUD_NAME: Optional[str] = None
    CLOUDINARY_API_KEY: Optional[str] = None
    CLOUDINARY_API_SECRET: Optional[str] = None
    CLOUDINARY_FOLDER: str = "accounts"
    CLOUDINARY_UPLOAD_URL: str = "https://api.cloudinary.com/v1_1"
    UPLOAD_TEMP_DIR: str = "public/temp"
    UPLOAD_TIMEOUT_SECONDS: float = 30.0
    MAX_UPLOAD_BYTES: int = 5 * 1024 * 1024

    class Config:
        env_file = ".env"
        case_sensitive = True
        frozen = True


def validate_settings(settings: Settings) -> Settings:
    """Reject configurations the service cannot run with."""
    if not settings.ACCESS_TOKEN_SECRET:
        raise ValueError("ACCESS_TOKEN_SECRET environment variable is required")
    if not settings.REFRESH_TOKEN_SECRET:
        raise ValueError("REFRESH_TOKEN_SECRET environment variable is required")
    if settings.ACCESS_TOKEN_SECRET == settings.REFRESH_TOKEN_SECRET:
        raise ValueError("ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must differ")
    if settings.ACCESS_TOKEN_EXPIRE_MINUTES <= 0 or settings.REFRESH_TOKEN_EXPIRE_DAYS <= 0:
        raise ValueError("Token expiry settings must be positive")
    if settings.USE_MONGO and not settings.MONGO_URI:
        raise ValueError("MONGO_URI environment variable is required when USE_MONGO=true")
    if not settings.USE_MONGO and not settings.DATABASE_URL:
        raise ValueError("DATABASE_URL environment variable is required when USE_MONGO=false")
    return settings


@lru_cache
def get_settings() -> Settings:
    """Load settings once per process; the instance is immutable afterwards."""
    return validate_settings(Settings())

