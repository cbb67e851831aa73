from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional
from decimal import Decimal
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./grn_recon.db"

    # Database Connection Pool Settings
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # App Settings
    APP_NAME: str = "Goods Receipt Reconciliation Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Document numbering: {PREFIX}/{COMPANY_CODE}/{FY}/{SEQUENCE}
    COMPANY_CODE: str = "APL"

    # Department recorded on audit entries when the caller sends none
    DEFAULT_DEPARTMENT: str = "procurement"

    # Outbound notifications (best effort; empty URL means log only)
    NOTIFICATION_WEBHOOK_URL: Optional[str] = None
    NOTIFICATION_TIMEOUT_SECONDS: float = 5.0

    # Credit notes
    CREDIT_NOTE_DEFAULT_TAX_PERCENTAGE: Decimal = Decimal("0")

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
