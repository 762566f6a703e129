from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")

    # Shared secret for cron-style callers of the reconciliation sweep. Sweep endpoint is disabled when unset.
    cron_api_key: Optional[str] = Field(None, alias="CRON_API_KEY")

    # Upper bound on months walked by one generation call (guards against malformed anchor dates).
    fee_generation_max_months: int = Field(120, alias="FEE_GENERATION_MAX_MONTHS", ge=1)

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
