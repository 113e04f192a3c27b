from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # App settings
    PROJECT_NAME: str = "FinLedger"
    API_PREFIX: str = "/api"
    DEBUG: bool = Field(default=False)
    LOG_LEVEL: str = Field(default="INFO")

    # Remote collection service ("http" or "dynamo")
    REMOTE_BACKEND: str = Field(default="http")
    REMOTE_API_URL: str = Field(default="http://localhost:4000")
    REMOTE_API_PREFIX: str = "/api"
    REMOTE_TIMEOUT_SECONDS: float = Field(default=5.0)

    # DynamoDB (only used when REMOTE_BACKEND == "dynamo")
    DYNAMO_REGION: str = Field(default="eu-west-1")
    DYNAMO_TABLE_PREFIX: str = Field(default="finledger-")

    # Local fallback cache
    CACHE_PATH: str = Field(default="data/fallback_cache.json")

    # Calendar used for day/month buckets and "current month" windows
    TIMEZONE: str = Field(default="UTC")

    # Ledger policies
    RD_ANNUAL_RATE: float = Field(default=0.05)  # placeholder, not a bank rate
    BUDGET_AUTO_RATIO: float = Field(default=0.25)
    PAGE_SIZE: int = 8

    # Background jobs
    REFRESH_INTERVAL_SECONDS: int = Field(default=300)
    EXPIRY_SWEEP_MINUTES: int = Field(default=60)


def get_settings() -> Settings:
    return Settings()
