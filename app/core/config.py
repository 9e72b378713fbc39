from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List, Optional


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "SalonSync"
    APP_PORT: int = 9202
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "salonsync"
    POSTGRES_PORT: int = 5432
    DATABASE_URI: Optional[str] = None  # full URL override (sqlite for local runs)

    # Shopify
    SHOPIFY_SHOP_DOMAIN: str = ""
    SHOPIFY_ADMIN_ACCESS_TOKEN: str = ""
    SHOPIFY_API_VERSION: str = "2024-07"
    SHOPIFY_WEBHOOK_SECRET: str = ""
    SHOPIFY_ALLOWED_SHOP_DOMAINS: str = ""  # comma separated, empty = any
    SHOPIFY_TIMEOUT_SECONDS: float = 30.0

    # Sync
    SYNC_ADMIN_TOKEN: str = ""
    BACKFILL_MAX_PAGES: int = 100
    SYNC_SCHEDULER_ENABLED: bool = False
    SYNC_INTERVAL_MINUTES: int = 15
    SYNC_LOOKBACK_HOURS: int = 2

    @property
    def DATABASE_URL(self) -> str:
        if self.DATABASE_URI:
            return self.DATABASE_URI
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    @property
    def shop_domain(self) -> str:
        """Bare shop hostname (guards against a pasted scheme or trailing slash)"""
        domain = self.SHOPIFY_SHOP_DOMAIN.strip()
        for prefix in ("https://", "http://"):
            if domain.lower().startswith(prefix):
                domain = domain[len(prefix):]
        return domain.rstrip("/")

    @property
    def allowed_shop_domains(self) -> List[str]:
        return [d.strip().lower() for d in self.SHOPIFY_ALLOWED_SHOP_DOMAINS.split(",") if d.strip()]

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    return Settings()

settings = get_settings()
