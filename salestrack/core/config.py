from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="ST_", extra="ignore")

    app_name: str = "SaleStrack"
    log_level: str = "INFO"

    # Shared with companion readers (summary command, widgets); keep it on a common path.
    cache_database_url: str = "sqlite+pysqlite:///./salestrack-cache.db"

    lemonsqueezy_base_url: str = "https://api.lemonsqueezy.com/v1"
    gumroad_base_url: str = "https://api.gumroad.com/v2"
    stripe_base_url: str = "https://api.stripe.com/v1"
    http_timeout_seconds: int = 30
    orders_page_size: int = Field(default=100, ge=1, le=100)

    lemonsqueezy_api_key: str | None = None
    gumroad_api_key: str | None = None
    stripe_api_key: str | None = None

    timezone: str | None = Field(
        default=None,
        description="IANA zone for day/month buckets; unset means the system local zone",
    )

    demo_mode: bool = False
    demo_fixture_path: Path | None = None

    def model_post_init(self, __context) -> None:
        if self.demo_mode and self.demo_fixture_path is None:
            raise ValueError("demo mode requires ST_DEMO_FIXTURE_PATH")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
