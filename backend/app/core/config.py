from functools import lru_cache
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_GOLDSKY_PROJECT = "https://api.goldsky.com/api/public/project_cmd7nwdt58hqk01yf3ekxeozd/subgraphs"

DEFAULT_INDEXER_ENDPOINTS: dict[str, str] = {
    "bounty": f"{_GOLDSKY_PROJECT}/FlashBounty/1.0.0/gn",
    "study_fund": f"{_GOLDSKY_PROJECT}/FlashStudy/1.0.0/gn",
    "expense_group": f"{_GOLDSKY_PROJECT}/FS/1.0.0/gn",
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    debug: bool = Field(False, description="Enable FastAPI debug mode")
    environment: str = Field(
        default="development",
        description="Runtime environment (development|staging|production)",
    )
    indexer_endpoints: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_INDEXER_ENDPOINTS),
        description="GraphQL endpoint of the indexer keyed by domain name",
    )
    indexer_page_size: int = Field(
        1000,
        description="Number of records requested per event-kind page",
        ge=1,
        le=1000,
    )
    indexer_max_records: int = Field(
        10_000,
        description=(
            "Upper bound of records fetched per event kind; exceeding it fails the "
            "projection instead of silently truncating"
        ),
        ge=1,
    )
    indexer_timeout_seconds: float = Field(
        10.0, description="HTTP timeout applied to every indexer request", gt=0
    )
    indexer_max_concurrency: int = Field(
        default=4,
        description="Number of event-kind fetches issued concurrently per domain",
        ge=1,
    )
    projection_timeout_seconds: float = Field(
        default=30.0,
        description="Overall deadline for fetching every event kind of one domain",
        gt=0,
    )

    @field_validator("indexer_endpoints", mode="before")
    @classmethod
    def _merge_endpoint_overrides(cls, value: Any) -> dict[str, str]:
        if value in (None, "", {}):
            return dict(DEFAULT_INDEXER_ENDPOINTS)
        if not isinstance(value, dict):
            raise ValueError("INDEXER_ENDPOINTS must be a mapping of domain name to URL")
        merged = dict(DEFAULT_INDEXER_ENDPOINTS)
        for domain, url in value.items():
            url_str = str(url).strip()
            if not url_str.startswith(("http://", "https://")):
                raise ValueError(
                    f"Indexer endpoint for '{domain}' must be an http(s) URL"
                )
            merged[str(domain)] = url_str
        return merged


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
