"""
Configuration management for the chat proxy.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "storefront-chat"
    app_env: str = Field(default="development", alias="APP_ENV")
    debug: bool = Field(default=False, alias="DEBUG")
    server_port: int = Field(default=3000, alias="PORT")

    # Assistants API
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    openai_base_url: str = Field(default="https://api.openai.com/v1", alias="OPENAI_BASE_URL")
    assistant_id: str = Field(default="", alias="ASSISTANT_ID")
    http_timeout_seconds: float = Field(default=30.0, alias="HTTP_TIMEOUT")

    # CORS（只允许店铺域名）
    allowed_origins: list[str] = Field(
        default=[
            "https://a421cf-3c.myshopify.com",
            "https://behedone.com",
        ],
        alias="ALLOWED_ORIGINS",
    )

    # Policy lookup
    store_url: str = Field(default="https://behedone.com", alias="STORE_URL")
    store_name: str = Field(default="HEDØNE", alias="STORE_NAME")
    policy_lookup_strategy: Literal["search", "scrape"] = Field(
        default="search",
        alias="POLICY_LOOKUP_STRATEGY",
    )
    search_model: str = Field(default="gpt-4o-mini", alias="OPENAI_MODEL_SEARCH")
    policy_content_selector: str = Field(
        default=".shopify-policy__body .rte",
        alias="POLICY_CONTENT_SELECTOR",
    )

    # Run lifecycle
    poll_interval_seconds: float = Field(default=1.0, alias="RUN_POLL_INTERVAL")
    run_timeout_seconds: float = Field(default=60.0, alias="RUN_TIMEOUT")
    max_tool_rounds: int = Field(default=1, ge=0, alias="MAX_TOOL_ROUNDS")
    disconnect_check_interval_seconds: float = Field(
        default=0.5,
        alias="DISCONNECT_CHECK_INTERVAL",
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True

    def policy_url(self, slug: str) -> str:
        """Absolute URL of a store policy page, e.g. ``shipping-policy``."""
        return f"{self.store_url.rstrip('/')}/policies/{slug}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
