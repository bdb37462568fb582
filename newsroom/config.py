from functools import lru_cache

from pydantic import AliasChoices, Field, HttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    http_timeout: float = Field(15.0, gt=0, alias="HTTP_TIMEOUT")
    http_max_connections: int = Field(20, ge=1, alias="HTTP_MAX_CONNECTIONS")
    http_max_keepalive: int = Field(10, ge=1, alias="HTTP_MAX_KEEPALIVE")
    http_user_agent: str = Field(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        alias="HTTP_USER_AGENT",
    )
    feed_accept: str = Field(
        "application/rss+xml, application/xml, text/xml, application/atom+xml",
        alias="FEED_ACCEPT",
    )

    feed_tier_timeout: float = Field(20.0, gt=0, alias="FEED_TIER_TIMEOUT")
    feed_batch_timeout: float = Field(45.0, gt=0, alias="FEED_BATCH_TIMEOUT")
    feed_fetch_delay: float = Field(0.5, ge=0, alias="FEED_FETCH_DELAY")
    feed_max_items: int = Field(6, ge=1, alias="FEED_MAX_ITEMS")
    feed_proxy_url: str = Field("https://corsproxy.io/?", alias="FEED_PROXY_URL")
    sources_file: str | None = Field(default=None, alias="SOURCES_FILE")

    cache_stale_after: float = Field(7200.0, gt=0, alias="CACHE_STALE_AFTER")
    cache_ttl: float = Field(28800.0, gt=0, alias="CACHE_TTL")
    cache_key: str = Field("dailyNewsData", alias="CACHE_KEY")
    kv_rest_api_url: HttpUrl | None = Field(
        default=None,
        validation_alias=AliasChoices("KV_REST_API_URL", "UPSTASH_REDIS_REST_URL"),
    )
    kv_rest_api_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("KV_REST_API_TOKEN", "UPSTASH_REDIS_REST_TOKEN"),
    )

    update_time_budget: float = Field(600.0, ge=0, alias="UPDATE_TIME_BUDGET")
    update_max_sources: int = Field(8, ge=1, alias="UPDATE_MAX_SOURCES")
    update_batch_size: int = Field(2, ge=1, alias="UPDATE_BATCH_SIZE")
    update_batch_delay: float = Field(1.0, ge=0, alias="UPDATE_BATCH_DELAY")
    update_items_per_feed: int = Field(3, ge=1, alias="UPDATE_ITEMS_PER_FEED")
    update_item_delay: float = Field(0.1, ge=0, alias="UPDATE_ITEM_DELAY")

    ai_base_url: HttpUrl = Field("https://api.deepseek.com", alias="AI_BASE_URL")
    ai_api_key: str | None = Field(
        default=None, validation_alias=AliasChoices("AI_API_KEY", "DEEPSEEK_API_KEY")
    )
    ai_model: str = Field("deepseek-chat", alias="AI_MODEL")
    ai_timeout: float = Field(30.0, gt=0, alias="AI_TIMEOUT")
    ai_enrich_timeout: float = Field(15.0, gt=0, alias="AI_ENRICH_TIMEOUT")
    ai_rate_limit_backoff: float = Field(60.0, ge=0, alias="AI_RATE_LIMIT_BACKOFF")

    cron_secret: str | None = Field(default=None, alias="CRON_SECRET")

    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_format: str = Field("json", alias="LOG_FORMAT")

    @property
    def persistence_enabled(self) -> bool:
        return bool(self.kv_rest_api_url and self.kv_rest_api_token)


@lru_cache
def get_settings() -> Settings:
    return Settings()
