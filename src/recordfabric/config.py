# recordfabric/config.py
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .types import PostRequestHook, PreRequestHook, StoreFetch

JSONAPI_MEDIA_TYPE = "application/vnd.api+json"


class ClientSettings(BaseSettings):
    """
    Manages user-configurable settings for recordfabric stores and transports,
    primarily loaded from environment variables (prefixed ``RECORDFABRIC_``)
    or a .env file.

    One settings instance is the single configuration value for a store: the
    transport reads its HTTP behavior from it and the store reads its cache
    behavior and store-fetch strategy from the transport's settings.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "secrets.env"),
        env_file_encoding="utf-8",
        env_prefix="RECORDFABRIC_",
        extra="ignore",
        case_sensitive=False,
        arbitrary_types_allowed=True,
    )

    # --- Server Settings ---
    base_url: str = Field(
        default="", description="Prefix for relative endpoints and request URLs"
    )
    default_headers: dict[str, str] = Field(
        default_factory=lambda: {"content-type": JSONAPI_MEDIA_TYPE},
        description="Headers sent with every request; per-request headers win",
    )

    # --- Client Behavior Settings ---
    request_timeout: float = Field(
        default=30.0, description="Default request timeout in seconds"
    )
    max_retries: int = Field(
        default=0,
        description="Retries for network failures and retryable statuses (0 disables)",
    )
    backoff_factor: float = Field(
        default=0.5, description="Backoff factor for retries (seconds)"
    )
    user_agent: str = Field(
        default="recordfabric/0.1.0",
        description="User-Agent header for requests",
    )

    # --- Caching Settings ---
    enable_caching: bool = Field(
        default=True, description="De-duplicate fetch/fetch_all/request calls"
    )
    cache_max_size: int = Field(
        default=1024, description="Maximum number of cached requests per store"
    )
    cache_ttl_seconds: int | None = Field(
        default=None,
        description="Expire cached requests after this many seconds (None keeps them until invalidated)",
    )

    # --- Strategy and Hook Settings ---
    store_fetch: StoreFetch | None = Field(
        default=None,
        description="Replacement for the default store-fetch strategy.",
    )
    pre_request_hooks: list[PreRequestHook] = Field(
        default_factory=list,
        description="List of hooks to call before a request is made.",
    )
    post_request_hooks: list[PostRequestHook] = Field(
        default_factory=list,
        description="List of hooks to call after a response is received and parsed.",
    )


@lru_cache
def get_settings() -> ClientSettings:
    """
    Provides the process-wide default settings.

    Settings are loaded from environment variables or .env/secrets.env files.
    The instance is cached; call ``get_settings.cache_clear()`` to reload it
    (for example between tests).

    Returns:
        ClientSettings: The default settings instance.
    """
    return ClientSettings()
