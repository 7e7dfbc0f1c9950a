"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. The exchange services, the
collaborator clients and the signing-authority HTTP service all read from
the same Settings object.

Usage:
    from sticker_exchange.config import get_settings
    settings = get_settings()
    print(settings.backlink_index_url)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the sticker exchange."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True
    app_log_level: str = "DEBUG"
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # --- Registry ("hub") ---
    hub_handle: str = "suibari.com"

    # --- Collaborator endpoints ---
    directory_url: str = "https://plc.directory"
    backlink_index_url: str = "https://constellation.microcosm.blue"
    appview_url: str = "https://public.api.bsky.app"
    signing_authority_url: str = "http://localhost:8000"
    http_timeout_seconds: float = 10.0

    # Blob references are served by the CDN under the minting repo's DID.
    cdn_image_template: str = (
        "https://cdn.bsky.app/img/feed_fullsize/plain/{did}/{cid}@jpeg"
    )

    # --- Seals ---
    # Only read by the signing-authority service. Never set on clients.
    issuer_private_key_hex: str = ""
    trusted_issuers: str = "did:key:zQ3shfXiLQXAAsFs11dKdVErBus4vUZ6vGeJ9Eo5BGV7Z6379"

    # --- Matching ---
    match_search_limit: int = 200
    match_concurrency: int = 10
    match_probe_timeout_seconds: float = 5.0

    # --- Paging ---
    transaction_page_size: int = 50
    sticker_page_size: int = 100
    backlink_page_size: int = 100

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def trusted_issuer_set(self) -> frozenset[str]:
        """Parse comma-separated trusted issuer DIDs into a set."""
        return frozenset(i.strip() for i in self.trusted_issuers.split(",") if i.strip())


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
