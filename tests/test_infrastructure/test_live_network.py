"""Integration tests for the collaborator clients against the REAL network.

These tests hit the public PLC directory, the Bluesky AppView and the
Constellation backlink index. They require outbound network access and:
    - STICKER_LIVE_TESTS=1 set in the environment

Run with:
    STICKER_LIVE_TESTS=1 uv run pytest tests/test_infrastructure/test_live_network.py -v -s

These are marked with @pytest.mark.integration so they can be skipped
in CI with: pytest -m "not integration"
"""

from __future__ import annotations

import os

import pytest

from sticker_exchange.config import Settings
from sticker_exchange.infrastructure.appview import AppViewClient
from sticker_exchange.infrastructure.backlinks import ConstellationClient
from sticker_exchange.infrastructure.directory import PlcDirectoryResolver
from sticker_exchange.infrastructure.http_client import build_http_client
from sticker_exchange.seals.keys import DID_KEY_PREFIX

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(
        os.environ.get("STICKER_LIVE_TESTS") != "1", reason="STICKER_LIVE_TESTS not set"
    ),
]


@pytest.fixture
def live_settings() -> Settings:
    return Settings(_env_file=None)


class TestLiveDirectory:
    @pytest.mark.asyncio
    async def test_hub_handle_resolves_to_a_full_identity(self, live_settings) -> None:
        async with build_http_client(live_settings.http_timeout_seconds) as http:
            directory = PlcDirectoryResolver(
                http, live_settings.directory_url, live_settings.appview_url
            )
            hub = await directory.resolve_handle(live_settings.hub_handle)
            endpoint = await directory.resolve_endpoint(hub)
            key = await directory.resolve_signing_key(hub)

        print(f"\n  hub: {hub}\n  endpoint: {endpoint}\n  key: {key[:32]}...")
        assert hub.startswith("did:")
        assert endpoint.startswith("https://")
        assert key.startswith(DID_KEY_PREFIX)


class TestLiveAppView:
    @pytest.mark.asyncio
    async def test_hub_profile_is_readable(self, live_settings) -> None:
        async with build_http_client(live_settings.http_timeout_seconds) as http:
            directory = PlcDirectoryResolver(
                http, live_settings.directory_url, live_settings.appview_url
            )
            hub = await directory.resolve_handle(live_settings.hub_handle)
            profile = await AppViewClient(http, live_settings.appview_url).get_profile(hub)

        assert profile is not None
        assert profile.did == hub


class TestLiveBacklinks:
    @pytest.mark.asyncio
    async def test_query_returns_a_page(self, live_settings) -> None:
        async with build_http_client(live_settings.http_timeout_seconds) as http:
            directory = PlcDirectoryResolver(
                http, live_settings.directory_url, live_settings.appview_url
            )
            hub = await directory.resolve_handle(live_settings.hub_handle)
            client = ConstellationClient(http, live_settings.backlink_index_url)
            page = await client.get_backlinks(
                f"at://{hub}", "app.bsky.graph.follow:subject", limit=5
            )

        print(f"\n  backlinks: {len(page.records)} cursor={page.cursor}")
        assert len(page.records) <= 5
