"""Wiring of the exchange services for one participant.

Usage:
    from sticker_exchange.runtime import connect
    from sticker_exchange.infrastructure.xrpc import RepositorySession

    session = RepositorySession(did=..., endpoint=..., access_token=...)
    async with connect(session) as runtime:
        await runtime.collection.init_stickers()
        offers = await runtime.discovery.get_incoming_offers()

Tests and the simulation call `build_runtime` directly with the in-memory
collaborators.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sticker_exchange.config import Settings, get_settings
from sticker_exchange.infrastructure.appview import AppViewClient
from sticker_exchange.infrastructure.backlinks import ConstellationClient
from sticker_exchange.infrastructure.caches import ProtocolCaches
from sticker_exchange.infrastructure.directory import PlcDirectoryResolver
from sticker_exchange.infrastructure.http_client import build_http_client
from sticker_exchange.infrastructure.xrpc import XrpcRepositoryClient
from sticker_exchange.logging_config import party_context
from sticker_exchange.seals.authority import HttpSigningAuthority
from sticker_exchange.seals.engine import SealEngine
from sticker_exchange.services.collection_service import CollectionService
from sticker_exchange.services.discovery import OfferDiscovery
from sticker_exchange.services.exchange_service import ExchangeService
from sticker_exchange.services.matcher import ExchangeMatcher
from sticker_exchange.services.registry import RegistryService

if TYPE_CHECKING:
    import random
    from collections.abc import AsyncIterator

    from sticker_exchange.domain.protocols import (
        BacklinkIndex,
        DirectoryResolver,
        ProfileLookup,
        RecordReader,
        RepositoryStorage,
        SigningAuthority,
    )
    from sticker_exchange.infrastructure.xrpc import RepositorySession


@dataclass(frozen=True)
class ExchangeRuntime:
    """Every service of one participant, sharing one set of caches."""

    did: str
    caches: ProtocolCaches
    seals: SealEngine
    registry: RegistryService
    collection: CollectionService
    exchange: ExchangeService
    matcher: ExchangeMatcher
    discovery: OfferDiscovery


def build_runtime(
    did: str,
    *,
    storage: RepositoryStorage,
    backlinks: BacklinkIndex,
    directory: DirectoryResolver,
    profiles: ProfileLookup,
    authority: SigningAuthority | None = None,
    settings: Settings | None = None,
    caches: ProtocolCaches | None = None,
    fallback: RecordReader | None = None,
    rng: random.Random | None = None,
) -> ExchangeRuntime:
    settings = settings or get_settings()
    caches = caches or ProtocolCaches()

    seals = SealEngine(
        directory=directory,
        caches=caches,
        trusted_issuers=settings.trusted_issuer_set,
        cdn_image_template=settings.cdn_image_template,
        authority=authority,
    )
    registry = RegistryService(
        did,
        storage,
        backlinks,
        directory,
        caches,
        hub_handle=settings.hub_handle,
        page_size=settings.transaction_page_size,
        backlink_page_size=settings.backlink_page_size,
    )
    collection = CollectionService(
        did,
        storage,
        backlinks,
        seals,
        profiles,
        caches,
        registry,
        page_size=settings.sticker_page_size,
        backlink_page_size=settings.backlink_page_size,
    )
    exchange = ExchangeService(
        did,
        storage,
        backlinks,
        seals,
        collection,
        profiles,
        page_size=settings.transaction_page_size,
        backlink_page_size=settings.backlink_page_size,
    )
    matcher = ExchangeMatcher(
        did,
        registry,
        storage,
        backlinks,
        collection,
        rng=rng,
        search_limit=settings.match_search_limit,
        concurrency=settings.match_concurrency,
        probe_timeout=settings.match_probe_timeout_seconds,
        page_size=settings.transaction_page_size,
        backlink_page_size=settings.backlink_page_size,
    )
    discovery = OfferDiscovery(
        did,
        storage,
        backlinks,
        seals,
        profiles,
        fallback=fallback,
        page_size=settings.transaction_page_size,
        backlink_page_size=settings.backlink_page_size,
    )
    return ExchangeRuntime(
        did=did,
        caches=caches,
        seals=seals,
        registry=registry,
        collection=collection,
        exchange=exchange,
        matcher=matcher,
        discovery=discovery,
    )


@asynccontextmanager
async def connect(
    session: RepositorySession, settings: Settings | None = None
) -> AsyncIterator[ExchangeRuntime]:
    """Build a runtime over the live network collaborators.

    Log entries emitted inside the block carry `party=session.did`.
    """
    settings = settings or get_settings()
    with party_context(session.did):
        async with build_http_client(settings.http_timeout_seconds) as http:
            caches = ProtocolCaches()
            directory = PlcDirectoryResolver(http, settings.directory_url, settings.appview_url)
            appview = AppViewClient(http, settings.appview_url)
            yield build_runtime(
                session.did,
                storage=XrpcRepositoryClient(http, directory, caches, session),
                backlinks=ConstellationClient(http, settings.backlink_index_url),
                directory=directory,
                profiles=appview,
                authority=HttpSigningAuthority(settings.signing_authority_url, http),
                settings=settings,
                caches=caches,
                fallback=appview,
            )
