"""Collaborator implementations: HTTP clients, in-memory stand-ins and caches."""

from sticker_exchange.infrastructure.appview import AppViewClient
from sticker_exchange.infrastructure.backlinks import ConstellationClient, collect_backlinks
from sticker_exchange.infrastructure.caches import MemoCache, ProtocolCaches
from sticker_exchange.infrastructure.directory import PlcDirectoryResolver
from sticker_exchange.infrastructure.memory import (
    InMemoryBacklinkIndex,
    InMemoryRepositoryStorage,
    StaticDirectory,
    StaticProfiles,
)
from sticker_exchange.infrastructure.paging import iter_records, list_all_records
from sticker_exchange.infrastructure.xrpc import RepositorySession, XrpcRepositoryClient

__all__ = [
    "AppViewClient",
    "ConstellationClient",
    "InMemoryBacklinkIndex",
    "InMemoryRepositoryStorage",
    "MemoCache",
    "PlcDirectoryResolver",
    "ProtocolCaches",
    "RepositorySession",
    "StaticDirectory",
    "StaticProfiles",
    "XrpcRepositoryClient",
    "collect_backlinks",
    "iter_records",
    "list_all_records",
]
