"""Process-scoped memo caches.

Every lookup that is memoised (issuer public keys, repository endpoints,
the registry identity, item identity -> canonical copy) lives in a
`ProtocolCaches` object that is created once per runtime and passed to the
services that need it. Entries are never invalidated because the cached
facts are immutable once minted; `reset()` exists for tests and for a
runtime that switches networks.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from sticker_exchange.domain.refs import StickerIdentity
from sticker_exchange.schemas.records import StrongRef

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class MemoCache(Generic[K, V]):
    """A small dictionary cache that only remembers successful loads."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._entries: dict[K, V] = {}

    def get(self, key: K) -> V | None:
        return self._entries.get(key)

    def set(self, key: K, value: V) -> None:
        self._entries[key] = value

    async def get_or_load(self, key: K, loader: Callable[[], Awaitable[V | None]]) -> V | None:
        """Return the cached value, or await `loader` and cache a non-None result."""
        if key in self._entries:
            return self._entries[key]
        value = await loader()
        if value is not None:
            self._entries[key] = value
        return value

    def reset(self) -> None:
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class ProtocolCaches:
    issuer_keys: MemoCache[str, str] = field(default_factory=lambda: MemoCache("issuer_keys"))
    endpoints: MemoCache[str, str] = field(default_factory=lambda: MemoCache("endpoints"))
    registry: MemoCache[str, str] = field(default_factory=lambda: MemoCache("registry"))
    canonical_locations: MemoCache[StickerIdentity, StrongRef] = field(
        default_factory=lambda: MemoCache("canonical_locations")
    )

    def reset(self) -> None:
        for cache in (self.issuer_keys, self.endpoints, self.registry, self.canonical_locations):
            cache.reset()
