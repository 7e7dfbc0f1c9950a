"""Identities and record accessors shared across the test suite."""

from __future__ import annotations

from sticker_exchange.domain.enums import Collection
from sticker_exchange.domain.exceptions import SigningError
from sticker_exchange.infrastructure.memory import InMemoryRepositoryStorage

ALICE = "did:plc:alice7xq3mf2lzkq4p6v5y"
BOB = "did:plc:bob2hd7w4ksq1xv8n3c9t"
CAROL = "did:plc:carol5gz8pe6rj2m4k7b1"
HUB = "did:plc:hub9w3yq6tn5vx2k8d4mr"
HUB_HANDLE = "hub.stickers.test"
CDN = "https://cdn.test/img/{did}/{cid}@jpeg"


def avatar_of(did: str) -> str:
    return f"https://cdn.test/avatar/{did}.jpg"


def transactions(storage: InMemoryRepositoryStorage, did: str) -> list[dict]:
    """Transaction values of `did`, oldest first."""
    return storage.values(did, Collection.TRANSACTION)


def stickers(storage: InMemoryRepositoryStorage, did: str) -> list[dict]:
    """Sticker values of `did`, oldest first."""
    return storage.values(did, Collection.STICKER)


class FailingAuthority:
    """SigningAuthority whose service is down."""

    def __init__(self) -> None:
        self.calls = 0

    async def issue(self, holder: str, info):
        self.calls += 1
        raise SigningError("Sign API error: HTTP 503")


async def own_sticker_uris(runtime) -> list[str]:
    """URIs of every verified sticker the runtime's party holds."""
    return [item.uri for item in await runtime.collection.get_user_stickers(runtime.did)]
