"""Shared test fixtures for the sticker exchange test suite.

Provides:
    - One in-memory network (repositories, backlink index, directory, profiles)
    - A freshly generated issuer key trusted by every participant
    - Factory for per-participant runtimes (alice, bob, carol)
    - A helper to mint sealed stickers straight into a repository
"""

from __future__ import annotations

import random

import pytest
import pytest_asyncio

from sticker_exchange.config import Settings
from sticker_exchange.domain.enums import Collection
from sticker_exchange.infrastructure.memory import (
    InMemoryBacklinkIndex,
    InMemoryRepositoryStorage,
    StaticDirectory,
    StaticProfiles,
)
from sticker_exchange.runtime import build_runtime
from sticker_exchange.schemas.records import SealInfo, Sticker, StoredRecord
from sticker_exchange.seals.authority import LocalSigningAuthority
from sticker_exchange.seals.keys import IssuerKeypair, generate_keypair
from tests.factories import ALICE, BOB, CAROL, CDN, HUB, HUB_HANDLE, avatar_of


# ---------------------------------------------------------------------------
# Network Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def issuer() -> IssuerKeypair:
    """A throwaway issuer key; every runtime in a test trusts it."""
    return generate_keypair()


@pytest.fixture
def settings(issuer: IssuerKeypair) -> Settings:
    return Settings(
        _env_file=None,
        trusted_issuers=issuer.did(),
        hub_handle=HUB_HANDLE,
        cdn_image_template=CDN,
    )


@pytest.fixture
def storage() -> InMemoryRepositoryStorage:
    return InMemoryRepositoryStorage()


@pytest.fixture
def backlinks(storage: InMemoryRepositoryStorage) -> InMemoryBacklinkIndex:
    return InMemoryBacklinkIndex(storage)


@pytest.fixture
def directory() -> StaticDirectory:
    return StaticDirectory(handles={HUB_HANDLE: HUB})


@pytest.fixture
def profiles() -> StaticProfiles:
    table = StaticProfiles()
    table.add(ALICE, "alice.test", "Alice", avatar_of(ALICE))
    table.add(BOB, "bob.test", "Bob", avatar_of(BOB))
    table.add(CAROL, "carol.test", None, avatar_of(CAROL))
    return table


@pytest.fixture
def authority(issuer: IssuerKeypair) -> LocalSigningAuthority:
    return LocalSigningAuthority(keypair=issuer)


@pytest.fixture
def make_runtime(storage, backlinks, directory, profiles, authority, settings):
    """Build a runtime for a participant; keyword overrides replace collaborators."""

    def factory(did: str, **overrides):
        kwargs = {
            "storage": storage,
            "backlinks": backlinks,
            "directory": directory,
            "profiles": profiles,
            "authority": authority,
            "settings": settings,
            "rng": random.Random(7),
        }
        kwargs.update(overrides)
        return build_runtime(did, **kwargs)

    return factory


@pytest.fixture
def alice(make_runtime):
    return make_runtime(ALICE)


@pytest.fixture
def bob(make_runtime):
    return make_runtime(BOB)


@pytest.fixture
def carol(make_runtime):
    return make_runtime(CAROL)


# ---------------------------------------------------------------------------
# Record Helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def mint(storage: InMemoryRepositoryStorage, authority: LocalSigningAuthority):
    """Write a correctly sealed sticker into `holder`'s repository.

    Usage:
        record = await mint(ALICE, subject=BOB, model="holo")
    """

    async def factory(
        holder: str,
        subject: str | None = None,
        model: str = "default",
        obtained_from: str | None = None,
        shape: str | None = None,
        **fields,
    ) -> StoredRecord:
        subject = subject or holder
        info = SealInfo(
            model=model,
            image=avatar_of(subject),
            obtained_from=obtained_from,
            original_creator=subject,
            shape=shape,
        )
        envelope = await authority.issue(holder, info)
        sticker = Sticker(
            image=avatar_of(subject),
            image_type="avatar",
            subject_did=subject,
            original_owner=subject,
            model=model,
            shape=shape,
            obtained_from=obtained_from,
            signature=envelope.signature,
            signed_payload=envelope.signed_payload,
            **fields,
        )
        return storage.seed(holder, Collection.STICKER, sticker.to_record())

    return factory


@pytest_asyncio.fixture
async def initialised(alice, bob, carol):
    """alice, bob and carol, each with a self sticker and a registry pointer."""
    for runtime in (alice, bob, carol):
        await runtime.collection.init_stickers()
    return alice, bob, carol
