"""Tests for registry membership and account data deletion."""

from __future__ import annotations

import pytest

from sticker_exchange.domain.enums import Collection
from sticker_exchange.domain.exceptions import DirectoryResolutionError
from sticker_exchange.domain.refs import profile_ref
from sticker_exchange.infrastructure.memory import StaticDirectory
from sticker_exchange.schemas.records import Config
from tests.factories import ALICE, BOB, CAROL, HUB, stickers, transactions


class TestHubIdentity:
    @pytest.mark.asyncio
    async def test_resolved_once_per_runtime(self, alice, directory) -> None:
        assert await alice.registry.get_hub_did() == HUB
        assert await alice.registry.hub_ref() == profile_ref(HUB)
        assert directory.handle_lookups == 1

    @pytest.mark.asyncio
    async def test_unknown_handle(self, make_runtime) -> None:
        alice = make_runtime(ALICE, directory=StaticDirectory())
        with pytest.raises(DirectoryResolutionError):
            await alice.registry.get_hub_did()


class TestMembership:
    @pytest.mark.asyncio
    async def test_ensure_hub_ref_is_idempotent(self, alice, storage) -> None:
        assert await alice.registry.ensure_hub_ref() is True
        assert await alice.registry.ensure_hub_ref() is False
        assert len(storage.values(ALICE, Collection.CONFIG)) == 1

    @pytest.mark.asyncio
    async def test_members_are_deduplicated(self, initialised, storage) -> None:
        alice, _, _ = initialised
        storage.seed(BOB, Collection.CONFIG, Config(hub_ref=profile_ref(HUB)).to_record())
        other_hub = {"hubRef": profile_ref("did:plc:otherhub")}
        storage.seed(BOB, Collection.CONFIG, other_hub)
        assert await alice.registry.get_hub_members() == [ALICE, BOB, CAROL]


class TestDeleteAllData:
    @pytest.mark.asyncio
    async def test_wipes_owned_collections(self, initialised, storage) -> None:
        alice, bob, _ = initialised
        await alice.exchange.create_offer(
            [item.uri for item in await alice.collection.get_user_stickers(ALICE)], partner=BOB
        )
        [bob_item] = await bob.collection.get_user_stickers(BOB)
        like_uri = await alice.collection.toggle_like(bob_item)

        deleted = await alice.registry.delete_all_data()

        assert deleted == 3
        assert stickers(storage, ALICE) == []
        assert transactions(storage, ALICE) == []
        assert storage.values(ALICE, Collection.CONFIG) == []
        # Likes live on other people's items and are kept.
        assert [v["subject"]["uri"] for v in storage.values(ALICE, Collection.STICKER_LIKE)] == [
            bob_item.uri
        ]
        assert like_uri is not None
        assert len(stickers(storage, BOB)) == 1
