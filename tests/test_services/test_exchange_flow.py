"""End-to-end exchanges across three participants on one in-memory network."""

from __future__ import annotations

import pytest

from sticker_exchange.domain.enums import TransactionStatus
from tests.factories import ALICE, BOB, CAROL, own_sticker_uris, transactions


def subjects(items) -> set[str]:
    return {item.sticker.subject_did for item in items}


class TestDirectedExchange:
    @pytest.mark.asyncio
    async def test_discover_accept_resolve(self, initialised, storage) -> None:
        alice, bob, _ = initialised

        await alice.exchange.create_offer(await own_sticker_uris(alice), partner=BOB)
        [incoming] = await bob.discovery.get_incoming_offers()
        await bob.exchange.accept_offer(
            incoming.partner, await own_sticker_uris(bob), offer_ref=incoming.offer_ref
        )
        await alice.exchange.resolve_pending()

        assert subjects(await alice.collection.get_user_stickers(ALICE)) == {ALICE, BOB}
        assert subjects(await bob.collection.get_user_stickers(BOB)) == {ALICE, BOB}
        assert transactions(storage, ALICE)[0]["status"] == TransactionStatus.COMPLETED
        assert await bob.discovery.get_incoming_offers() == []


class TestEasyExchange:
    @pytest.mark.asyncio
    async def test_match_accept_resolve(self, initialised, storage) -> None:
        alice, bob, carol = initialised
        await bob.exchange.create_offer(await own_sticker_uris(bob), anonymous=True)

        my_items = await alice.collection.get_user_stickers(ALICE)
        match = await alice.matcher.find_partner([item.sticker for item in my_items])
        assert match.did == BOB

        await alice.exchange.accept_offer(
            match.did, [item.uri for item in my_items], offer_ref=match.offer_ref
        )
        [resolution] = await bob.exchange.resolve_pending()

        assert resolution.partner == ALICE
        assert subjects(await bob.collection.get_user_stickers(BOB)) == {ALICE, BOB}
        assert subjects(await alice.collection.get_user_stickers(ALICE)) == {ALICE, BOB}

        # The offer is taken; carol finds nobody.
        carol_items = await carol.collection.get_user_stickers(CAROL)
        assert await carol.matcher.find_partner([i.sticker for i in carol_items]) is None

    @pytest.mark.asyncio
    async def test_reciprocal_items_are_not_duplicated(self, initialised, storage) -> None:
        alice, bob, _ = initialised
        for _ in range(2):
            await alice.exchange.create_offer(await own_sticker_uris(alice), partner=BOB)
            await bob.exchange.accept_offer(ALICE, [])
            await alice.exchange.resolve_pending()

        held = await bob.collection.get_user_stickers(BOB)
        assert [item.sticker.subject_did for item in held].count(ALICE) == 1
