"""Tests for the in-memory collaborators the simulation and services tests run on."""

from __future__ import annotations

import pytest

from sticker_exchange.domain.exceptions import (
    BacklinkIndexError,
    RecordNotFoundError,
    StorageError,
)
from sticker_exchange.infrastructure.caches import MemoCache
from sticker_exchange.infrastructure.memory import (
    InMemoryBacklinkIndex,
    InMemoryRepositoryStorage,
)
from sticker_exchange.infrastructure.paging import list_all_records
from tests.factories import ALICE, BOB


class TestInMemoryRepositoryStorage:
    @pytest.mark.asyncio
    async def test_listing_is_newest_first_and_paged(self) -> None:
        storage = InMemoryRepositoryStorage()
        for n in range(5):
            await storage.create_record(ALICE, "c", {"n": n})

        page = await storage.list_records(ALICE, "c", limit=2)
        assert [r.value["n"] for r in page.records] == [4, 3]
        everything = await list_all_records(storage, ALICE, "c", page_size=2)
        assert [r.value["n"] for r in everything] == [4, 3, 2, 1, 0]

    @pytest.mark.asyncio
    async def test_get_missing(self) -> None:
        storage = InMemoryRepositoryStorage()
        with pytest.raises(RecordNotFoundError):
            await storage.get_record(ALICE, "c", "nope")

    @pytest.mark.asyncio
    async def test_swap_protects_concurrent_update(self) -> None:
        storage = InMemoryRepositoryStorage()
        created = await storage.create_record(ALICE, "c", {"v": 1})
        rkey = created.ref.rkey
        updated = await storage.put_record(ALICE, "c", rkey, {"v": 2}, swap_cid=created.cid)
        assert updated.cid != created.cid

        with pytest.raises(StorageError, match="InvalidSwap"):
            await storage.put_record(ALICE, "c", rkey, {"v": 3}, swap_cid=created.cid)

    @pytest.mark.asyncio
    async def test_unreachable_repo(self) -> None:
        storage = InMemoryRepositoryStorage()
        storage.unreachable.add(BOB)
        with pytest.raises(StorageError):
            await storage.list_records(BOB, "c")

    @pytest.mark.asyncio
    async def test_returned_values_are_copies(self) -> None:
        storage = InMemoryRepositoryStorage()
        created = await storage.create_record(ALICE, "c", {"items": [1]})
        created.value["items"].append(2)
        fetched = await storage.get_record(ALICE, "c", created.ref.rkey)
        assert fetched.value == {"items": [1]}

    @pytest.mark.asyncio
    async def test_write_log(self) -> None:
        storage = InMemoryRepositoryStorage()
        storage.seed(BOB, "c", {})
        created = await storage.create_record(ALICE, "c", {})
        await storage.delete_record(ALICE, "c", created.ref.rkey)
        assert storage.write_count() == 2
        assert storage.write_count(BOB) == 0


class TestInMemoryBacklinkIndex:
    @pytest.mark.asyncio
    async def test_dotted_path_and_lag(self) -> None:
        storage = InMemoryRepositoryStorage()
        index = InMemoryBacklinkIndex(storage, hydrate=True)
        first = storage.seed(ALICE, "like", {"subject": {"uri": "at://x/y/z"}})
        second = storage.seed(BOB, "like", {"subject": {"uri": "at://x/y/z"}})
        storage.seed(BOB, "like", {"subject": {"uri": "at://other/y/z"}})
        index.lagging.add(second.uri)

        page = await index.get_backlinks("at://x/y/z", "like:subject.uri")
        assert [link.uri for link in page.records] == [first.uri]
        assert page.records[0].value == {"subject": {"uri": "at://x/y/z"}}

    @pytest.mark.asyncio
    async def test_unavailable(self) -> None:
        index = InMemoryBacklinkIndex(InMemoryRepositoryStorage())
        index.available = False
        with pytest.raises(BacklinkIndexError):
            await index.get_backlinks("s", "c:p")


class TestMemoCache:
    @pytest.mark.asyncio
    async def test_only_successful_loads_are_remembered(self) -> None:
        cache: MemoCache[str, str] = MemoCache("test")
        loads = 0

        async def missing() -> None:
            nonlocal loads
            loads += 1

        async def found() -> str:
            nonlocal loads
            loads += 1
            return "value"

        assert await cache.get_or_load("k", missing) is None
        assert await cache.get_or_load("k", found) == "value"
        assert await cache.get_or_load("k", found) == "value"
        assert loads == 2
        assert "k" in cache

        cache.reset()
        assert len(cache) == 0
