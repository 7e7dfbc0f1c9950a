"""Exchange Matcher — finds a partner for an anonymous ("easy") exchange.

Registry members are probed concurrently for an open anonymous offer that
nobody has completed yet. A candidate holding none of the seeker's offered
items is a perfect match and ends the search immediately; otherwise the
qualifying candidate earliest in the shuffled pool wins.

Matching is best effort. Two seekers can pick the same offer at the same
time; the double-booking guard only sees answers the backlink index has
already indexed.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pydantic import ValidationError

from sticker_exchange.domain.enums import BacklinkSource, Collection, TransactionStatus
from sticker_exchange.domain.exceptions import ExchangeError, StorageError
from sticker_exchange.infrastructure.backlinks import collect_backlinks
from sticker_exchange.infrastructure.paging import iter_records
from sticker_exchange.logging_config import get_logger
from sticker_exchange.services.exchange_service import parse_transaction

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from sticker_exchange.domain.protocols import BacklinkIndex, RepositoryStorage
    from sticker_exchange.domain.refs import RecordRef, StickerIdentity
    from sticker_exchange.schemas.records import Backlink, Sticker, Transaction
    from sticker_exchange.services.collection_service import CollectionService
    from sticker_exchange.services.registry import RegistryService

logger = get_logger(__name__)


@dataclass(frozen=True)
class MatchCandidate:
    did: str
    offer_ref: RecordRef
    offer: Transaction
    is_perfect: bool


class ExchangeMatcher:
    """Searches registry members for an open anonymous offer."""

    def __init__(
        self,
        did: str,
        registry: RegistryService,
        storage: RepositoryStorage,
        backlinks: BacklinkIndex,
        collection: CollectionService,
        rng: random.Random | None = None,
        search_limit: int = 200,
        concurrency: int = 10,
        probe_timeout: float = 5.0,
        page_size: int = 50,
        backlink_page_size: int = 100,
    ) -> None:
        self._did = did
        self._registry = registry
        self._storage = storage
        self._backlinks = backlinks
        self._collection = collection
        self._rng = rng or random.Random()
        self._search_limit = search_limit
        self._concurrency = concurrency
        self._probe_timeout = probe_timeout
        self._page_size = page_size
        self._backlink_page_size = backlink_page_size

    async def find_partner(
        self,
        offered_items: Sequence[Sticker],
        excluded: Iterable[str] = (),
    ) -> MatchCandidate | None:
        """Return the best candidate for exchanging `offered_items`, or None."""
        try:
            members = await self._registry.get_hub_members()
        except ExchangeError as exc:
            logger.warning("matcher.registry_unavailable", error=exc.message)
            return None

        skip = {self._did, *excluded}
        pool = [member for member in dict.fromkeys(members) if member not in skip]
        self._rng.shuffle(pool)
        pool = pool[: self._search_limit]
        if not pool:
            logger.info("matcher.empty_pool")
            return None

        offered = {item.identity for item in offered_items}
        semaphore = asyncio.Semaphore(self._concurrency)
        tasks = [
            asyncio.create_task(self._guarded_probe(candidate, offered, semaphore))
            for candidate in pool
        ]

        qualified: dict[str, MatchCandidate] = {}
        try:
            for finished in asyncio.as_completed(tasks):
                candidate = await finished
                if candidate is None:
                    continue
                if candidate.is_perfect:
                    logger.info(
                        "matcher.perfect_match",
                        partner=candidate.did,
                        offer_uri=candidate.offer_ref.uri,
                    )
                    return candidate
                qualified[candidate.did] = candidate
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        for member in pool:
            if member in qualified:
                logger.info("matcher.fallback_match", partner=member, probed=len(pool))
                return qualified[member]
        logger.info("matcher.no_match", probed=len(pool))
        return None

    async def _guarded_probe(
        self,
        candidate: str,
        offered: set[StickerIdentity],
        semaphore: asyncio.Semaphore,
    ) -> MatchCandidate | None:
        async with semaphore:
            try:
                return await asyncio.wait_for(
                    self._probe(candidate, offered), timeout=self._probe_timeout
                )
            except TimeoutError:
                logger.debug("matcher.probe_timeout", candidate=candidate)
            except (ExchangeError, ValidationError) as exc:
                logger.debug("matcher.probe_failed", candidate=candidate, error=str(exc))
        return None

    async def _probe(
        self, candidate: str, offered: set[StickerIdentity]
    ) -> MatchCandidate | None:
        async for record in iter_records(
            self._storage, candidate, Collection.TRANSACTION, page_size=self._page_size
        ):
            offer = parse_transaction(record.value)
            if offer is None or not offer.is_open_anonymous:
                continue
            if await self._already_completed(record.uri):
                continue

            held = await self._collection.get_all_sticker_records(candidate)
            overlap = offered & {sticker.identity for sticker in held}
            return MatchCandidate(
                did=candidate,
                offer_ref=record.ref,
                offer=offer,
                is_perfect=not overlap,
            )
        return None

    async def _already_completed(self, offer_uri: str) -> bool:
        """Whether any indexed answer has completed this offer."""
        links = await collect_backlinks(
            self._backlinks,
            offer_uri,
            BacklinkSource.OFFER_ANSWER,
            page_size=self._backlink_page_size,
        )
        if not links:
            return False
        answers = await asyncio.gather(*(self._answer_value(link) for link in links))
        for value in answers:
            answer = parse_transaction(value) if value else None
            if (
                answer is not None
                and answer.status == TransactionStatus.COMPLETED
                and answer.ref_transaction == offer_uri
            ):
                return True
        return False

    async def _answer_value(self, link: Backlink) -> dict | None:
        if link.value is not None:
            return link.value
        try:
            record = await self._storage.get_record(link.did, link.collection, link.rkey)
        except StorageError:
            return None
        return record.value
