"""Offer Discovery — open offers addressed to self, found through backlinks.

A directed offer carries `refPartner` = the recipient's profile reference,
so the backlink index can answer "who is offering me something" without
scanning repositories. The index is eventually consistent, so the offers it
points at are re-read from their authors before being shown.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pydantic import ValidationError

from sticker_exchange.domain.enums import BacklinkSource, Collection
from sticker_exchange.domain.exceptions import ExchangeError, RecordNotFoundError, StorageError
from sticker_exchange.domain.refs import RecordRef, profile_ref
from sticker_exchange.infrastructure.backlinks import collect_backlinks
from sticker_exchange.infrastructure.paging import iter_records
from sticker_exchange.logging_config import get_logger
from sticker_exchange.schemas.records import ProfileSummary, StoredRecord, Transaction
from sticker_exchange.services.collection_service import VerifiedSticker, parse_sticker

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sticker_exchange.domain.protocols import (
        BacklinkIndex,
        ProfileLookup,
        RecordReader,
        RepositoryStorage,
    )
    from sticker_exchange.schemas.records import Backlink
    from sticker_exchange.seals.engine import SealEngine

logger = get_logger(__name__)


@dataclass(frozen=True)
class IncomingOffer:
    partner: str
    offer_ref: RecordRef
    offer: Transaction
    items: list[VerifiedSticker] = field(default_factory=list)
    profile: ProfileSummary | None = None


class OfferDiscovery:
    """Collects the open offers other parties have addressed to `did`."""

    def __init__(
        self,
        did: str,
        storage: RepositoryStorage,
        backlinks: BacklinkIndex,
        seals: SealEngine,
        profiles: ProfileLookup,
        fallback: RecordReader | None = None,
        page_size: int = 50,
        backlink_page_size: int = 100,
    ) -> None:
        self._did = did
        self._storage = storage
        self._backlinks = backlinks
        self._seals = seals
        self._profiles = profiles
        self._fallback = fallback
        self._page_size = page_size
        self._backlink_page_size = backlink_page_size

    async def get_incoming_offers(self) -> list[IncomingOffer]:
        links = await collect_backlinks(
            self._backlinks,
            profile_ref(self._did),
            BacklinkSource.OFFER_PARTNER,
            page_size=self._backlink_page_size,
        )
        if not links:
            return []

        answered = await self._answered_offers()
        results = await asyncio.gather(*(self._process(link, answered) for link in links))
        offers = [offer for offer in results if offer is not None]
        logger.info("discovery.completed", links=len(links), offers=len(offers))
        return offers

    async def _answered_offers(self) -> set[str]:
        """Offer URIs self has already accepted or rejected."""
        answered: set[str] = set()
        try:
            async for record in iter_records(
                self._storage, self._did, Collection.TRANSACTION, page_size=self._page_size
            ):
                ref = record.value.get("refTransaction")
                if isinstance(ref, str) and ref:
                    answered.add(ref)
        except StorageError as exc:
            logger.warning("discovery.own_transactions_failed", error=exc.message)
        return answered

    async def _process(self, link: Backlink, answered: set[str]) -> IncomingOffer | None:
        try:
            loaded = await self._load_offer(link)
            if loaded is None:
                return None
            uri, offer = loaded
            if not offer.is_open_for(self._did):
                return None
            if uri in answered:
                logger.debug("discovery.already_answered", offer_uri=uri)
                return None

            items, profile = await asyncio.gather(
                self._verified_items(link.did, offer.sticker_out),
                self._profiles.get_profile(link.did),
            )
            return IncomingOffer(
                partner=link.did,
                offer_ref=RecordRef.parse(uri),
                offer=offer,
                items=items,
                profile=profile,
            )
        except (ExchangeError, ValidationError, ValueError) as exc:
            logger.warning("discovery.link_failed", uri=link.uri, error=str(exc))
            return None

    async def _load_offer(self, link: Backlink) -> tuple[str, Transaction] | None:
        if link.collection != Collection.TRANSACTION:
            return None
        uri = link.uri or link.ref.uri
        if link.value is not None:
            return uri, Transaction.model_validate(link.value)

        record = await self._fetch_offer(link)
        if record is None:
            return None
        return record.uri or uri, Transaction.model_validate(record.value)

    async def _fetch_offer(self, link: Backlink) -> StoredRecord | None:
        """Direct read from the author's host, then the app view's cached copy."""
        try:
            return await self._storage.get_record(link.did, link.collection, link.rkey)
        except RecordNotFoundError:
            # Deleted at the source means withdrawn; the cache is not consulted.
            return None
        except StorageError as exc:
            logger.info("discovery.direct_fetch_failed", uri=link.uri, error=exc.message)

        if self._fallback is None:
            return None
        try:
            return await self._fallback.get_record(link.did, link.collection, link.rkey)
        except StorageError as exc:
            logger.warning("discovery.fallback_fetch_failed", uri=link.uri, error=exc.message)
            return None

    async def _verified_items(self, partner: str, uris: Sequence[str]) -> list[VerifiedSticker]:
        """Offered items whose seal verifies against the offering party."""

        async def fetch(uri: str) -> VerifiedSticker | None:
            ref = RecordRef.try_parse(uri)
            if ref is None or ref.repo != partner:
                return None
            try:
                record = await self._storage.get_record(partner, Collection.STICKER, ref.rkey)
            except StorageError as exc:
                logger.warning("discovery.item_fetch_failed", uri=uri, error=exc.message)
                return None
            sticker = parse_sticker(record.value)
            if sticker is None:
                return None

            verification = await self._seals.verify(sticker, partner)
            if not verification.is_valid:
                logger.warning(
                    "seal.verification_failed",
                    uri=uri,
                    reason=verification.reason,
                    stolen=verification.is_stolen,
                )
                return None
            image = sticker.resolved_image(self._seals.cdn_image_template, fallback_did=partner)
            display = sticker.model_copy(update={"image": image})
            return VerifiedSticker(record.ref, record.cid, display, verification)

        fetched = await asyncio.gather(*(fetch(uri) for uri in uris))
        return [item for item in fetched if item is not None]
