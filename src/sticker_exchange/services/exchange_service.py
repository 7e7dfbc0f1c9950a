"""Exchange Service — the two-sided barter over separate repositories.

Each party only ever writes to its own repository:

    A: create_offer        -> A/transaction {status: offered, stickerOut: [...]}
    B: accept_offer        -> clones A's items into B, then
                              B/transaction {status: completed, refTransaction: A's offer}
       (or reject_offer    -> B/transaction {status: rejected, refTransaction: A's offer})
    A: resolve_pending     -> finds B's answer, clones B's items into A, then
                              moves A's own record offered -> completed | rejected

Every step is re-runnable: clones de-duplicate by item identity and status
changes only ever start from `offered`.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

from pydantic import ValidationError

from sticker_exchange.domain.enums import (
    BacklinkSource,
    CloneOutcome,
    Collection,
    TransactionStatus,
)
from sticker_exchange.domain.exceptions import (
    IntegrityViolationError,
    InvalidOfferError,
    InvalidStateTransitionError,
    OfferNotFoundError,
    RecordNotFoundError,
    SigningError,
    StorageError,
)
from sticker_exchange.domain.refs import RecordRef, profile_ref
from sticker_exchange.domain.state_machine import validate_transition
from sticker_exchange.infrastructure.backlinks import collect_backlinks
from sticker_exchange.infrastructure.paging import iter_records
from sticker_exchange.logging_config import get_logger
from sticker_exchange.schemas.records import Sticker, StoredRecord, Transaction, utc_now_iso
from sticker_exchange.services.collection_service import parse_sticker

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from sticker_exchange.domain.protocols import (
        BacklinkIndex,
        ProfileLookup,
        RepositoryStorage,
    )
    from sticker_exchange.seals.engine import SealEngine
    from sticker_exchange.services.collection_service import CollectionService

logger = get_logger(__name__)

InverseOutcome = TransactionStatus | Literal[False]

STATUS_EVENTS = {
    TransactionStatus.COMPLETED: "complete",
    TransactionStatus.REJECTED: "reject",
}


@dataclass(frozen=True)
class AcceptResult:
    transaction_ref: RecordRef
    offer_ref: RecordRef
    received: list[CloneOutcome] = field(default_factory=list)


@dataclass(frozen=True)
class Resolution:
    """What resolve_pending did with one of self's open offers."""

    offer_ref: RecordRef
    partner: str | None
    outcome: TransactionStatus | None = None

    @property
    def resolved(self) -> bool:
        return self.outcome is not None


def parse_transaction(value: dict) -> Transaction | None:
    try:
        return Transaction.model_validate(value)
    except ValidationError:
        return None


def _as_ref(ref: RecordRef | str | None) -> RecordRef | None:
    if ref is None or isinstance(ref, RecordRef):
        return ref
    try:
        return RecordRef.parse(ref)
    except ValueError as exc:
        raise InvalidOfferError(str(exc)) from exc


class ExchangeService:
    """Offers, answers and reconciliation for the party `did`."""

    def __init__(
        self,
        did: str,
        storage: RepositoryStorage,
        backlinks: BacklinkIndex,
        seals: SealEngine,
        collection: CollectionService,
        profiles: ProfileLookup,
        page_size: int = 50,
        backlink_page_size: int = 100,
    ) -> None:
        self._did = did
        self._storage = storage
        self._backlinks = backlinks
        self._seals = seals
        self._collection = collection
        self._profiles = profiles
        self._page_size = page_size
        self._backlink_page_size = backlink_page_size

    # ------------------------------------------------------------------
    # Offers
    # ------------------------------------------------------------------

    async def create_offer(
        self,
        items: Sequence[RecordRef | str],
        partner: str | None = None,
        message: str | None = None,
        anonymous: bool = False,
    ) -> RecordRef:
        """Write an `offered` transaction to self's repository.

        Raises:
            InvalidOfferError: No items, an item that is not an own sticker,
                an anonymous offer with a partner, or a directed offer without one.
        """
        if not items:
            raise InvalidOfferError("An offer needs at least one item")
        if anonymous and partner:
            raise InvalidOfferError("An anonymous offer cannot name a partner")
        if not anonymous and not partner:
            raise InvalidOfferError("A directed offer needs a partner")
        if partner == self._did:
            raise InvalidOfferError("Cannot offer an exchange to yourself")

        item_uris = self._own_sticker_uris(items)
        offer = Transaction(
            partner=partner,
            ref_partner=profile_ref(partner) if partner else None,
            is_easy_exchange=anonymous,
            sticker_out=item_uris,
            message=message,
            status=TransactionStatus.OFFERED,
        )
        created = await self._storage.create_record(
            self._did, Collection.TRANSACTION, offer.to_record()
        )
        logger.info(
            "exchange.offer_created",
            offer_uri=created.uri,
            partner=partner,
            anonymous=anonymous,
            items=len(item_uris),
        )
        return created.ref

    async def withdraw_offer(self, offer_ref: RecordRef | str) -> None:
        """Delete an own offer nobody has answered yet.

        Raises:
            InvalidOfferError: If the reference is not an own transaction.
            OfferNotFoundError: If the record does not exist.
            InvalidStateTransitionError: If the offer is no longer `offered`.
        """
        ref = _as_ref(offer_ref)
        if ref.repo != self._did or ref.collection != Collection.TRANSACTION:
            raise InvalidOfferError(f"Not an own transaction: {ref.uri}")
        try:
            record = await self._storage.get_record(self._did, Collection.TRANSACTION, ref.rkey)
        except RecordNotFoundError as exc:
            raise OfferNotFoundError(self._did, ref.uri) from exc

        offer = parse_transaction(record.value)
        status = offer.status if offer else "unknown"
        if status != TransactionStatus.OFFERED:
            raise InvalidStateTransitionError(str(status), "withdraw")

        await self._storage.delete_record(self._did, Collection.TRANSACTION, ref.rkey)
        logger.info("exchange.offer_withdrawn", offer_uri=ref.uri)

    def _own_sticker_uris(self, items: Sequence[RecordRef | str]) -> list[str]:
        uris = []
        for item in items:
            ref = _as_ref(item)
            if ref.repo != self._did or ref.collection != Collection.STICKER:
                raise InvalidOfferError(f"Not an own sticker: {ref.uri}")
            uris.append(ref.uri)
        return uris

    # ------------------------------------------------------------------
    # Answers
    # ------------------------------------------------------------------

    async def accept_offer(
        self,
        partner: str,
        items_to_give: Sequence[RecordRef | str],
        message: str | None = None,
        offer_ref: RecordRef | str | None = None,
    ) -> AcceptResult:
        """Accept `partner`'s open offer: clone its items, then record completion.

        Offered items whose seal does not verify against `partner` are
        skipped; only the genuine ones are cloned and recorded as received.

        Raises:
            InvalidOfferError: `partner` is self, or an item to give is not an
                own sticker.
            OfferNotFoundError: No open, unanswered offer addressed to self
                (nothing written).
            IntegrityViolationError: The offer has items but none of them
                verifies (nothing written).
            SigningError: Some items could not be sealed. Clones that did
                succeed stay; the offer stays unanswered so a retry picks up
                the rest.
        """
        if partner == self._did:
            raise InvalidOfferError("Cannot accept your own offer")
        target = _as_ref(offer_ref)
        given = self._own_sticker_uris(items_to_give)

        found = await self._find_open_offer(partner, target)
        if found is None:
            raise OfferNotFoundError(partner, target.uri if target else None)
        record, offer = found

        verified = await self._fetch_items(partner, offer.sticker_out)
        if offer.sticker_out and not verified:
            raise IntegrityViolationError(f"no offered item of {record.uri} verifies")

        held = await self._collection.get_all_sticker_records(self._did)
        received = []
        for _, sticker in verified:
            received.append(
                await self._collection.clone_sticker(sticker, partner, offer.message, held)
            )

        failed = received.count(CloneOutcome.SEAL_FAILED)
        if failed:
            raise SigningError(
                f"{failed} of {len(received)} items could not be sealed; offer left open"
            )

        answer = Transaction(
            partner=partner,
            sticker_in=[uri for uri, _ in verified],
            sticker_out=given,
            message=message,
            status=TransactionStatus.COMPLETED,
            ref_transaction=record.uri,
        )
        created = await self._storage.create_record(
            self._did, Collection.TRANSACTION, answer.to_record()
        )
        logger.info(
            "exchange.offer_accepted",
            offer_uri=record.uri,
            transaction_uri=created.uri,
            partner=partner,
            received=len(received),
        )
        return AcceptResult(transaction_ref=created.ref, offer_ref=record.ref, received=received)

    async def reject_offer(
        self,
        partner: str,
        offer_ref: RecordRef | str | None = None,
        message: str | None = None,
    ) -> RecordRef:
        """Record a rejection of `partner`'s open offer.

        An explicit `offer_ref` must match exactly; there is no fallback to
        another open offer from the same partner.

        Raises:
            InvalidOfferError: `partner` is self.
            OfferNotFoundError: No matching open, unanswered offer (nothing written).
        """
        if partner == self._did:
            raise InvalidOfferError("Cannot reject your own offer")
        target = _as_ref(offer_ref)
        found = await self._find_open_offer(partner, target)
        if found is None:
            raise OfferNotFoundError(partner, target.uri if target else None)
        record, _ = found

        answer = Transaction(
            partner=partner,
            message=message,
            status=TransactionStatus.REJECTED,
            ref_transaction=record.uri,
        )
        created = await self._storage.create_record(
            self._did, Collection.TRANSACTION, answer.to_record()
        )
        logger.info("exchange.offer_rejected", offer_uri=record.uri, partner=partner)
        return created.ref

    async def _find_open_offer(
        self, partner: str, offer_ref: RecordRef | None
    ) -> tuple[StoredRecord, Transaction] | None:
        """First record of `partner` that is an open offer to self not yet answered."""
        answered = await self._answered_offers()

        if offer_ref is not None:
            if offer_ref.repo != partner or offer_ref.collection != Collection.TRANSACTION:
                return None
            if offer_ref.uri in answered:
                logger.info("exchange.already_answered", offer_uri=offer_ref.uri)
                return None
            try:
                record = await self._storage.get_record(
                    partner, Collection.TRANSACTION, offer_ref.rkey
                )
            except RecordNotFoundError:
                return None
            offer = parse_transaction(record.value)
            if offer is None or not offer.is_open_for(self._did):
                return None
            return record, offer

        async for record in iter_records(
            self._storage, partner, Collection.TRANSACTION, page_size=self._page_size
        ):
            if record.uri in answered:
                continue
            offer = parse_transaction(record.value)
            if offer is not None and offer.is_open_for(self._did):
                return record, offer
        return None

    async def _answered_offers(self) -> set[str]:
        """Offer URIs self has already accepted or rejected."""
        answered: set[str] = set()
        async for record in iter_records(
            self._storage, self._did, Collection.TRANSACTION, page_size=self._page_size
        ):
            ref = record.value.get("refTransaction")
            if isinstance(ref, str) and ref:
                answered.add(ref)
        return answered

    async def _fetch_items(
        self, partner: str, uris: Sequence[str]
    ) -> list[tuple[str, Sticker]]:
        """Fetch `partner`'s stickers whose seal verifies for `partner`.

        Foreign, unreachable, malformed, stolen and tampered items are logged
        and skipped.
        """

        async def fetch(uri: str) -> tuple[str, Sticker] | None:
            ref = RecordRef.try_parse(uri)
            if ref is None or ref.repo != partner:
                logger.warning("exchange.item_foreign", uri=uri, partner=partner)
                return None
            try:
                record = await self._storage.get_record(partner, Collection.STICKER, ref.rkey)
            except StorageError as exc:
                logger.warning("exchange.item_fetch_failed", uri=uri, error=exc.message)
                return None
            sticker = parse_sticker(record.value)
            if sticker is None:
                logger.warning("exchange.item_malformed", uri=uri)
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
            return uri, sticker

        fetched = await asyncio.gather(*(fetch(uri) for uri in uris))
        return [item for item in fetched if item is not None]

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    async def check_inverse(self, partner: str, offer_ref: RecordRef | str) -> InverseOutcome:
        """Look for `partner`'s answer to one of self's offers.

        Returns the answer's status, or False when there is none yet or its
        items could not be taken in (the next poll retries).
        """
        outcome, _ = await self._check_inverse(partner, _as_ref(offer_ref))
        return outcome

    async def _check_inverse(
        self, partner: str, offer_ref: RecordRef
    ) -> tuple[InverseOutcome, Transaction | None]:
        answer = None
        try:
            async for record in iter_records(
                self._storage, partner, Collection.TRANSACTION, page_size=self._page_size
            ):
                candidate = parse_transaction(record.value)
                if (
                    candidate is not None
                    and candidate.ref_transaction == offer_ref.uri
                    and candidate.status in STATUS_EVENTS
                ):
                    answer = candidate
                    break
        except StorageError as exc:
            logger.warning("exchange.inverse_unreachable", partner=partner, error=exc.message)
            return False, None

        if answer is None:
            return False, None
        if answer.status == TransactionStatus.REJECTED:
            return TransactionStatus.REJECTED, answer
        if not answer.sticker_out:
            return TransactionStatus.COMPLETED, answer

        verified = await self._fetch_items(partner, answer.sticker_out)
        held = await self._collection.get_all_sticker_records(self._did)
        outcomes = []
        for _, sticker in verified:
            outcomes.append(
                await self._collection.clone_sticker(sticker, partner, answer.message, held)
            )

        processed = sum(1 for outcome in outcomes if outcome.processed)
        if processed == 0 or CloneOutcome.SEAL_FAILED in outcomes:
            logger.info(
                "exchange.inverse_incomplete",
                partner=partner,
                offer_uri=offer_ref.uri,
                processed=processed,
                expected=len(answer.sticker_out),
            )
            return False, None
        return TransactionStatus.COMPLETED, answer

    async def resolve_pending(
        self, on_status: Callable[[str], None] | None = None
    ) -> list[Resolution]:
        """Move self's answered offers to their final status.

        Raises:
            StorageError: If self's own transactions cannot be listed.
        """
        if on_status:
            on_status("Checking for pending exchanges...")

        pending = []
        async for record in iter_records(
            self._storage, self._did, Collection.TRANSACTION, page_size=self._page_size
        ):
            offer = parse_transaction(record.value)
            if offer is not None and offer.status == TransactionStatus.OFFERED:
                pending.append((record, offer))

        resolutions = []
        for record, offer in pending:
            resolutions.append(await self._resolve_one(record, offer, on_status))
        return resolutions

    async def _resolve_one(
        self,
        record: StoredRecord,
        offer: Transaction,
        on_status: Callable[[str], None] | None,
    ) -> Resolution:
        offer_ref = record.ref
        if offer.partner:
            candidates = [offer.partner]
        elif offer.is_easy_exchange:
            links = await collect_backlinks(
                self._backlinks,
                offer_ref.uri,
                BacklinkSource.OFFER_ANSWER,
                page_size=self._backlink_page_size,
            )
            candidates = [d for d in dict.fromkeys(link.did for link in links) if d != self._did]
        else:
            candidates = []

        for candidate in candidates:
            name = await self._display_name(candidate) if on_status else candidate
            if on_status:
                on_status(f"Checking exchange with {name}...")

            outcome, answer = await self._check_inverse(candidate, offer_ref)
            if not outcome:
                continue

            new_status = validate_transition(offer.status, STATUS_EVENTS[outcome])
            update: dict = {"status": TransactionStatus(new_status)}
            if outcome == TransactionStatus.COMPLETED:
                update["sticker_in"] = answer.sticker_out if answer else []
                update["partner"] = candidate
            update["updated_at"] = utc_now_iso()
            resolved = offer.model_copy(update=update)

            try:
                await self._storage.put_record(
                    self._did,
                    Collection.TRANSACTION,
                    offer_ref.rkey,
                    resolved.to_record(),
                    swap_cid=record.cid,
                )
            except StorageError as exc:
                logger.warning(
                    "exchange.resolve_put_failed", offer_uri=offer_ref.uri, error=exc.message
                )
                return Resolution(offer_ref=offer_ref, partner=candidate)

            logger.info(
                "exchange.offer_resolved",
                offer_uri=offer_ref.uri,
                partner=candidate,
                status=str(outcome),
            )
            if on_status:
                if outcome == TransactionStatus.COMPLETED:
                    on_status(f"Received stickers from {name}!")
                else:
                    on_status(f"Exchange declined by {name}")
            return Resolution(offer_ref=offer_ref, partner=candidate, outcome=outcome)

        return Resolution(offer_ref=offer_ref, partner=offer.partner)

    async def _display_name(self, did: str) -> str:
        profile = await self._profiles.get_profile(did)
        if profile is None:
            return did
        return profile.display_name or profile.handle or did
