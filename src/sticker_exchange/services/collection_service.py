"""Collection Service — one party's sticker holdings.

Covers the self-minted sticker, verified listing of anyone's holdings, the
idempotent clone step every exchange path goes through, deletion, and likes
on an item's canonical (originally minted) copy.

Visible collections are fail-closed: an item whose seal does not verify is
never returned by `get_user_stickers`; `audit_user_stickers` exposes the
reasons for diagnostics.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pydantic import ValidationError

from sticker_exchange.domain.enums import (
    BacklinkSource,
    CloneOutcome,
    Collection,
    ImageType,
)
from sticker_exchange.domain.exceptions import SigningError, StorageError
from sticker_exchange.domain.refs import RecordRef
from sticker_exchange.infrastructure.backlinks import collect_backlinks
from sticker_exchange.infrastructure.paging import iter_records, list_all_records
from sticker_exchange.logging_config import get_logger
from sticker_exchange.schemas.records import (
    ProfileSummary,
    SealInfo,
    Sticker,
    StickerLike,
    StoredRecord,
    StrongRef,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from sticker_exchange.domain.protocols import (
        BacklinkIndex,
        ProfileLookup,
        RepositoryStorage,
    )
    from sticker_exchange.infrastructure.caches import ProtocolCaches
    from sticker_exchange.seals.engine import SealEngine, SealVerificationResult
    from sticker_exchange.services.registry import RegistryService

logger = get_logger(__name__)

SELF_MODEL = "default"
LIKER_PROFILE_LIMIT = 5


@dataclass(frozen=True)
class VerifiedSticker:
    """A sticker as found in a repository, with its seal verdict."""

    ref: RecordRef
    cid: str
    sticker: Sticker
    verification: SealVerificationResult

    @property
    def uri(self) -> str:
        return self.ref.uri

    @property
    def is_valid(self) -> bool:
        return self.verification.is_valid


@dataclass(frozen=True)
class LikeState:
    target_uri: str
    count: int
    is_liked: bool
    like_uri: str | None = None
    likers: list[str] = field(default_factory=list)
    liker_profiles: list[ProfileSummary] = field(default_factory=list)


def parse_sticker(value: dict) -> Sticker | None:
    try:
        return Sticker.from_storage(value)
    except ValidationError:
        return None


def _notify(on_status: Callable[[str], None] | None, message: str) -> None:
    if on_status is not None:
        on_status(message)


class CollectionService:
    """Reads and writes the sticker collection on behalf of `did`."""

    def __init__(
        self,
        did: str,
        storage: RepositoryStorage,
        backlinks: BacklinkIndex,
        seals: SealEngine,
        profiles: ProfileLookup,
        caches: ProtocolCaches,
        registry: RegistryService,
        page_size: int = 100,
        backlink_page_size: int = 100,
    ) -> None:
        self._did = did
        self._storage = storage
        self._backlinks = backlinks
        self._seals = seals
        self._profiles = profiles
        self._caches = caches
        self._registry = registry
        self._page_size = page_size
        self._backlink_page_size = backlink_page_size

    @property
    def did(self) -> str:
        return self._did

    # ------------------------------------------------------------------
    # Initialisation
    # ------------------------------------------------------------------

    async def init_stickers(self, on_status: Callable[[str], None] | None = None) -> bool:
        """Mint the self sticker and join the registry on first use.

        The config record doubles as the "initialised" marker, so it is
        written last. Returns False when already initialised.

        Raises:
            SigningError: If the self sticker could not be sealed. Nothing
                is written in that case.
        """
        _notify(on_status, "Initializing...")
        existing = await self._storage.list_records(self._did, Collection.CONFIG, limit=1)
        if existing.records:
            return False

        _notify(on_status, "Creating your sticker...")
        profile = await self._profiles.get_profile(self._did)
        avatar = profile.avatar if profile else None

        envelope = await self._seals.issue(self._did, SealInfo(model=SELF_MODEL, image=avatar))
        sticker = Sticker(
            image=avatar,
            image_type=ImageType.AVATAR.value,
            subject_did=self._did,
            original_owner=self._did,
            model=SELF_MODEL,
            signature=envelope.signature,
            signed_payload=envelope.signed_payload,
        )
        created = await self._storage.create_record(
            self._did, Collection.STICKER, sticker.to_record()
        )
        await self._registry.ensure_hub_ref()

        logger.info("collection.initialized", did=self._did, sticker_uri=created.uri)
        return True

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def audit_user_stickers(self, did: str) -> list[VerifiedSticker]:
        """Every parseable sticker in `did`'s repository with its seal verdict.

        Raises:
            StorageError: If the repository cannot be listed.
        """
        records = await list_all_records(
            self._storage, did, Collection.STICKER, page_size=self._page_size
        )

        async def check(record: StoredRecord) -> VerifiedSticker | None:
            sticker = parse_sticker(record.value)
            if sticker is None:
                logger.warning("collection.malformed_record", uri=record.uri)
                return None
            verification = await self._seals.verify(sticker, did)
            return VerifiedSticker(record.ref, record.cid, sticker, verification)

        checked = await asyncio.gather(*(check(r) for r in records))
        return [item for item in checked if item is not None]

    async def get_user_stickers(self, did: str) -> list[VerifiedSticker]:
        """Verified stickers only, with trusted fields taken from the seal."""
        visible = []
        for item in await self.audit_user_stickers(did):
            if not item.is_valid:
                logger.warning(
                    "seal.verification_failed",
                    uri=item.uri,
                    reason=item.verification.reason,
                    stolen=item.verification.is_stolen,
                )
                continue
            display = self._display_copy(item, did)
            visible.append(VerifiedSticker(item.ref, item.cid, display, item.verification))
        return visible

    def _display_copy(self, item: VerifiedSticker, holder: str) -> Sticker:
        sticker = item.sticker
        update: dict = {"image": sticker.resolved_image(self._seals.cdn_image_template, holder)}
        payload = item.verification.trusted_payload
        info = payload.info if payload else {}
        if info.get("model"):
            update["model"] = info["model"]
        if info.get("image"):
            update["image"] = info["image"]
        if info.get("obtainedFrom"):
            update["obtained_from"] = info["obtainedFrom"]
        return sticker.model_copy(update=update)

    async def get_all_sticker_records(self, did: str) -> list[Sticker]:
        """Raw (migrated) stickers for duplicate checks. Degrades to a partial list."""
        stickers: list[Sticker] = []
        try:
            async for record in iter_records(
                self._storage, did, Collection.STICKER, page_size=self._page_size
            ):
                sticker = parse_sticker(record.value)
                if sticker is not None:
                    stickers.append(sticker)
        except StorageError as exc:
            logger.warning(
                "collection.list_failed", did=did, collected=len(stickers), error=exc.message
            )
        return stickers

    # ------------------------------------------------------------------
    # Clone / delete
    # ------------------------------------------------------------------

    async def clone_sticker(
        self,
        source: Sticker,
        giver: str,
        message: str | None,
        held: list[Sticker],
    ) -> CloneOutcome:
        """Copy `source` into self's repository under a fresh seal.

        `held` is the caller's view of self's holdings; it is extended on
        success so several clones in a row de-duplicate against each other.
        """
        identity = source.identity
        if any(existing.identity == identity for existing in held):
            return CloneOutcome.ALREADY_HELD

        image = source.resolved_image(self._seals.cdn_image_template, fallback_did=giver)
        info = SealInfo(
            model=source.model,
            image=image,
            obtained_from=giver,
            original_creator=source.original_owner,
            name=source.name,
            message=message,
            shape=source.shape,
        )
        try:
            envelope = await self._seals.issue(self._did, info)
        except SigningError as exc:
            logger.error(
                "collection.seal_failed", giver=giver, model=source.model, error=exc.message
            )
            return CloneOutcome.SEAL_FAILED

        clone = Sticker(
            image=image,
            image_type=source.image_type or ImageType.AVATAR.value,
            subject_did=source.subject_did,
            original_owner=source.original_owner,
            model=source.model,
            shape=source.shape,
            name=source.name,
            description=source.description,
            message=message,
            obtained_from=giver,
            signature=envelope.signature,
            signed_payload=envelope.signed_payload,
        )
        created = await self._storage.create_record(
            self._did, Collection.STICKER, clone.to_record()
        )
        held.append(clone)
        logger.info("collection.cloned", uri=created.uri, giver=giver, model=source.model)
        return CloneOutcome.CLONED

    async def delete_sticker(self, ref: RecordRef | str) -> None:
        ref = RecordRef.parse(ref) if isinstance(ref, str) else ref
        if ref.repo != self._did or ref.collection != Collection.STICKER:
            raise StorageError(f"Not an own sticker: {ref.uri}", repo=ref.repo)
        await self._storage.delete_record(self._did, Collection.STICKER, ref.rkey)
        logger.info("collection.deleted", uri=ref.uri)

    # ------------------------------------------------------------------
    # Likes
    # ------------------------------------------------------------------

    async def resolve_like_target(self, item: VerifiedSticker) -> StrongRef:
        """The canonical copy of `item`, or the local copy when it cannot be found."""
        local = StrongRef(uri=item.uri, cid=item.cid)
        sticker = item.sticker
        minter = sticker.original_owner or sticker.subject_did
        if not minter or item.ref.repo == minter:
            return local

        identity = sticker.identity

        async def load() -> StrongRef | None:
            async for record in iter_records(
                self._storage, minter, Collection.STICKER, page_size=self._page_size
            ):
                candidate = parse_sticker(record.value)
                if candidate is not None and candidate.identity == identity:
                    return StrongRef(uri=record.uri, cid=record.cid)
            return None

        try:
            target = await self._caches.canonical_locations.get_or_load(identity, load)
        except StorageError as exc:
            logger.warning("likes.target_unresolved", uri=item.uri, error=exc.message)
            target = None
        if target is None:
            logger.info("likes.canonical_missing", uri=item.uri, minter=minter)
            return local
        return target

    async def toggle_like(
        self, item: VerifiedSticker, current_like: str | None = None
    ) -> str | None:
        """Like the canonical copy, or remove `current_like`. Returns the new like URI."""
        if current_like:
            like_ref = RecordRef.parse(current_like)
            if like_ref.repo != self._did or like_ref.collection != Collection.STICKER_LIKE:
                raise StorageError(f"Not an own like: {current_like}", repo=like_ref.repo)
            await self._storage.delete_record(self._did, Collection.STICKER_LIKE, like_ref.rkey)
            logger.info("likes.removed", uri=current_like)
            return None

        target = await self.resolve_like_target(item)
        if not target.cid:
            return None
        like = StickerLike(subject=target)
        created = await self._storage.create_record(
            self._did, Collection.STICKER_LIKE, like.to_record()
        )
        logger.info("likes.added", uri=created.uri, target=target.uri)
        return created.uri

    async def load_like_state(self, item: VerifiedSticker) -> LikeState:
        target = await self.resolve_like_target(item)
        links = await collect_backlinks(
            self._backlinks,
            target.uri,
            BacklinkSource.STICKER_LIKE,
            page_size=self._backlink_page_size,
        )
        likers = list(dict.fromkeys(link.did for link in links))
        like_uri = next((link.ref.uri for link in links if link.did == self._did), None)

        profiles = await asyncio.gather(
            *(self._profiles.get_profile(did) for did in likers[:LIKER_PROFILE_LIMIT])
        )
        return LikeState(
            target_uri=target.uri,
            count=len(likers),
            is_liked=like_uri is not None,
            like_uri=like_uri,
            likers=likers,
            liker_profiles=[p for p in profiles if p is not None],
        )
