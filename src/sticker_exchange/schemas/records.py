"""Pydantic models for repository records and collaborator payloads.

Attribute names are snake_case; the wire names of the record lexicon are
kept as aliases so `to_record()` produces exactly what other clients write.
Unknown fields are preserved so a record survives a read/put round trip.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from sticker_exchange.domain.enums import Collection, TransactionStatus
from sticker_exchange.domain.refs import RecordRef, StickerIdentity
from sticker_exchange.schemas.migrations import migrate_sticker_record


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


class _RecordModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_record(self) -> dict[str, Any]:
        """Serialize to the wire shape stored in a repository."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# ---------------------------------------------------------------------------
# Sticker
# ---------------------------------------------------------------------------


class BlobRef(BaseModel):
    """Reference to an uploaded image blob."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    record_type: str = Field(default="blob", alias="$type")
    ref: dict[str, Any] | str | None = None
    mime_type: str | None = Field(default=None, alias="mimeType")
    size: int | None = None

    @property
    def cid(self) -> str | None:
        if isinstance(self.ref, dict):
            return self.ref.get("$link")
        if isinstance(self.ref, str):
            return self.ref
        # Legacy blobs carry a top-level `cid`.
        legacy = (self.model_extra or {}).get("cid")
        return legacy if isinstance(legacy, str) else None


class Sticker(_RecordModel):
    record_type: str = Field(default=Collection.STICKER.value, alias="$type")
    image: str | BlobRef | None = None
    image_type: str | None = Field(default=None, alias="imageType")
    subject_did: str | None = Field(default=None, alias="subjectDid")
    original_owner: str | None = Field(default=None, alias="originalOwner")
    model: str = "default"
    shape: str | None = None
    name: str | None = None
    description: str | None = None
    message: str | None = None
    obtained_from: str | None = Field(default=None, alias="obtainedFrom")
    obtained_at: str = Field(default_factory=utc_now_iso, alias="obtainedAt")

    signature: str | None = None
    signed_payload: str | None = Field(default=None, alias="signedPayload")

    @classmethod
    def from_storage(cls, raw: dict[str, Any]) -> Sticker:
        """Validate a raw repository value after migrating legacy fields."""
        return cls.model_validate(migrate_sticker_record(raw))

    @property
    def identity(self) -> StickerIdentity:
        return StickerIdentity(
            subject_did=self.subject_did,
            original_owner=self.original_owner,
            model=self.model,
            shape=self.shape,
        )

    def resolved_image(self, cdn_template: str, fallback_did: str | None = None) -> str | None:
        """Image as a fetchable URL; blob references resolve under the minting repo."""
        if isinstance(self.image, BlobRef):
            did = self.original_owner or fallback_did
            cid = self.image.cid
            if not did or not cid:
                return None
            return cdn_template.format(did=did, cid=cid)
        return self.image


class Transaction(_RecordModel):
    record_type: str = Field(default=Collection.TRANSACTION.value, alias="$type")
    partner: str | None = None
    is_easy_exchange: bool = Field(default=False, alias="isEasyExchange")
    sticker_out: list[str] = Field(default_factory=list, alias="stickerOut")
    sticker_in: list[str] = Field(default_factory=list, alias="stickerIn")
    message: str | None = None
    status: TransactionStatus = TransactionStatus.OFFERED
    ref_partner: str | None = Field(default=None, alias="refPartner")
    ref_transaction: str | None = Field(default=None, alias="refTransaction")
    created_at: str = Field(default_factory=utc_now_iso, alias="createdAt")
    updated_at: str | None = Field(default=None, alias="updatedAt")

    @property
    def is_open_anonymous(self) -> bool:
        """An easy-exchange offer that anyone in the registry may claim."""
        return (
            self.status == TransactionStatus.OFFERED
            and self.is_easy_exchange
            and not self.partner
            and bool(self.sticker_out)
        )

    def is_open_for(self, did: str) -> bool:
        """Whether `did` may answer this record as an offer."""
        if self.status != TransactionStatus.OFFERED:
            return False
        return self.partner == did or (self.is_easy_exchange and not self.partner)


class Config(_RecordModel):
    record_type: str = Field(default=Collection.CONFIG.value, alias="$type")
    hub_ref: str = Field(alias="hubRef")


class StrongRef(BaseModel):
    uri: str
    cid: str


class StickerLike(_RecordModel):
    record_type: str = Field(default=Collection.STICKER_LIKE.value, alias="$type")
    subject: StrongRef
    created_at: str = Field(default_factory=utc_now_iso, alias="createdAt")


# ---------------------------------------------------------------------------
# Seals
# ---------------------------------------------------------------------------


class SealInfo(BaseModel):
    """Authoritative attributes attested by a seal."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    model: str
    image: str | None = None
    obtained_from: str | None = Field(default=None, alias="obtainedFrom")
    original_creator: str | None = Field(default=None, alias="originalCreator")
    name: str | None = None
    message: str | None = None
    shape: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class SealPayload(BaseModel):
    """The JSON document inside `signedPayload` (JWT-style claim names)."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    info: dict[str, Any] = Field(default_factory=dict)
    issuer: str = Field(alias="iss")
    subject: str = Field(alias="sub")
    issued_at: int = Field(alias="iat")
    nonce: str = Field(alias="jti")


class SealEnvelope(BaseModel):
    """Signing authority reply: the exact signed bytes plus their signature."""

    model_config = ConfigDict(populate_by_name=True)

    signed_payload: str = Field(alias="signedPayload")
    signature: str
    issuer: str = Field(alias="issuerDid")


# ---------------------------------------------------------------------------
# Collaborator payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StoredRecord:
    """One record as returned by repository storage."""

    uri: str
    cid: str
    value: dict[str, Any] = field(default_factory=dict)

    @property
    def ref(self) -> RecordRef:
        return RecordRef.parse(self.uri)


@dataclass(frozen=True)
class RecordPage:
    records: list[StoredRecord]
    cursor: str | None = None


@dataclass(frozen=True)
class Backlink:
    """A record elsewhere that references the queried subject."""

    did: str
    collection: str
    rkey: str
    uri: str | None = None
    value: dict[str, Any] | None = None

    @property
    def ref(self) -> RecordRef:
        return RecordRef(self.did, self.collection, self.rkey)


@dataclass(frozen=True)
class BacklinkPage:
    records: list[Backlink]
    cursor: str | None = None


@dataclass(frozen=True)
class ProfileSummary:
    did: str
    handle: str
    display_name: str | None = None
    avatar: str | None = None
