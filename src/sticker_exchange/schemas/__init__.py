"""Pydantic record and API schemas."""

from sticker_exchange.schemas.api import (
    HealthResponse,
    SignSealRequest,
    SignSealResponse,
)
from sticker_exchange.schemas.records import (
    Backlink,
    BacklinkPage,
    BlobRef,
    Config,
    ProfileSummary,
    RecordPage,
    SealEnvelope,
    SealInfo,
    SealPayload,
    Sticker,
    StickerLike,
    StoredRecord,
    StrongRef,
    Transaction,
)

__all__ = [
    "Backlink",
    "BacklinkPage",
    "BlobRef",
    "Config",
    "HealthResponse",
    "ProfileSummary",
    "RecordPage",
    "SealEnvelope",
    "SealInfo",
    "SealPayload",
    "SignSealRequest",
    "SignSealResponse",
    "Sticker",
    "StickerLike",
    "StoredRecord",
    "StrongRef",
    "Transaction",
]
