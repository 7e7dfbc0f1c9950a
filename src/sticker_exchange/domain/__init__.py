"""Domain layer — protocol types and rules with zero transport dependencies."""

from sticker_exchange.domain.enums import (
    BacklinkSource,
    CloneOutcome,
    Collection,
    TransactionStatus,
)
from sticker_exchange.domain.exceptions import (
    ExchangeError,
    IntegrityViolationError,
    InvalidStateTransitionError,
    OfferNotFoundError,
    RecordNotFoundError,
    StorageError,
)
from sticker_exchange.domain.protocols import (
    BacklinkIndex,
    DirectoryResolver,
    ProfileLookup,
    RecordReader,
    RepositoryStorage,
    SigningAuthority,
)
from sticker_exchange.domain.refs import RecordRef, StickerIdentity, profile_ref
from sticker_exchange.domain.state_machine import (
    TransactionStateMachine,
    validate_transition,
)

__all__ = [
    "BacklinkIndex",
    "BacklinkSource",
    "CloneOutcome",
    "Collection",
    "DirectoryResolver",
    "ExchangeError",
    "IntegrityViolationError",
    "InvalidStateTransitionError",
    "OfferNotFoundError",
    "ProfileLookup",
    "RecordNotFoundError",
    "RecordReader",
    "RecordRef",
    "RepositoryStorage",
    "SigningAuthority",
    "StickerIdentity",
    "StorageError",
    "TransactionStateMachine",
    "TransactionStatus",
    "profile_ref",
    "validate_transition",
]
