"""Domain enumerations for the sticker exchange.

Values are the wire strings stored in repository records, so they must not
change once records exist.
"""

import enum


class Collection(enum.StrEnum):
    """Versioned record namespaces (NSIDs) owned by this application."""

    STICKER = "blue.atsumeat.sticker"
    TRANSACTION = "blue.atsumeat.transaction"
    CONFIG = "blue.atsumeat.config"
    STICKER_LIKE = "blue.atsumeat.stickerLike"


PROFILE_COLLECTION = "app.bsky.actor.profile"
PROFILE_RKEY = "self"


class TransactionStatus(enum.StrEnum):
    """Lifecycle states of one party's transaction record.

    Transitions are enforced by TransactionStateMachine.
    See domain/state_machine.py for the transition table.
    """

    OFFERED = "offered"
    COMPLETED = "completed"
    REJECTED = "rejected"


class ImageType(enum.StrEnum):
    AVATAR = "avatar"
    CUSTOM = "custom"


class CloneOutcome(enum.StrEnum):
    """Result of one idempotent clone step."""

    CLONED = "cloned"
    ALREADY_HELD = "already_held"
    SEAL_FAILED = "seal_failed"

    @property
    def processed(self) -> bool:
        """A held duplicate counts as processed; a failed seal does not."""
        return self is not CloneOutcome.SEAL_FAILED


class BacklinkSource(enum.StrEnum):
    """`collection:path` selectors understood by the backlink index."""

    OFFER_PARTNER = f"{Collection.TRANSACTION}:refPartner"
    OFFER_ANSWER = f"{Collection.TRANSACTION}:refTransaction"
    HUB_MEMBER = f"{Collection.CONFIG}:hubRef"
    STICKER_LIKE = f"{Collection.STICKER_LIKE}:subject.uri"
