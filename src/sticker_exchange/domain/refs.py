"""Record references and item identity.

A record reference is the stable 3-part path `at://{repo}/{collection}/{rkey}`.
It is the key used for de-duplication and for backlink queries.
"""

from __future__ import annotations

from dataclasses import dataclass

from sticker_exchange.domain.enums import PROFILE_COLLECTION, PROFILE_RKEY

AT_URI_SCHEME = "at://"


@dataclass(frozen=True)
class RecordRef:
    repo: str
    collection: str
    rkey: str

    @classmethod
    def parse(cls, uri: str) -> RecordRef:
        """Parse an `at://` URI into its three parts.

        Raises:
            ValueError: If the URI does not have exactly three path parts.
        """
        body = uri.removeprefix(AT_URI_SCHEME)
        parts = body.split("/")
        if len(parts) != 3 or not all(parts):
            raise ValueError(f"Not a record reference: {uri!r}")
        return cls(repo=parts[0], collection=parts[1], rkey=parts[2])

    @classmethod
    def try_parse(cls, uri: str | None) -> RecordRef | None:
        if not uri:
            return None
        try:
            return cls.parse(uri)
        except ValueError:
            return None

    @property
    def uri(self) -> str:
        return f"{AT_URI_SCHEME}{self.repo}/{self.collection}/{self.rkey}"

    def __str__(self) -> str:
        return self.uri


def profile_ref(did: str) -> str:
    """Canonical reference of a party, used as the backlink anchor."""
    return RecordRef(did, PROFILE_COLLECTION, PROFILE_RKEY).uri


@dataclass(frozen=True)
class StickerIdentity:
    """Logical identity of a sticker, shared by every physical copy."""

    subject_did: str | None
    original_owner: str | None
    model: str
    shape: str | None = None
