"""Collaborator Protocols.

Defines the interfaces of the external systems the exchange runs on top of.
These are Protocols (structural subtyping) so the HTTP clients in
infrastructure/ and the in-memory stand-ins used by tests and the simulation
only need to match the shape.

Concrete implementations:
    - infrastructure/xrpc.py        (RepositoryStorage over XRPC)
    - infrastructure/backlinks.py   (BacklinkIndex over Constellation)
    - infrastructure/directory.py   (DirectoryResolver over PLC / did:web)
    - infrastructure/appview.py     (ProfileLookup and RecordReader over the app view)
    - seals/authority.py            (SigningAuthority, local or over HTTP)
    - infrastructure/memory.py      (in-memory versions of all of the above)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from sticker_exchange.schemas.records import (
        BacklinkPage,
        ProfileSummary,
        RecordPage,
        SealEnvelope,
        SealInfo,
        StoredRecord,
    )


@runtime_checkable
class RepositoryStorage(Protocol):
    """Per-repository append/list/get/delete record store.

    `get_record` raises RecordNotFoundError for a missing key and every
    method raises StorageError on transport failure.
    """

    async def list_records(
        self,
        repo: str,
        collection: str,
        cursor: str | None = None,
        limit: int = 50,
    ) -> RecordPage: ...

    async def get_record(self, repo: str, collection: str, rkey: str) -> StoredRecord: ...

    async def create_record(
        self, repo: str, collection: str, value: dict[str, Any]
    ) -> StoredRecord: ...

    async def put_record(
        self,
        repo: str,
        collection: str,
        rkey: str,
        value: dict[str, Any],
        swap_cid: str | None = None,
    ) -> StoredRecord: ...

    async def delete_record(self, repo: str, collection: str, rkey: str) -> None: ...


@runtime_checkable
class BacklinkIndex(Protocol):
    """Eventually consistent index of records referencing a subject."""

    async def get_backlinks(
        self,
        subject: str,
        source: str,
        cursor: str | None = None,
        limit: int = 100,
    ) -> BacklinkPage: ...


@runtime_checkable
class DirectoryResolver(Protocol):
    """Resolves identifiers to repository endpoints and signing keys."""

    async def resolve_endpoint(self, did: str) -> str: ...

    async def resolve_signing_key(self, did: str) -> str:
        """Return the `did:key` form of the identifier's signing key."""
        ...

    async def resolve_handle(self, handle: str) -> str: ...


@runtime_checkable
class ProfileLookup(Protocol):
    async def get_profile(self, did: str) -> ProfileSummary | None: ...


@runtime_checkable
class SigningAuthority(Protocol):
    """Sole holder of the issuer private key."""

    async def issue(self, holder: str, info: SealInfo) -> SealEnvelope:
        """Stamp issuer/subject/issued-at/nonce onto `info`, sign, return the envelope."""
        ...


@runtime_checkable
class RecordReader(Protocol):
    """Read-only record access, e.g. a cached app view."""

    async def get_record(self, repo: str, collection: str, rkey: str) -> StoredRecord: ...
