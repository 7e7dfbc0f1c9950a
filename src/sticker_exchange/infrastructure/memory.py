"""In-memory collaborators for tests and the local simulation.

These follow the same contracts as the HTTP clients: record keys are
time-ordered, content hashes change on every distinct write, listings are
newest first, and the backlink index is derived from stored records (with
optional lag so eventual consistency can be exercised).
"""

from __future__ import annotations

import base64
import copy
import hashlib
import itertools
import json
import time
from collections import defaultdict
from typing import TYPE_CHECKING, Any

from sticker_exchange.domain.exceptions import (
    BacklinkIndexError,
    DirectoryResolutionError,
    RecordNotFoundError,
    StorageError,
)
from sticker_exchange.domain.refs import RecordRef
from sticker_exchange.schemas.records import (
    Backlink,
    BacklinkPage,
    ProfileSummary,
    RecordPage,
    StoredRecord,
)
from sticker_exchange.seals.keys import DID_KEY_PREFIX

if TYPE_CHECKING:
    from collections.abc import Iterator

_TID_ALPHABET = "234567abcdefghijklmnopqrstuvwxyz"


class _TidClock:
    """Monotonic, lexicographically sortable record keys."""

    def __init__(self) -> None:
        self._last = 0

    def next(self) -> str:
        self._last = max(time.time_ns() // 1000, self._last + 1)
        value = self._last << 10
        chars = []
        for _ in range(13):
            chars.append(_TID_ALPHABET[value & 31])
            value >>= 5
        return "".join(reversed(chars))


def content_hash(value: dict[str, Any]) -> str:
    digest = hashlib.sha256(json.dumps(value, sort_keys=True).encode("utf-8")).digest()
    return "bafyrei" + base64.b32encode(digest).decode("ascii").lower().rstrip("=")


def _offset(cursor: str | None) -> int:
    return int(cursor) if cursor else 0


class InMemoryRepositoryStorage:
    """RepositoryStorage holding every party's repository in one process.

    Attributes:
        unreachable: Repos whose host is "down"; every call raises StorageError.
        writes: Log of (operation, uri) for every successful write.
    """

    def __init__(self) -> None:
        self._repos: dict[str, dict[str, dict[str, StoredRecord]]] = defaultdict(
            lambda: defaultdict(dict)
        )
        self._sequence: dict[str, int] = {}
        self._counter = itertools.count()
        self._tids = _TidClock()
        self.unreachable: set[str] = set()
        self.writes: list[tuple[str, str]] = []

    # --- RepositoryStorage -------------------------------------------

    async def list_records(
        self,
        repo: str,
        collection: str,
        cursor: str | None = None,
        limit: int = 50,
    ) -> RecordPage:
        self._check_reachable(repo)
        ordered = sorted(
            self._repos[repo][collection].values(),
            key=lambda r: RecordRef.parse(r.uri).rkey,
            reverse=True,
        )
        start = _offset(cursor)
        page = [self._copy(r) for r in ordered[start : start + limit]]
        end = start + len(page)
        return RecordPage(records=page, cursor=str(end) if end < len(ordered) else None)

    async def get_record(self, repo: str, collection: str, rkey: str) -> StoredRecord:
        self._check_reachable(repo)
        record = self._repos[repo][collection].get(rkey)
        if record is None:
            raise RecordNotFoundError(RecordRef(repo, collection, rkey).uri)
        return self._copy(record)

    async def create_record(
        self, repo: str, collection: str, value: dict[str, Any]
    ) -> StoredRecord:
        self._check_reachable(repo)
        return self._store(repo, collection, self._tids.next(), value, "create")

    async def put_record(
        self,
        repo: str,
        collection: str,
        rkey: str,
        value: dict[str, Any],
        swap_cid: str | None = None,
    ) -> StoredRecord:
        self._check_reachable(repo)
        current = self._repos[repo][collection].get(rkey)
        if swap_cid is not None and (current is None or current.cid != swap_cid):
            raise StorageError(
                f"InvalidSwap: {RecordRef(repo, collection, rkey).uri} has changed",
                repo=repo,
            )
        return self._store(repo, collection, rkey, value, "put")

    async def delete_record(self, repo: str, collection: str, rkey: str) -> None:
        self._check_reachable(repo)
        record = self._repos[repo][collection].pop(rkey, None)
        if record is not None:
            self._sequence.pop(record.uri, None)
            self.writes.append(("delete", record.uri))

    # --- Test helpers -------------------------------------------------

    def seed(
        self,
        repo: str,
        collection: str,
        value: dict[str, Any],
        rkey: str | None = None,
    ) -> StoredRecord:
        """Insert a record directly, bypassing reachability and the write log."""
        return self._store(repo, collection, rkey or self._tids.next(), value, None)

    def values(self, repo: str, collection: str) -> list[dict[str, Any]]:
        """Record values of one collection, oldest first."""
        records = sorted(
            self._repos[repo][collection].values(), key=lambda r: self._sequence[r.uri]
        )
        return [copy.deepcopy(r.value) for r in records]

    def iter_collection(self, collection: str) -> Iterator[StoredRecord]:
        """Every record of `collection` across all repos, in creation order."""
        records = [
            record
            for collections in self._repos.values()
            for record in collections.get(collection, {}).values()
        ]
        for record in sorted(records, key=lambda r: self._sequence[r.uri]):
            yield self._copy(record)

    def write_count(self, repo: str | None = None) -> int:
        if repo is None:
            return len(self.writes)
        prefix = f"at://{repo}/"
        return sum(1 for _, uri in self.writes if uri.startswith(prefix))

    # --- Internals ----------------------------------------------------

    def _store(
        self,
        repo: str,
        collection: str,
        rkey: str,
        value: dict[str, Any],
        operation: str | None,
    ) -> StoredRecord:
        uri = RecordRef(repo, collection, rkey).uri
        stored = StoredRecord(uri=uri, cid=content_hash(value), value=copy.deepcopy(value))
        self._repos[repo][collection][rkey] = stored
        self._sequence.setdefault(uri, next(self._counter))
        if operation is not None:
            self.writes.append((operation, uri))
        return self._copy(stored)

    def _check_reachable(self, repo: str) -> None:
        if repo in self.unreachable:
            raise StorageError(f"Repository host for {repo} is unreachable", repo=repo)

    @staticmethod
    def _copy(record: StoredRecord) -> StoredRecord:
        return StoredRecord(uri=record.uri, cid=record.cid, value=copy.deepcopy(record.value))


def _lookup(value: Any, path: str) -> Any:
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


class InMemoryBacklinkIndex:
    """BacklinkIndex computed from an InMemoryRepositoryStorage.

    Attributes:
        hydrate: Include record values in results (the "frames" shape).
        lagging: Record URIs the index has not caught up with yet.
        available: When False every query raises BacklinkIndexError.
    """

    def __init__(self, storage: InMemoryRepositoryStorage, hydrate: bool = False) -> None:
        self._storage = storage
        self.hydrate = hydrate
        self.lagging: set[str] = set()
        self.available = True
        self.queries = 0

    async def get_backlinks(
        self,
        subject: str,
        source: str,
        cursor: str | None = None,
        limit: int = 100,
    ) -> BacklinkPage:
        self.queries += 1
        if not self.available:
            raise BacklinkIndexError("Backlink index unavailable")

        collection, _, path = source.partition(":")
        matches = [
            record
            for record in self._storage.iter_collection(collection)
            if record.uri not in self.lagging and _lookup(record.value, path) == subject
        ]
        start = _offset(cursor)
        page = matches[start : start + limit]
        end = start + len(page)
        links = []
        for record in page:
            ref = record.ref
            links.append(
                Backlink(
                    did=ref.repo,
                    collection=ref.collection,
                    rkey=ref.rkey,
                    uri=record.uri,
                    value=record.value if self.hydrate else None,
                )
            )
        return BacklinkPage(records=links, cursor=str(end) if end < len(matches) else None)


class StaticDirectory:
    """DirectoryResolver over fixed tables."""

    def __init__(
        self,
        handles: dict[str, str] | None = None,
        signing_keys: dict[str, str] | None = None,
    ) -> None:
        self.handles = dict(handles or {})
        self.signing_keys = dict(signing_keys or {})
        self.unresolvable: set[str] = set()
        self.key_lookups = 0
        self.handle_lookups = 0

    async def resolve_endpoint(self, did: str) -> str:
        if did in self.unresolvable:
            raise DirectoryResolutionError(did, "not in directory")
        return f"memory://{did}"

    async def resolve_signing_key(self, did: str) -> str:
        self.key_lookups += 1
        if did in self.unresolvable:
            raise DirectoryResolutionError(did, "not in directory")
        if did.startswith(DID_KEY_PREFIX):
            return did
        try:
            return self.signing_keys[did]
        except KeyError:
            raise DirectoryResolutionError(did, "no signing key") from None

    async def resolve_handle(self, handle: str) -> str:
        self.handle_lookups += 1
        try:
            return self.handles[handle]
        except KeyError:
            raise DirectoryResolutionError(handle, "unknown handle") from None


class StaticProfiles:
    """ProfileLookup over a fixed table."""

    def __init__(self, profiles: list[ProfileSummary] | None = None) -> None:
        self._profiles = {p.did: p for p in profiles or []}

    def add(
        self,
        did: str,
        handle: str,
        display_name: str | None = None,
        avatar: str | None = None,
    ) -> None:
        self._profiles[did] = ProfileSummary(
            did=did, handle=handle, display_name=display_name, avatar=avatar
        )

    async def get_profile(self, did: str) -> ProfileSummary | None:
        return self._profiles.get(did)
