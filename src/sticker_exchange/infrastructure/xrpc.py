"""RepositoryStorage over the com.atproto.repo XRPC methods.

Reads are routed to the repository's own host, resolved through the
directory and remembered in the endpoint cache. Writes only ever go to the
session's own repository, authenticated with its bearer token.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from sticker_exchange.domain.exceptions import (
    DirectoryResolutionError,
    RecordNotFoundError,
    StorageError,
)
from sticker_exchange.domain.refs import RecordRef
from sticker_exchange.logging_config import get_logger
from sticker_exchange.schemas.records import RecordPage, StoredRecord

if TYPE_CHECKING:
    from sticker_exchange.domain.protocols import DirectoryResolver
    from sticker_exchange.infrastructure.caches import ProtocolCaches

logger = get_logger(__name__)

NOT_FOUND_ERRORS = frozenset({"RecordNotFound", "NotFound"})


@dataclass(frozen=True)
class RepositorySession:
    """An authenticated session on the caller's own repository host."""

    did: str
    endpoint: str
    access_token: str


def _error_name(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    return body.get("error") if isinstance(body, dict) else None


async def xrpc_query(
    http: httpx.AsyncClient,
    endpoint: str,
    nsid: str,
    params: dict[str, Any],
    *,
    repo: str | None = None,
    missing_uri: str | None = None,
) -> dict[str, Any]:
    """GET an XRPC query and return its JSON body.

    Raises:
        RecordNotFoundError: When `missing_uri` is given and the host reports
            the record as absent.
        StorageError: On any other failure.
    """
    url = f"{endpoint.rstrip('/')}/xrpc/{nsid}"
    query = {k: v for k, v in params.items() if v is not None}
    try:
        response = await http.get(url, params=query)
    except httpx.HTTPError as exc:
        raise StorageError(f"{nsid} failed: {exc}", repo=repo) from exc

    if response.status_code == 200:
        try:
            data = response.json()
        except ValueError as exc:
            raise StorageError(f"{nsid} returned invalid JSON", repo=repo) from exc
        if not isinstance(data, dict):
            raise StorageError(f"{nsid} returned a non-object body", repo=repo)
        return data

    if missing_uri and (
        response.status_code == 404 or _error_name(response) in NOT_FOUND_ERRORS
    ):
        raise RecordNotFoundError(missing_uri)
    raise StorageError(f"{nsid} failed: HTTP {response.status_code}", repo=repo)


class XrpcRepositoryClient:
    """Talks to repository hosts through com.atproto.repo.*."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        directory: DirectoryResolver,
        caches: ProtocolCaches,
        session: RepositorySession | None = None,
    ) -> None:
        self._http = http
        self._directory = directory
        self._caches = caches
        self._session = session

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_records(
        self,
        repo: str,
        collection: str,
        cursor: str | None = None,
        limit: int = 50,
    ) -> RecordPage:
        endpoint = await self._endpoint(repo)
        data = await xrpc_query(
            self._http,
            endpoint,
            "com.atproto.repo.listRecords",
            {"repo": repo, "collection": collection, "limit": limit, "cursor": cursor},
            repo=repo,
        )
        records = [
            StoredRecord(uri=r["uri"], cid=r.get("cid", ""), value=r.get("value") or {})
            for r in data.get("records") or []
            if isinstance(r, dict) and r.get("uri")
        ]
        return RecordPage(records=records, cursor=data.get("cursor") or None)

    async def get_record(self, repo: str, collection: str, rkey: str) -> StoredRecord:
        endpoint = await self._endpoint(repo)
        uri = RecordRef(repo, collection, rkey).uri
        data = await xrpc_query(
            self._http,
            endpoint,
            "com.atproto.repo.getRecord",
            {"repo": repo, "collection": collection, "rkey": rkey},
            repo=repo,
            missing_uri=uri,
        )
        return StoredRecord(
            uri=data.get("uri") or uri,
            cid=data.get("cid", ""),
            value=data.get("value") or {},
        )

    # ------------------------------------------------------------------
    # Writes (own repository only)
    # ------------------------------------------------------------------

    async def create_record(
        self, repo: str, collection: str, value: dict[str, Any]
    ) -> StoredRecord:
        data = await self._procedure(
            repo,
            "com.atproto.repo.createRecord",
            {"repo": repo, "collection": collection, "record": value},
        )
        return StoredRecord(uri=data["uri"], cid=data.get("cid", ""), value=value)

    async def put_record(
        self,
        repo: str,
        collection: str,
        rkey: str,
        value: dict[str, Any],
        swap_cid: str | None = None,
    ) -> StoredRecord:
        body: dict[str, Any] = {
            "repo": repo,
            "collection": collection,
            "rkey": rkey,
            "record": value,
        }
        if swap_cid:
            body["swapRecord"] = swap_cid
        data = await self._procedure(repo, "com.atproto.repo.putRecord", body)
        uri = data.get("uri") or RecordRef(repo, collection, rkey).uri
        return StoredRecord(uri=uri, cid=data.get("cid", ""), value=value)

    async def delete_record(self, repo: str, collection: str, rkey: str) -> None:
        await self._procedure(
            repo,
            "com.atproto.repo.deleteRecord",
            {"repo": repo, "collection": collection, "rkey": rkey},
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _endpoint(self, repo: str) -> str:
        if self._session is not None and repo == self._session.did:
            return self._session.endpoint

        async def load() -> str:
            return await self._directory.resolve_endpoint(repo)

        try:
            endpoint = await self._caches.endpoints.get_or_load(repo, load)
        except DirectoryResolutionError as exc:
            raise StorageError(exc.message, repo=repo) from exc
        if endpoint is None:
            raise StorageError(f"No repository endpoint for {repo}", repo=repo)
        return endpoint

    async def _procedure(self, repo: str, nsid: str, body: dict[str, Any]) -> dict[str, Any]:
        session = self._session
        if session is None or repo != session.did:
            raise StorageError(f"Refusing to write to foreign repository {repo}", repo=repo)

        url = f"{session.endpoint.rstrip('/')}/xrpc/{nsid}"
        headers = {"Authorization": f"Bearer {session.access_token}"}
        try:
            response = await self._http.post(url, json=body, headers=headers)
        except httpx.HTTPError as exc:
            raise StorageError(f"{nsid} failed: {exc}", repo=repo) from exc

        if response.status_code != 200:
            error = _error_name(response) or f"HTTP {response.status_code}"
            logger.warning("storage.write_failed", nsid=nsid, repo=repo, error=error)
            raise StorageError(f"{nsid} failed: {error}", repo=repo)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}
