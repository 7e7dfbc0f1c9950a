"""Public app view: profile lookups and its cached record reads.

The cached `getRecord` endpoint is a fallback for records whose host is
slow or unreachable; it may serve stale data.
"""

from __future__ import annotations

import httpx

from sticker_exchange.domain.exceptions import StorageError
from sticker_exchange.domain.refs import RecordRef
from sticker_exchange.infrastructure.xrpc import xrpc_query
from sticker_exchange.logging_config import get_logger
from sticker_exchange.schemas.records import ProfileSummary, StoredRecord

logger = get_logger(__name__)


class AppViewClient:
    """ProfileLookup and read-only record access through the app view."""

    def __init__(self, http: httpx.AsyncClient, base_url: str) -> None:
        self._http = http
        self._base_url = base_url.rstrip("/")

    async def get_profile(self, did: str) -> ProfileSummary | None:
        """Return the public profile of `did`, or None when unavailable."""
        try:
            data = await xrpc_query(
                self._http, self._base_url, "app.bsky.actor.getProfile", {"actor": did}
            )
        except StorageError as exc:
            logger.debug("appview.profile_unavailable", did=did, error=exc.message)
            return None

        return ProfileSummary(
            did=data.get("did") or did,
            handle=data.get("handle") or did,
            display_name=data.get("displayName") or None,
            avatar=data.get("avatar") or None,
        )

    async def get_record(self, repo: str, collection: str, rkey: str) -> StoredRecord:
        uri = RecordRef(repo, collection, rkey).uri
        data = await xrpc_query(
            self._http,
            self._base_url,
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
