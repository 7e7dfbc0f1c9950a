"""BacklinkIndex over the Constellation link index.

The index answers "which records reference this subject through this
`collection:path` source". Responses come in three shapes depending on the
deployment:

    {"records": [{"did", "collection", "rkey"}, ...], "cursor": ...}
    {"frames":  [{"author": {"did"}, "uri", "value"}, ...]}
    {"links":   [...same as frames...]}

All of them are normalised to `Backlink`. Results are eventually consistent
and may lag the repositories they describe.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx

from sticker_exchange.domain.exceptions import BacklinkIndexError
from sticker_exchange.domain.refs import RecordRef
from sticker_exchange.logging_config import get_logger
from sticker_exchange.schemas.records import Backlink, BacklinkPage

if TYPE_CHECKING:
    from sticker_exchange.domain.protocols import BacklinkIndex

logger = get_logger(__name__)

GET_BACKLINKS = "blue.microcosm.links.getBacklinks"


def normalize_backlink(entry: dict[str, Any]) -> Backlink | None:
    """Turn any of the index's entry shapes into a Backlink, or None if unusable."""
    author = entry.get("author")
    did = entry.get("did") or (author.get("did") if isinstance(author, dict) else None)
    collection = entry.get("collection")
    rkey = entry.get("rkey")
    uri = entry.get("uri")

    parsed = RecordRef.try_parse(uri)
    if parsed is not None:
        did = did or parsed.repo
        collection = collection or parsed.collection
        rkey = rkey or parsed.rkey

    if not (did and collection and rkey):
        return None

    value = entry.get("value")
    return Backlink(
        did=did,
        collection=collection,
        rkey=rkey,
        uri=uri or RecordRef(did, collection, rkey).uri,
        value=value if isinstance(value, dict) else None,
    )


class ConstellationClient:
    """Queries a Constellation deployment over HTTP."""

    def __init__(self, http: httpx.AsyncClient, base_url: str) -> None:
        self._http = http
        self._url = f"{base_url.rstrip('/')}/xrpc/{GET_BACKLINKS}"

    async def get_backlinks(
        self,
        subject: str,
        source: str,
        cursor: str | None = None,
        limit: int = 100,
    ) -> BacklinkPage:
        params: dict[str, Any] = {"subject": subject, "source": source, "limit": limit}
        if cursor:
            params["cursor"] = cursor

        try:
            response = await self._http.get(self._url, params=params)
        except httpx.HTTPError as exc:
            raise BacklinkIndexError(f"Backlink index unreachable: {exc}") from exc
        if response.status_code != 200:
            raise BacklinkIndexError(f"Backlink index error: HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            raise BacklinkIndexError("Backlink index returned invalid JSON") from exc

        batch = data.get("records") or data.get("frames") or data.get("links") or []
        links = [
            link
            for link in (normalize_backlink(e) for e in batch if isinstance(e, dict))
            if link is not None
        ]
        return BacklinkPage(records=links, cursor=data.get("cursor") or None)


async def collect_backlinks(
    index: BacklinkIndex,
    subject: str,
    source: str,
    page_size: int = 100,
) -> list[Backlink]:
    """Follow cursors until exhausted. A failing page ends pagination."""
    collected: list[Backlink] = []
    cursor: str | None = None
    while True:
        try:
            page = await index.get_backlinks(subject, source, cursor=cursor, limit=page_size)
        except BacklinkIndexError as exc:
            logger.warning(
                "backlinks.page_failed",
                subject=subject,
                source=source,
                collected=len(collected),
                error=exc.message,
            )
            break
        collected.extend(page.records)
        if not page.cursor or page.cursor == cursor:
            break
        cursor = page.cursor
    return collected
