"""Cursor pagination over RepositoryStorage.

Pages of one collection are always fetched sequentially; the cursor of a
page is only known once the previous page has arrived.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sticker_exchange.domain.protocols import RepositoryStorage
    from sticker_exchange.schemas.records import StoredRecord


async def iter_records(
    storage: RepositoryStorage,
    repo: str,
    collection: str,
    page_size: int = 50,
) -> AsyncIterator[StoredRecord]:
    """Yield every record of a collection, following cursors.

    Raises:
        StorageError: If any page fails; records already yielded stand.
    """
    cursor: str | None = None
    while True:
        page = await storage.list_records(repo, collection, cursor=cursor, limit=page_size)
        for record in page.records:
            yield record
        if not page.cursor or page.cursor == cursor:
            return
        cursor = page.cursor


async def list_all_records(
    storage: RepositoryStorage,
    repo: str,
    collection: str,
    page_size: int = 50,
) -> list[StoredRecord]:
    return [record async for record in iter_records(storage, repo, collection, page_size)]
