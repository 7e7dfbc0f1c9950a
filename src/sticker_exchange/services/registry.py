"""Registry ("hub") membership.

Every participant writes one config record whose `hubRef` points at the
registry identity's profile. The backlink index over that field is the
member list the matcher draws partners from.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sticker_exchange.domain.enums import BacklinkSource, Collection
from sticker_exchange.domain.refs import profile_ref
from sticker_exchange.infrastructure.backlinks import collect_backlinks
from sticker_exchange.infrastructure.paging import list_all_records
from sticker_exchange.logging_config import get_logger
from sticker_exchange.schemas.records import Config

if TYPE_CHECKING:
    from sticker_exchange.domain.protocols import (
        BacklinkIndex,
        DirectoryResolver,
        RepositoryStorage,
    )
    from sticker_exchange.infrastructure.caches import ProtocolCaches

logger = get_logger(__name__)

# Wiped by delete_all_data. Likes stay, they live on other people's items.
OWNED_COLLECTIONS = (Collection.STICKER, Collection.TRANSACTION, Collection.CONFIG)


class RegistryService:
    """Registry identity, membership pointer and member listing."""

    def __init__(
        self,
        did: str,
        storage: RepositoryStorage,
        backlinks: BacklinkIndex,
        directory: DirectoryResolver,
        caches: ProtocolCaches,
        hub_handle: str,
        page_size: int = 50,
        backlink_page_size: int = 100,
    ) -> None:
        self._did = did
        self._storage = storage
        self._backlinks = backlinks
        self._directory = directory
        self._caches = caches
        self._hub_handle = hub_handle
        self._page_size = page_size
        self._backlink_page_size = backlink_page_size

    async def get_hub_did(self) -> str:
        """Resolve the registry handle once per runtime.

        Raises:
            DirectoryResolutionError: If the handle cannot be resolved.
        """

        async def load() -> str:
            return await self._directory.resolve_handle(self._hub_handle)

        return await self._caches.registry.get_or_load(self._hub_handle, load)

    async def hub_ref(self) -> str:
        return profile_ref(await self.get_hub_did())

    async def ensure_hub_ref(self) -> bool:
        """Write the membership pointer if missing. Returns True when written."""
        existing = await self._storage.list_records(self._did, Collection.CONFIG, limit=1)
        if existing.records:
            return False

        config = Config(hub_ref=await self.hub_ref())
        await self._storage.create_record(self._did, Collection.CONFIG, config.to_record())
        logger.info("registry.joined", did=self._did, hub=config.hub_ref)
        return True

    async def get_hub_members(self) -> list[str]:
        """DIDs of every repository pointing at the registry, de-duplicated."""
        links = await collect_backlinks(
            self._backlinks,
            await self.hub_ref(),
            BacklinkSource.HUB_MEMBER,
            page_size=self._backlink_page_size,
        )
        return list(dict.fromkeys(link.did for link in links))

    async def delete_all_data(self) -> int:
        """Delete every sticker, transaction and config record of self."""
        deleted = 0
        for collection in OWNED_COLLECTIONS:
            records = await list_all_records(
                self._storage, self._did, collection, page_size=self._page_size
            )
            for record in records:
                await self._storage.delete_record(self._did, collection, record.ref.rkey)
                deleted += 1
        logger.warning("registry.data_deleted", did=self._did, records=deleted)
        return deleted
