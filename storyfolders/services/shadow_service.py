"""Shadow snapshot: a copy of the registry readable by other processes.

The share extension cannot open the registry database. Instead it reads a
small snapshot of sites and stories from a shared defaults store, and queues
items it wants imported as shadow assets in the same store, with the files
themselves placed in the shared folder.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError

from storyfolders.exceptions import UnusableRootError
from storyfolders.filesystem.folder_manager import FolderManager
from storyfolders.schemas.shadow import ShadowAsset, ShadowSite, ShadowStory
from storyfolders.services.folder_service import list_records
from storyfolders.services.site_service import get_sites

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncSession

    from storyfolders.filesystem.defaults_store import DefaultsStore

logger = logging.getLogger(__name__)

SHADOW_SITES_KEY = "shadowSites"
SHADOW_ASSETS_KEY = "shadowAssets"


class ShadowManager:
    """Reads and writes the shadow snapshot."""

    def __init__(self, store: DefaultsStore, shared_dir: Path) -> None:
        self.store = store
        self.shared_dir = shared_dir
        self._shared_folders: FolderManager | None = None

    def _shared_folder_manager(self) -> FolderManager | None:
        if self._shared_folders is None:
            try:
                self.shared_dir.mkdir(parents=True, exist_ok=True)
                self._shared_folders = FolderManager(root=self.shared_dir, trash_dirs=[])
            except (OSError, UnusableRootError) as exc:
                logger.error("Shared folder %s is unusable: %s", self.shared_dir, exc)
                return None
        return self._shared_folders

    def store_shadow_sites(self, sites: list[ShadowSite]) -> None:
        """Replace the site snapshot."""
        self.store.set(SHADOW_SITES_KEY, [s.model_dump(by_alias=True) for s in sites])

    def retrieve_shadow_sites(self) -> list[ShadowSite]:
        """Read the site snapshot. Malformed entries are skipped."""
        sites: list[ShadowSite] = []
        for raw in self.store.get_list(SHADOW_SITES_KEY) or []:
            try:
                sites.append(ShadowSite.model_validate(raw))
            except ValidationError as exc:
                logger.warning("Skipping malformed shadow site: %s", exc)
        return sites

    def store_shadow_assets(self, assets: list[ShadowAsset]) -> None:
        """Append assets to the import queue."""
        queued = self.store.get_list(SHADOW_ASSETS_KEY) or []
        queued.extend(a.model_dump(by_alias=True) for a in assets)
        self.store.set(SHADOW_ASSETS_KEY, queued)

    def retrieve_shadow_assets(self) -> list[ShadowAsset]:
        """Read the import queue. Malformed entries are skipped."""
        assets: list[ShadowAsset] = []
        for raw in self.store.get_list(SHADOW_ASSETS_KEY) or []:
            try:
                assets.append(ShadowAsset.model_validate(raw))
            except ValidationError as exc:
                logger.warning("Skipping malformed shadow asset: %s", exc)
        return assets

    def clear_shadow_assets(self) -> bool:
        """Empty the import queue and delete the files in the shared folder.

        Returns False if some shared files could not be deleted.
        """
        self.store.remove(SHADOW_ASSETS_KEY)
        folders = self._shared_folder_manager()
        if folders is None:
            return False
        return folders.delete_contents(folders.root)


async def cast_shadows(session: AsyncSession, manager: ShadowManager) -> list[ShadowSite]:
    """Rebuild the site snapshot from the registry and store it.

    Removed story folders are left out.
    """
    shadows: list[ShadowSite] = []
    for site in await get_sites(session):
        records = await list_records(session, site.id, include_removed=False)
        stories = [
            ShadowStory(uuid=r.uuid, title=r.name, bookmark_data=r.bookmark) for r in records
        ]
        shadows.append(ShadowSite(uuid=site.uuid, title=site.title, stories=stories))
    manager.store_shadow_sites(shadows)
    logger.debug("Stored shadow snapshot of %d sites", len(shadows))
    return shadows
