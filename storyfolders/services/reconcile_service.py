"""Reconcile story folders on disk with their registry records.

Folders can be created, deleted or moved outside the application. A pass
compares the folders directly under a site folder with the site's records,
by filesystem identity, and repairs the differences:

* records whose folder is gone (or stale, trashed, moved out of the site
  folder, or already claimed by another record) are deleted with their assets;
* folders without a record get one, in name order;
* a removed record whose folder is still on disk is revived;
* matched records pick up the folder's current name.

Symlinks in the site folder that point somewhere else are not story folders.

Nothing is cached between calls, so an interrupted pass is simply
recomputed by the next one.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from storyfolders.services import folder_service
from storyfolders.services.datetime_service import now_utc
from storyfolders.services.event_service import ChangeKind, RegistryChange
from storyfolders.services.site_service import ensure_site_folder, get_site, site_folder_path
from storyfolders.services.sort_service import OrderSpec

if TYPE_CHECKING:
    from collections.abc import Awaitable
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncSession

    from storyfolders.filesystem.folder_manager import FolderManager
    from storyfolders.models import Site
    from storyfolders.services.event_service import EventChannel

logger = logging.getLogger(__name__)

_Identity = tuple[int, int]


def _identity(path: Path) -> _Identity | None:
    try:
        stat = os.stat(path)
    except OSError:
        return None
    return stat.st_dev, stat.st_ino


@dataclass
class FolderInconsistencies:
    """Differences between a site folder and its records."""

    site_folder: Path | None
    unregistered: list[Path] = field(default_factory=list)
    orphaned: list[str] = field(default_factory=list)
    revivable: list[tuple[str, Path]] = field(default_factory=list)
    renamed: list[tuple[str, Path]] = field(default_factory=list)

    @property
    def has_any(self) -> bool:
        """True if the sets differ. Name drift alone does not count."""
        return (
            self.site_folder is None
            or bool(self.unregistered)
            or bool(self.orphaned)
            or bool(self.revivable)
        )


@dataclass
class ReconcileResult:
    """UUIDs of the records touched by a pass."""

    created: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    revived: list[str] = field(default_factory=list)
    renamed: list[str] = field(default_factory=list)
    failed: int = 0
    site_folder_recreated: bool = False

    @property
    def changed(self) -> bool:
        return bool(
            self.created
            or self.deleted
            or self.revived
            or self.renamed
            or self.site_folder_recreated
        )


class Reconciler:
    """Repairs drift between the folders of one site and its registry records.

    Only one pass may run against a root at a time; callers serialize.
    """

    def __init__(
        self,
        session: AsyncSession,
        folder_manager: FolderManager,
        site_uuid: str,
        events: EventChannel | None = None,
    ) -> None:
        self.session = session
        self.folder_manager = folder_manager
        self.site_uuid = site_uuid
        self.events = events

    async def _load_site(self) -> Site | None:
        site = await get_site(self.session, self.site_uuid)
        if site is None:
            logger.warning("Site %s not found; nothing to reconcile", self.site_uuid)
        return site

    async def find_inconsistencies(self) -> FolderInconsistencies:
        """Compare the site folder with the records, reading both afresh."""
        site = await self._load_site()
        if site is None:
            return FolderInconsistencies(site_folder=None)
        site_folder = site_folder_path(self.folder_manager, site)
        if site_folder is None:
            return FolderInconsistencies(site_folder=None)
        return await self._compare(site, site_folder)

    async def _compare(self, site: Site, site_folder: Path) -> FolderInconsistencies:
        # Listed paths are resolved, so a symlink whose target lives elsewhere
        # fails the same parent check that records have to pass.
        on_disk: dict[_Identity, Path] = {}
        for path in self.folder_manager.list_folders(site_folder):
            if not self.folder_manager.is_parent_of(site_folder, path):
                logger.debug("Skipping %s: it lies outside %s", path, site_folder)
                continue
            key = _identity(path)
            if key is not None:
                on_disk[key] = path

        oldest_first = [OrderSpec(field="id", direction="asc", case_sensitive=True)]
        records = await folder_service.list_records(self.session, site.id, ordering=oldest_first)

        found = FolderInconsistencies(site_folder=site_folder)
        matched: dict[_Identity, str] = {}
        removed: dict[_Identity, str] = {}
        for record in records:
            path = folder_service.resolve_bookmark(self.folder_manager, record)
            key = None
            if path is not None and self.folder_manager.is_parent_of(site_folder, path):
                key = _identity(path)

            if record.removed:
                if key in on_disk and key not in removed:
                    removed[key] = record.uuid
                continue

            if key is None or key not in on_disk or key in matched:
                found.orphaned.append(record.uuid)
                continue
            matched[key] = record.uuid
            if record.name != on_disk[key].name:
                found.renamed.append((record.uuid, on_disk[key]))

        unregistered: list[Path] = []
        for key, path in on_disk.items():
            if key in matched:
                continue
            if key in removed:
                found.revivable.append((removed[key], path))
            else:
                unregistered.append(path)
        found.unregistered = sorted(unregistered, key=lambda p: p.name)
        return found

    async def has_inconsistencies(self) -> bool:
        """Return True if the site folder and the records disagree."""
        return (await self.find_inconsistencies()).has_any

    async def get_inconsistent_story_folders(self) -> list[Path]:
        """Folders on disk that have no live record."""
        found = await self.find_inconsistencies()
        return [*found.unregistered, *(path for _, path in found.revivable)]

    async def reconcile(self) -> ReconcileResult:
        """Run a repair pass.

        Each repair is committed separately. A failing repair is rolled back,
        logged and skipped; the rest of the pass continues.
        """
        result = ReconcileResult()
        site = await self._load_site()
        if site is None:
            return result
        site_id = site.id

        site_folder = site_folder_path(self.folder_manager, site)
        if site_folder is None:
            logger.info("Folder for site %s is missing; recreating it", self.site_uuid)
            site_folder = await ensure_site_folder(self.session, self.folder_manager, site)
            if site_folder is None:
                logger.error("Unable to recreate folder for site %s", self.site_uuid)
                await self.session.rollback()
                return result
            await self.session.commit()
            result.site_folder_recreated = True

        found = await self._compare(site, site_folder)

        for uuid in found.orphaned:
            if await self._apply(result, "delete orphaned record", uuid, self._delete(uuid)):
                result.deleted.append(uuid)

        for uuid, path in found.revivable:
            if await self._apply(result, "revive record", uuid, self._revive(uuid, path)):
                result.revived.append(uuid)

        for path in found.unregistered:
            bookmark = self.folder_manager.bookmark(path)
            if bookmark is None:
                result.failed += 1
                continue
            created = await self._apply(
                result, "register folder", str(path), self._register(site_id, bookmark, path)
            )
            if created:
                result.created.append(created)

        for uuid, path in found.renamed:
            if await self._apply(result, "refresh name of", uuid, self._rename(uuid, path)):
                result.renamed.append(uuid)

        logger.info(
            "Reconciled site %s: %d created, %d deleted, %d revived, %d renamed, %d failed",
            self.site_uuid,
            len(result.created),
            len(result.deleted),
            len(result.revived),
            len(result.renamed),
            result.failed,
        )
        await self._notify(result)
        return result

    async def process(self) -> ReconcileResult | None:
        """Reconcile only if something is out of sync."""
        if not await self.has_inconsistencies():
            return None
        return await self.reconcile()

    # Repairs

    async def _apply(
        self,
        result: ReconcileResult,
        action: str,
        target: str,
        repair: Awaitable[str | None],
    ) -> str | None:
        try:
            outcome = await repair
            await self.session.commit()
        except SQLAlchemyError:
            logger.exception("Failed to %s %s", action, target)
            await self.session.rollback()
            result.failed += 1
            return None
        return outcome

    async def _delete(self, uuid: str) -> str | None:
        if await folder_service.delete_record(self.session, uuid):
            return uuid
        return None

    async def _revive(self, uuid: str, path: Path) -> str | None:
        record = await folder_service.get_record(self.session, uuid)
        if record is None:
            return None
        record.removed = False
        record.name = path.name
        record.modified_at = now_utc()
        await self.session.flush()
        return uuid

    async def _register(self, site_id: int, bookmark: bytes, path: Path) -> str:
        record = await folder_service.create_record(self.session, site_id, bookmark, path.name)
        return record.uuid

    async def _rename(self, uuid: str, path: Path) -> str | None:
        record = await folder_service.get_record(self.session, uuid)
        if record is None:
            return None
        record.name = path.name
        await self.session.flush()
        return uuid

    async def _notify(self, result: ReconcileResult) -> None:
        if self.events is None:
            return
        changes = [
            *((uuid, ChangeKind.CREATED) for uuid in result.created),
            *((uuid, ChangeKind.DELETED) for uuid in result.deleted),
            *((uuid, ChangeKind.UPDATED) for uuid in [*result.revived, *result.renamed]),
        ]
        for uuid, kind in changes:
            await self.events.publish(RegistryChange(entity="story_folder", kind=kind, uuid=uuid))
