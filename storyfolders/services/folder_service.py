"""Story folder registry: persisted records for the folders under a site."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import delete, select

from storyfolders.models import StoryAsset, StoryFolder
from storyfolders.services.datetime_service import now_utc
from storyfolders.services.event_service import ChangeKind, RegistryChange
from storyfolders.services.site_service import site_folder_path
from storyfolders.services.sort_service import OrderSpec, order_by_clauses

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncSession

    from storyfolders.filesystem.folder_manager import FolderManager
    from storyfolders.models import Site
    from storyfolders.services.event_service import EventChannel

logger = logging.getLogger(__name__)

DEFAULT_STORY_NAME = "New Story"
ASSET_TYPES = frozenset({"image", "video", "audio", "text"})

_DEFAULT_ORDERING = [
    OrderSpec(field="created_at", direction="desc", case_sensitive=True),
    OrderSpec(field="id", direction="desc", case_sensitive=True),
]


async def _publish(events: EventChannel | None, entity: str, kind: ChangeKind, uuid: str) -> None:
    if events is not None:
        await events.publish(RegistryChange(entity=entity, kind=kind, uuid=uuid))


# Records


async def list_records(
    session: AsyncSession,
    site_id: int,
    ordering: list[OrderSpec] | None = None,
    include_removed: bool = True,
) -> list[StoryFolder]:
    """List the story folder records of a site.

    Without an ordering, newest records come first. Record id breaks ties so
    the order is stable.
    """
    stmt = select(StoryFolder).where(StoryFolder.site_id == site_id)
    if not include_removed:
        stmt = stmt.where(StoryFolder.removed.is_(False))
    clauses = order_by_clauses(StoryFolder, ordering or _DEFAULT_ORDERING)
    stmt = stmt.order_by(*clauses, StoryFolder.id)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_record(session: AsyncSession, uuid: str) -> StoryFolder | None:
    """Get a story folder record by UUID."""
    stmt = select(StoryFolder).where(StoryFolder.uuid == uuid)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def create_record(
    session: AsyncSession, site_id: int, bookmark: bytes, name: str
) -> StoryFolder:
    """Add a record for an existing folder. The caller commits."""
    record = StoryFolder(site_id=site_id, bookmark=bookmark, name=name)
    session.add(record)
    await session.flush()
    return record


async def delete_record(session: AsyncSession, uuid: str) -> bool:
    """Delete a record and its assets. Returns False if there is no such record.

    The caller commits.
    """
    record = await get_record(session, uuid)
    if record is None:
        return False
    await session.execute(delete(StoryAsset).where(StoryAsset.folder_id == record.id))
    await session.execute(delete(StoryFolder).where(StoryFolder.id == record.id))
    await session.flush()
    return True


def resolve_bookmark(folder_manager: FolderManager, record: StoryFolder) -> Path | None:
    """Return the folder a record points at, or None if it is gone, moved or trashed."""
    path, is_stale = folder_manager.resolve_bookmark(record.bookmark)
    if path is None or is_stale:
        return None
    return path


# Story folders


async def create_story_folder(
    session: AsyncSession,
    folder_manager: FolderManager,
    site: Site,
    name: str = DEFAULT_STORY_NAME,
    if_exists_append_suffix: bool = True,
    events: EventChannel | None = None,
) -> StoryFolder | None:
    """Create a folder under the site folder and register it.

    Returns None if the site folder is missing or the folder could not be
    created. Raises ValueError for names that sanitize to nothing.
    """
    sanitized = folder_manager.sanitize_folder_name(name)
    if not folder_manager.is_valid_folder_name(sanitized):
        raise ValueError(f"Invalid folder name: {name!r}")

    site_folder = site_folder_path(folder_manager, site)
    if site_folder is None:
        logger.error("Folder for site %s is missing; cannot create story folder", site.uuid)
        return None

    path = folder_manager.create_folder(
        site_folder / sanitized, if_exists_append_suffix=if_exists_append_suffix
    )
    if path is None:
        return None
    bookmark = folder_manager.bookmark(path)
    if bookmark is None:
        return None

    record = await create_record(session, site.id, bookmark, path.name)
    await session.commit()
    logger.info("Created story folder %s at %s", record.uuid, path)
    await _publish(events, "story_folder", ChangeKind.CREATED, record.uuid)
    return record


async def rename_story_folder(
    session: AsyncSession,
    folder_manager: FolderManager,
    uuid: str,
    name: str,
    events: EventChannel | None = None,
) -> StoryFolder | None:
    """Rename a story folder on disk and in the registry.

    The stored name is the name the folder ended up with, which may carry a
    numeric suffix. Returns None if the record or its folder is missing or
    the rename failed. Raises ValueError for names that sanitize to nothing.
    """
    if not folder_manager.is_valid_folder_name(folder_manager.sanitize_folder_name(name)):
        raise ValueError(f"Invalid folder name: {name!r}")

    record = await get_record(session, uuid)
    if record is None:
        return None
    path = resolve_bookmark(folder_manager, record)
    if path is None:
        logger.warning("Folder for story %s is missing; not renaming", uuid)
        return None

    new_path = folder_manager.rename_folder(path, name)
    if new_path is None:
        return None
    bookmark = folder_manager.bookmark(new_path)
    if bookmark is not None:
        record.bookmark = bookmark
    record.name = new_path.name
    record.modified_at = now_utc()
    await session.commit()
    await _publish(events, "story_folder", ChangeKind.UPDATED, record.uuid)
    return record


async def delete_story_folder(
    session: AsyncSession,
    folder_manager: FolderManager,
    uuid: str,
    events: EventChannel | None = None,
) -> bool:
    """Delete a story folder from disk and remove its record and assets.

    A folder that is already gone does not block removal of the record.
    Returns False if there is no such record or the folder could not be deleted.
    """
    record = await get_record(session, uuid)
    if record is None:
        return False
    path = resolve_bookmark(folder_manager, record)
    if path is not None and not folder_manager.delete_folder(path):
        return False

    await delete_record(session, uuid)
    await session.commit()
    logger.info("Deleted story folder %s", uuid)
    await _publish(events, "story_folder", ChangeKind.DELETED, uuid)
    return True


# Assets


async def create_asset(
    session: AsyncSession,
    folder: StoryFolder,
    name: str,
    asset_type: str,
    bookmark: bytes | None = None,
    text: str | None = None,
    events: EventChannel | None = None,
) -> StoryAsset:
    """Add an asset to a story folder. Raises ValueError for unknown asset types."""
    if asset_type not in ASSET_TYPES:
        raise ValueError(f"Unknown asset type: {asset_type!r}")
    if bookmark is None and asset_type != "text":
        raise ValueError("Only text assets may be created without a file")

    count_stmt = select(StoryAsset.id).where(StoryAsset.folder_id == folder.id)
    existing = (await session.execute(count_stmt)).scalars().all()
    asset = StoryAsset(
        folder_id=folder.id,
        name=name,
        asset_type=asset_type,
        bookmark=bookmark,
        text=text,
        order=len(existing),
    )
    session.add(asset)
    await session.commit()
    await _publish(events, "story_asset", ChangeKind.CREATED, asset.uuid)
    return asset


async def list_assets(
    session: AsyncSession, folder_id: int, ordering: list[OrderSpec] | None = None
) -> list[StoryAsset]:
    """List the assets of a story folder, by default in their stored order."""
    stmt = select(StoryAsset).where(StoryAsset.folder_id == folder_id)
    if ordering:
        stmt = stmt.order_by(*order_by_clauses(StoryAsset, ordering), StoryAsset.id)
    else:
        stmt = stmt.order_by(StoryAsset.order, StoryAsset.id)
    result = await session.execute(stmt)
    return list(result.scalars().all())
