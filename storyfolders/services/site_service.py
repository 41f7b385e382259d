"""Site records and the folders that hold their stories."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

from sqlalchemy import delete, select

from storyfolders.exceptions import InternalServerError
from storyfolders.filesystem.folder_manager import FolderManager
from storyfolders.models import Site, StoryAsset, StoryFolder
from storyfolders.services.event_service import ChangeKind, RegistryChange

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncSession

    from storyfolders.config import Settings
    from storyfolders.services.event_service import EventChannel

logger = logging.getLogger(__name__)


def site_folder_name(site: Site) -> str:
    """Folder name for a site: its URL's host and path with the scheme dropped.

    ``"https://www.example.com/blog/"`` -> ``"www-example-com-blog"``. A URL
    that leaves nothing usable falls back to the site's UUID.
    """
    url = site.url or ""
    parts = urlsplit(url)
    raw = f"{parts.netloc}{parts.path}" if parts.netloc else url
    name = FolderManager.sanitize_folder_name(raw)
    if not FolderManager.is_valid_folder_name(name):
        return site.uuid
    return name


def site_folder_path(folder_manager: FolderManager, site: Site) -> Path | None:
    """Return the site's folder, or None if it is gone, moved or trashed."""
    if site.folder_bookmark is None:
        return None
    path, is_stale = folder_manager.resolve_bookmark(site.folder_bookmark)
    if path is None or is_stale:
        return None
    return path


async def ensure_site_folder(
    session: AsyncSession, folder_manager: FolderManager, site: Site
) -> Path | None:
    """Make sure the site folder exists, recreating it under the root if needed.

    A recreated folder gets a fresh bookmark on the site record. The caller
    commits. Returns None if the folder could not be created.
    """
    existing = site_folder_path(folder_manager, site)
    if existing is not None:
        return existing

    target = folder_manager.root / site_folder_name(site)
    owner = await folder_owner(session, folder_manager, target, exclude=site)
    if owner is not None:
        logger.error("Folder %s for site %s belongs to site %s", target, site.uuid, owner.uuid)
        return None
    path = folder_manager.create_folder(target)
    if path is None:
        return None
    bookmark = folder_manager.bookmark(path)
    if bookmark is None:
        return None
    site.folder_bookmark = bookmark
    await session.flush()
    logger.info("Using folder %s for site %s", path, site.uuid)
    return path


async def folder_owner(
    session: AsyncSession, folder_manager: FolderManager, path: Path, exclude: Site | None = None
) -> Site | None:
    """Return the site whose folder is ``path``, if any, ignoring ``exclude``."""
    for other in await get_sites(session):
        if exclude is not None and other.id == exclude.id:
            continue
        folder = site_folder_path(folder_manager, other)
        if folder is not None and folder_manager.is_same_folder(folder, path):
            return other
    return None


async def get_sites(session: AsyncSession) -> list[Site]:
    """Get all sites, oldest first."""
    result = await session.execute(select(Site).order_by(Site.id))
    return list(result.scalars().all())


async def get_site(session: AsyncSession, uuid: str) -> Site | None:
    """Get a site by UUID."""
    result = await session.execute(select(Site).where(Site.uuid == uuid))
    return result.scalar_one_or_none()


async def create_site(
    session: AsyncSession,
    folder_manager: FolderManager,
    title: str,
    url: str,
    events: EventChannel | None = None,
) -> Site:
    """Create a site and its folder.

    An existing folder of the same name is adopted unless another site
    already uses it. Raises ValueError in that case and InternalServerError
    if the folder cannot be created.
    """
    site = Site(title=title, url=url)
    session.add(site)
    await session.flush()

    name = site_folder_name(site)
    owner = await folder_owner(session, folder_manager, folder_manager.root / name, exclude=site)
    if owner is not None:
        owner_uuid = owner.uuid
        await session.rollback()
        raise ValueError(f"Folder {name!r} is already used by site {owner_uuid}")

    if await ensure_site_folder(session, folder_manager, site) is None:
        await session.rollback()
        raise InternalServerError(f"Unable to create folder for site {url}")
    await session.commit()
    logger.info("Created site %s (%s)", site.uuid, url)
    if events is not None:
        await events.publish(RegistryChange(entity="site", kind=ChangeKind.CREATED, uuid=site.uuid))
    return site


async def get_or_create_default_site(
    session: AsyncSession, folder_manager: FolderManager, settings: Settings
) -> Site:
    """Return the first site, creating one from settings when there is none."""
    sites = await get_sites(session)
    if sites:
        return sites[0]
    return await create_site(session, folder_manager, settings.site_title, settings.site_url)


async def delete_site(
    session: AsyncSession, uuid: str, events: EventChannel | None = None
) -> bool:
    """Delete a site with all of its story folder and asset records.

    Folders on disk are left alone. Returns False if there is no such site.
    """
    site = await get_site(session, uuid)
    if site is None:
        return False

    folder_ids = select(StoryFolder.id).where(StoryFolder.site_id == site.id)
    await session.execute(delete(StoryAsset).where(StoryAsset.folder_id.in_(folder_ids)))
    await session.execute(delete(StoryFolder).where(StoryFolder.site_id == site.id))
    await session.execute(delete(Site).where(Site.id == site.id))
    await session.commit()
    logger.info("Deleted site %s", uuid)
    if events is not None:
        await events.publish(RegistryChange(entity="site", kind=ChangeKind.DELETED, uuid=uuid))
    return True
