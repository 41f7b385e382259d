"""Shared API dependencies: DB session, folder manager, shared state."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from storyfolders.config import Settings
from storyfolders.filesystem.folder_manager import FolderManager
from storyfolders.models import Site
from storyfolders.services.event_service import EventChannel
from storyfolders.services.shadow_service import ShadowManager
from storyfolders.services.site_service import get_site
from storyfolders.services.sort_service import SortOrganizer


def get_settings(request: Request) -> Settings:
    """Get application settings from app state."""
    settings: Settings = request.app.state.settings
    return settings


def get_folder_manager(request: Request) -> FolderManager:
    """Get the folder manager from app state."""
    fm: FolderManager = request.app.state.folder_manager
    return fm


def get_events(request: Request) -> EventChannel:
    """Get the registry change channel from app state."""
    events: EventChannel = request.app.state.events
    return events


def get_shadow_manager(request: Request) -> ShadowManager:
    """Get the shadow snapshot manager from app state."""
    manager: ShadowManager = request.app.state.shadow_manager
    return manager


def get_folder_sort(request: Request) -> SortOrganizer:
    """Get the story folder sort organizer from app state."""
    organizer: SortOrganizer = request.app.state.folder_sort
    return organizer


def get_reconcile_lock(request: Request) -> asyncio.Lock:
    """Get the lock that serializes reconcile passes."""
    lock: asyncio.Lock = request.app.state.reconcile_lock
    return lock


async def get_session(request: Request) -> AsyncGenerator[AsyncSession]:
    """Get a database session."""
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        yield session


async def require_site(
    site_uuid: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> Site:
    """Look up the site named in the path. Raises 404 if there is none."""
    site = await get_site(session, site_uuid)
    if site is None:
        raise HTTPException(status_code=404, detail="Site not found")
    return site
