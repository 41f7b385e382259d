"""Site API endpoints."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from storyfolders.api.deps import (
    get_events,
    get_folder_manager,
    get_session,
    get_shadow_manager,
)
from storyfolders.filesystem.folder_manager import FolderManager
from storyfolders.models import Site
from storyfolders.schemas.folder import SiteCreate, SiteResponse
from storyfolders.services.datetime_service import ensure_aware
from storyfolders.services.event_service import EventChannel
from storyfolders.services.shadow_service import ShadowManager, cast_shadows
from storyfolders.services.site_service import (
    create_site,
    delete_site,
    get_sites,
    site_folder_path,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sites", tags=["sites"])


def site_response(folder_manager: FolderManager, site: Site) -> SiteResponse:
    """Build the response for a site, resolving its folder."""
    folder = site_folder_path(folder_manager, site)
    return SiteResponse(
        uuid=site.uuid,
        title=site.title,
        url=site.url,
        folder=str(folder) if folder is not None else None,
        created_at=ensure_aware(site.created_at),
    )


@router.get("", response_model=list[SiteResponse])
async def list_sites_endpoint(
    session: Annotated[AsyncSession, Depends(get_session)],
    folder_manager: Annotated[FolderManager, Depends(get_folder_manager)],
) -> list[SiteResponse]:
    """List all sites."""
    return [site_response(folder_manager, site) for site in await get_sites(session)]


@router.post("", response_model=SiteResponse, status_code=201)
async def create_site_endpoint(
    body: SiteCreate,
    session: Annotated[AsyncSession, Depends(get_session)],
    folder_manager: Annotated[FolderManager, Depends(get_folder_manager)],
    events: Annotated[EventChannel, Depends(get_events)],
    shadow_manager: Annotated[ShadowManager, Depends(get_shadow_manager)],
) -> SiteResponse:
    """Add a site and create its folder."""
    site = await create_site(session, folder_manager, body.title, body.url, events=events)
    await cast_shadows(session, shadow_manager)
    return site_response(folder_manager, site)


@router.delete("/{site_uuid}", status_code=204)
async def delete_site_endpoint(
    site_uuid: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    events: Annotated[EventChannel, Depends(get_events)],
    shadow_manager: Annotated[ShadowManager, Depends(get_shadow_manager)],
) -> None:
    """Delete a site and its records. Folders on disk are kept."""
    if not await delete_site(session, site_uuid, events=events):
        raise HTTPException(status_code=404, detail="Site not found")
    await cast_shadows(session, shadow_manager)
