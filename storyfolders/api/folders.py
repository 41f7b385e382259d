"""Story folder API endpoints."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from storyfolders.api.deps import (
    get_events,
    get_folder_manager,
    get_folder_sort,
    get_session,
    get_shadow_manager,
    require_site,
)
from storyfolders.filesystem.folder_manager import FolderManager
from storyfolders.models import Site, StoryFolder
from storyfolders.schemas.folder import (
    FolderContentsResponse,
    StoryAssetResponse,
    StoryFolderCreate,
    StoryFolderRename,
    StoryFolderResponse,
)
from storyfolders.services.datetime_service import ensure_aware
from storyfolders.services.event_service import EventChannel
from storyfolders.services.folder_service import (
    create_story_folder,
    delete_story_folder,
    get_record,
    list_assets,
    list_records,
    rename_story_folder,
    resolve_bookmark,
)
from storyfolders.services.shadow_service import ShadowManager, cast_shadows
from storyfolders.services.sort_service import SortOrganizer

logger = logging.getLogger(__name__)

router = APIRouter(tags=["folders"])


def folder_response(folder_manager: FolderManager, record: StoryFolder) -> StoryFolderResponse:
    """Build the response for a record, resolving its folder."""
    path = resolve_bookmark(folder_manager, record)
    return StoryFolderResponse(
        uuid=record.uuid,
        name=record.name,
        removed=record.removed,
        auto_sync=record.auto_sync,
        post_id=record.post_id,
        created_at=ensure_aware(record.created_at),
        modified_at=ensure_aware(record.modified_at),
        synced_at=ensure_aware(record.synced_at) if record.synced_at else None,
        path=str(path) if path is not None else None,
    )


@router.get("/api/sites/{site_uuid}/folders", response_model=list[StoryFolderResponse])
async def list_folders_endpoint(
    site: Annotated[Site, Depends(require_site)],
    session: Annotated[AsyncSession, Depends(get_session)],
    folder_manager: Annotated[FolderManager, Depends(get_folder_manager)],
    sort: Annotated[SortOrganizer, Depends(get_folder_sort)],
    include_removed: bool = False,
) -> list[StoryFolderResponse]:
    """List a site's story folders in the selected sort order."""
    records = await list_records(
        session, site.id, ordering=sort.ordering(), include_removed=include_removed
    )
    return [folder_response(folder_manager, r) for r in records]


@router.post(
    "/api/sites/{site_uuid}/folders", response_model=StoryFolderResponse, status_code=201
)
async def create_folder_endpoint(
    body: StoryFolderCreate,
    site: Annotated[Site, Depends(require_site)],
    session: Annotated[AsyncSession, Depends(get_session)],
    folder_manager: Annotated[FolderManager, Depends(get_folder_manager)],
    events: Annotated[EventChannel, Depends(get_events)],
    shadow_manager: Annotated[ShadowManager, Depends(get_shadow_manager)],
) -> StoryFolderResponse:
    """Create a story folder under the site folder."""
    record = await create_story_folder(
        session,
        folder_manager,
        site,
        name=body.name,
        if_exists_append_suffix=body.add_suffix,
        events=events,
    )
    if record is None:
        raise HTTPException(status_code=409, detail="Story folder could not be created")
    await cast_shadows(session, shadow_manager)
    return folder_response(folder_manager, record)


@router.patch("/api/folders/{folder_uuid}", response_model=StoryFolderResponse)
async def rename_folder_endpoint(
    folder_uuid: str,
    body: StoryFolderRename,
    session: Annotated[AsyncSession, Depends(get_session)],
    folder_manager: Annotated[FolderManager, Depends(get_folder_manager)],
    events: Annotated[EventChannel, Depends(get_events)],
    shadow_manager: Annotated[ShadowManager, Depends(get_shadow_manager)],
) -> StoryFolderResponse:
    """Rename a story folder on disk and in the registry."""
    if await get_record(session, folder_uuid) is None:
        raise HTTPException(status_code=404, detail="Story folder not found")
    record = await rename_story_folder(
        session, folder_manager, folder_uuid, body.name, events=events
    )
    if record is None:
        raise HTTPException(status_code=409, detail="Story folder could not be renamed")
    await cast_shadows(session, shadow_manager)
    return folder_response(folder_manager, record)


@router.delete("/api/folders/{folder_uuid}", status_code=204)
async def delete_folder_endpoint(
    folder_uuid: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    folder_manager: Annotated[FolderManager, Depends(get_folder_manager)],
    events: Annotated[EventChannel, Depends(get_events)],
    shadow_manager: Annotated[ShadowManager, Depends(get_shadow_manager)],
) -> None:
    """Delete a story folder from disk along with its record and assets."""
    if await get_record(session, folder_uuid) is None:
        raise HTTPException(status_code=404, detail="Story folder not found")
    if not await delete_story_folder(session, folder_manager, folder_uuid, events=events):
        raise HTTPException(status_code=409, detail="Story folder could not be deleted")
    await cast_shadows(session, shadow_manager)


@router.get("/api/folders/{folder_uuid}/contents", response_model=FolderContentsResponse)
async def folder_contents_endpoint(
    folder_uuid: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    folder_manager: Annotated[FolderManager, Depends(get_folder_manager)],
) -> FolderContentsResponse:
    """List the visible items inside a story folder."""
    record = await get_record(session, folder_uuid)
    if record is None:
        raise HTTPException(status_code=404, detail="Story folder not found")
    path = resolve_bookmark(folder_manager, record)
    if path is None:
        raise HTTPException(status_code=410, detail="Story folder is missing on disk")
    items = [item.name for item in folder_manager.list_contents(path)]
    return FolderContentsResponse(uuid=record.uuid, items=items)


@router.get("/api/folders/{folder_uuid}/assets", response_model=list[StoryAssetResponse])
async def folder_assets_endpoint(
    folder_uuid: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> list[StoryAssetResponse]:
    """List the asset records of a story folder."""
    record = await get_record(session, folder_uuid)
    if record is None:
        raise HTTPException(status_code=404, detail="Story folder not found")
    return [
        StoryAssetResponse(
            uuid=a.uuid,
            asset_type=a.asset_type,
            name=a.name,
            order=a.order,
            sorted=a.sorted,
            text=a.text,
            created_at=ensure_aware(a.created_at),
        )
        for a in await list_assets(session, record.id)
    ]
