"""Reconciliation API endpoints."""

from __future__ import annotations

import asyncio
import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from storyfolders.api.deps import (
    get_events,
    get_folder_manager,
    get_reconcile_lock,
    get_session,
    get_shadow_manager,
    require_site,
)
from storyfolders.filesystem.folder_manager import FolderManager
from storyfolders.models import Site
from storyfolders.schemas.reconcile import ReconcileResponse, ReconcileStatusResponse
from storyfolders.services.event_service import EventChannel
from storyfolders.services.reconcile_service import Reconciler
from storyfolders.services.shadow_service import ShadowManager, cast_shadows

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sites/{site_uuid}/reconcile", tags=["reconcile"])


@router.get("", response_model=ReconcileStatusResponse)
async def reconcile_status_endpoint(
    site: Annotated[Site, Depends(require_site)],
    session: Annotated[AsyncSession, Depends(get_session)],
    folder_manager: Annotated[FolderManager, Depends(get_folder_manager)],
) -> ReconcileStatusResponse:
    """Report what a reconcile pass would repair, without changing anything."""
    found = await Reconciler(session, folder_manager, site.uuid).find_inconsistencies()
    return ReconcileStatusResponse(
        has_inconsistencies=found.has_any,
        site_folder_missing=found.site_folder is None,
        unregistered=[p.name for p in found.unregistered] + [p.name for _, p in found.revivable],
        orphaned=found.orphaned,
    )


@router.post("", response_model=ReconcileResponse)
async def reconcile_endpoint(
    site: Annotated[Site, Depends(require_site)],
    session: Annotated[AsyncSession, Depends(get_session)],
    folder_manager: Annotated[FolderManager, Depends(get_folder_manager)],
    events: Annotated[EventChannel, Depends(get_events)],
    shadow_manager: Annotated[ShadowManager, Depends(get_shadow_manager)],
    lock: Annotated[asyncio.Lock, Depends(get_reconcile_lock)],
) -> ReconcileResponse:
    """Run a reconcile pass for the site and refresh the shadow snapshot."""
    async with lock:
        result = await Reconciler(session, folder_manager, site.uuid, events=events).reconcile()
        await cast_shadows(session, shadow_manager)
    return ReconcileResponse(
        created=result.created,
        deleted=result.deleted,
        revived=result.revived,
        renamed=result.renamed,
        failed=result.failed,
        site_folder_recreated=result.site_folder_recreated,
    )
