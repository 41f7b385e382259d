"""Health check endpoint."""

from __future__ import annotations

import logging
import os
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storyfolders.api.deps import get_folder_manager, get_session
from storyfolders.filesystem.folder_manager import FolderManager
from storyfolders.models import Site

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    database: str
    sites: int = 0
    root: str
    root_writable: bool


@router.get("/api/health", response_model=HealthResponse)
async def health_check(
    session: Annotated[AsyncSession, Depends(get_session)],
    folder_manager: Annotated[FolderManager, Depends(get_folder_manager)],
) -> HealthResponse:
    """Report whether the registry and the root folder are usable."""
    db_status = "ok"
    site_count = 0
    try:
        site_count = (await session.execute(select(func.count()).select_from(Site))).scalar_one()
    except SQLAlchemyError:
        logger.warning("Health check registry query failed", exc_info=True)
        db_status = "error"

    root = folder_manager.root
    root_writable = root.is_dir() and os.access(root, os.W_OK)
    if not root_writable:
        logger.warning("Root folder %s is no longer writable", root)

    return HealthResponse(
        status="ok" if db_status == "ok" and root_writable else "degraded",
        version="0.1.0",
        database=db_status,
        sites=site_count,
        root=str(root),
        root_writable=root_writable,
    )
