"""Story folder and story asset models.

Records refer to each other by foreign key only. Cascades (site -> folders ->
assets) are issued as explicit delete statements by the services.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from storyfolders.models.base import Base
from storyfolders.services.datetime_service import now_utc


def _new_uuid() -> str:
    return str(uuid.uuid4())


class StoryFolder(Base):
    """Persisted record for one story folder on disk."""

    __tablename__ = "story_folders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(String(36), nullable=False, unique=True, default=_new_uuid)
    site_id: Mapped[int] = mapped_column(Integer, ForeignKey("sites.id"), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    bookmark: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    removed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    auto_sync: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # 0 means no remote draft exists yet.
    post_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now_utc
    )
    modified_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now_utc
    )
    synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("idx_story_folders_site", "site_id"),)


class StoryAsset(Base):
    """One file (or text note) belonging to a story folder."""

    __tablename__ = "story_assets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(String(36), nullable=False, unique=True, default=_new_uuid)
    folder_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("story_folders.id"), nullable=False
    )
    asset_type: Mapped[str] = mapped_column(String(16), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    # Text notes have no backing file.
    bookmark: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sorted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    text: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now_utc
    )
    modified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("idx_story_assets_folder", "folder_id"),)
