"""Site, story folder and asset schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator


class SiteResponse(BaseModel):
    """Site summary."""

    uuid: str
    title: str
    url: str
    folder: str | None = None  # None when the site folder is missing
    created_at: datetime


class SiteCreate(BaseModel):
    """Request to add a site."""

    title: str = Field(default="", max_length=200)
    url: str = Field(min_length=1, max_length=2000)

    @field_validator("url")
    @classmethod
    def url_must_not_be_blank(cls, v: str) -> str:
        """Reject whitespace-only URLs."""
        _ = cls
        if not v.strip():
            raise ValueError("Site URL must not be empty")
        return v.strip()


class StoryFolderResponse(BaseModel):
    """Story folder record plus the folder it currently resolves to."""

    uuid: str
    name: str
    removed: bool = False
    auto_sync: bool = False
    post_id: int = Field(default=0, ge=0)  # 0 until a remote draft exists
    created_at: datetime
    modified_at: datetime
    synced_at: datetime | None = None
    path: str | None = None  # None when the bookmark no longer resolves


class StoryFolderCreate(BaseModel):
    """Request to create a story folder."""

    name: str = Field(default="New Story", min_length=1, max_length=255)
    add_suffix: bool = True


class StoryFolderRename(BaseModel):
    """Request to rename a story folder."""

    name: str = Field(min_length=1, max_length=255)


class FolderContentsResponse(BaseModel):
    """Visible items inside a story folder, by name."""

    uuid: str
    items: list[str] = Field(default_factory=list)


class StoryAssetResponse(BaseModel):
    """Asset summary."""

    uuid: str
    asset_type: str
    name: str
    order: int = 0
    sorted: bool = False
    text: str | None = None
    created_at: datetime
