"""Reconciliation schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ReconcileStatusResponse(BaseModel):
    """What a reconcile pass would repair."""

    has_inconsistencies: bool
    site_folder_missing: bool = False
    unregistered: list[str] = Field(default_factory=list)  # folder names
    orphaned: list[str] = Field(default_factory=list)  # record UUIDs


class ReconcileResponse(BaseModel):
    """What a reconcile pass repaired."""

    created: list[str] = Field(default_factory=list)
    deleted: list[str] = Field(default_factory=list)
    revived: list[str] = Field(default_factory=list)
    renamed: list[str] = Field(default_factory=list)
    failed: int = Field(default=0, ge=0)
    site_folder_recreated: bool = False
