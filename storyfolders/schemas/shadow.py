"""Shadow snapshot schemas shared with the share extension.

Bookmark bytes travel as base64 text under ``bookmarkData``. Field names
follow the snapshot's camelCase keys on the wire; Python code may use either.
"""

from __future__ import annotations

import base64
import binascii

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


def _decode_bookmark(value: object) -> object:
    if isinstance(value, str):
        try:
            return base64.b64decode(value, validate=True)
        except binascii.Error as exc:
            raise ValueError("bookmarkData must be base64 text") from exc
    return value


class ShadowAsset(BaseModel):
    """An item queued by the share extension for import."""

    model_config = ConfigDict(populate_by_name=True)

    uuid: str
    bookmark_data: bytes = Field(alias="bookmarkData")

    @field_validator("bookmark_data", mode="before")
    @classmethod
    def decode_bookmark(cls, v: object) -> object:
        """Accept base64 text as stored in the snapshot."""
        _ = cls
        return _decode_bookmark(v)

    @field_serializer("bookmark_data")
    def encode_bookmark(self, v: bytes) -> str:
        _ = self
        return base64.b64encode(v).decode("ascii")


class ShadowStory(BaseModel):
    """A story folder as seen by the share extension."""

    model_config = ConfigDict(populate_by_name=True)

    uuid: str
    title: str = ""
    bookmark_data: bytes = Field(alias="bookmarkData")

    @field_validator("bookmark_data", mode="before")
    @classmethod
    def decode_bookmark(cls, v: object) -> object:
        """Accept base64 text as stored in the snapshot."""
        _ = cls
        return _decode_bookmark(v)

    @field_serializer("bookmark_data")
    def encode_bookmark(self, v: bytes) -> str:
        _ = self
        return base64.b64encode(v).decode("ascii")


class ShadowSite(BaseModel):
    """A site and its stories as seen by the share extension."""

    uuid: str
    title: str = ""
    stories: list[ShadowStory] = Field(default_factory=list)
