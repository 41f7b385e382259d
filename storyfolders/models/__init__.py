"""SQLAlchemy ORM models for story folders."""

from storyfolders.models.base import Base
from storyfolders.models.site import Site
from storyfolders.models.story import StoryAsset, StoryFolder

__all__ = [
    "Base",
    "Site",
    "StoryAsset",
    "StoryFolder",
]
