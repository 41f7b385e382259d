"""Shared test fixtures for story folders."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from storyfolders.config import Settings
from storyfolders.filesystem.defaults_store import DefaultsStore
from storyfolders.filesystem.folder_manager import FolderManager
from storyfolders.main import create_app, lifespan
from storyfolders.models.base import Base
from storyfolders.services.site_service import create_site

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path

    from storyfolders.models import Site

logger = logging.getLogger(__name__)


@asynccontextmanager
async def create_test_client(settings: Settings) -> AsyncGenerator[AsyncClient]:
    """Create an HTTP test client with a fully initialized app.

    ASGITransport does not trigger the lifespan, so it is entered here.
    """
    app = create_app(settings)
    async with lifespan(app), AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def root_dir(tmp_path: Path) -> Path:
    """Create an empty sandbox root."""
    root = tmp_path / "root"
    root.mkdir()
    return root


@pytest.fixture
def folder_manager(root_dir: Path) -> FolderManager:
    """Folder manager rooted at the sandbox, without system trash folders."""
    return FolderManager(root=root_dir, trash_dirs=[])


@pytest.fixture
def defaults_store(tmp_path: Path) -> DefaultsStore:
    return DefaultsStore(tmp_path / "defaults.toml")


@pytest.fixture
def test_settings(tmp_path: Path, root_dir: Path) -> Settings:
    """Create test settings with temporary paths."""
    db_path = tmp_path / "test.db"
    return Settings(
        debug=True,
        database_url=f"sqlite+aiosqlite:///{db_path}",
        root_dir=root_dir,
        defaults_path=tmp_path / "defaults.toml",
        shared_dir=tmp_path / "shared",
        shared_defaults_path=tmp_path / "shared-defaults.toml",
        site_title="Test Site",
        site_url="https://news.example.com",
    )


@pytest.fixture
async def db_engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine]:
    """Create a test database engine with the schema in place."""
    engine = create_async_engine(
        test_settings.database_url,
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(
    db_engine: AsyncEngine,
) -> AsyncGenerator[AsyncSession]:
    """Create a test database session."""
    session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with session_factory() as session:
        yield session


@pytest.fixture
async def site(db_session: AsyncSession, folder_manager: FolderManager) -> Site:
    """A site whose folder exists under the sandbox root."""
    return await create_site(db_session, folder_manager, "Test Site", "https://news.example.com")


@pytest.fixture
def site_folder(site: Site, root_dir: Path) -> Path:
    """The folder of the ``site`` fixture."""
    path = (root_dir / "news-example-com").resolve()
    assert path.is_dir()
    return path
