"""Tests for reconciling story folders on disk with their records."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy.exc import SQLAlchemyError

from storyfolders.services import folder_service
from storyfolders.services.event_service import ChangeKind, EventChannel, RegistryChange
from storyfolders.services.folder_service import (
    create_record,
    create_story_folder,
    get_record,
    list_records,
)
from storyfolders.services.reconcile_service import Reconciler
from storyfolders.services.site_service import create_site, site_folder_path

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncSession

    from storyfolders.filesystem.folder_manager import FolderManager
    from storyfolders.models import Site


async def _make_stories(
    session: AsyncSession, folder_manager: FolderManager, site: Site, *names: str
) -> dict[str, str]:
    """Create story folders and return their UUIDs by name."""
    uuids: dict[str, str] = {}
    for name in names:
        record = await create_story_folder(session, folder_manager, site, name)
        assert record is not None
        uuids[name] = record.uuid
    return uuids


async def _names(session: AsyncSession, site_id: int) -> set[str]:
    return {r.name for r in await list_records(session, site_id)}


def _reconciler(session: AsyncSession, folder_manager: FolderManager, site: Site) -> Reconciler:
    return Reconciler(session, folder_manager, site.uuid)


class TestFindInconsistencies:
    async def test_consistent_site(
        self, db_session: AsyncSession, folder_manager: FolderManager, site: Site
    ) -> None:
        await _make_stories(db_session, folder_manager, site, "alpha", "beta")
        reconciler = _reconciler(db_session, folder_manager, site)
        assert not await reconciler.has_inconsistencies()
        assert await reconciler.get_inconsistent_story_folders() == []

    async def test_empty_site_is_consistent(
        self, db_session: AsyncSession, folder_manager: FolderManager, site: Site
    ) -> None:
        assert not await _reconciler(db_session, folder_manager, site).has_inconsistencies()

    async def test_detects_missing_and_new_folders(
        self,
        db_session: AsyncSession,
        folder_manager: FolderManager,
        site: Site,
        site_folder: Path,
    ) -> None:
        uuids = await _make_stories(db_session, folder_manager, site, "alpha", "beta")
        (site_folder / "beta").rmdir()
        (site_folder / "gamma").mkdir()

        found = await _reconciler(db_session, folder_manager, site).find_inconsistencies()
        assert found.has_any
        assert found.orphaned == [uuids["beta"]]
        assert [p.name for p in found.unregistered] == ["gamma"]

    async def test_inconsistent_story_folders_are_unregistered_ones(
        self,
        db_session: AsyncSession,
        folder_manager: FolderManager,
        site: Site,
        site_folder: Path,
    ) -> None:
        await _make_stories(db_session, folder_manager, site, "alpha")
        (site_folder / "zulu").mkdir()
        (site_folder / "bravo").mkdir()
        paths = await _reconciler(db_session, folder_manager, site).get_inconsistent_story_folders()
        assert paths == [site_folder / "bravo", site_folder / "zulu"]

    async def test_hidden_folders_and_files_are_ignored(
        self,
        db_session: AsyncSession,
        folder_manager: FolderManager,
        site: Site,
        site_folder: Path,
    ) -> None:
        (site_folder / ".cache").mkdir()
        (site_folder / "notes.txt").write_text("not a story")
        assert not await _reconciler(db_session, folder_manager, site).has_inconsistencies()

    async def test_missing_site_folder(
        self,
        db_session: AsyncSession,
        folder_manager: FolderManager,
        site: Site,
        site_folder: Path,
    ) -> None:
        site_folder.rmdir()
        found = await _reconciler(db_session, folder_manager, site).find_inconsistencies()
        assert found.site_folder is None
        assert found.has_any

    async def test_name_drift_alone_is_not_inconsistent(
        self, db_session: AsyncSession, folder_manager: FolderManager, site: Site
    ) -> None:
        uuids = await _make_stories(db_session, folder_manager, site, "alpha")
        record = await get_record(db_session, uuids["alpha"])
        assert record is not None
        record.name = "outdated"
        await db_session.commit()

        found = await _reconciler(db_session, folder_manager, site).find_inconsistencies()
        assert not found.has_any
        assert [uuid for uuid, _ in found.renamed] == [uuids["alpha"]]


class TestReconcile:
    async def test_deletes_orphaned_records(
        self,
        db_session: AsyncSession,
        folder_manager: FolderManager,
        site: Site,
        site_folder: Path,
    ) -> None:
        uuids = await _make_stories(db_session, folder_manager, site, "alpha", "beta")
        (site_folder / "beta").rmdir()

        result = await _reconciler(db_session, folder_manager, site).reconcile()

        assert result.deleted == [uuids["beta"]]
        assert result.created == []
        assert await _names(db_session, site.id) == {"alpha"}

    async def test_registers_unknown_folders(
        self,
        db_session: AsyncSession,
        folder_manager: FolderManager,
        site: Site,
        site_folder: Path,
    ) -> None:
        await _make_stories(db_session, folder_manager, site, "alpha")
        (site_folder / "gamma").mkdir()

        result = await _reconciler(db_session, folder_manager, site).reconcile()

        assert len(result.created) == 1
        record = await get_record(db_session, result.created[0])
        assert record is not None
        assert record.name == "gamma"
        assert folder_service.resolve_bookmark(folder_manager, record) == site_folder / "gamma"

    async def test_matched_records_keep_their_identity(
        self, db_session: AsyncSession, folder_manager: FolderManager, site: Site
    ) -> None:
        uuids = await _make_stories(db_session, folder_manager, site, "alpha", "beta")
        result = await _reconciler(db_session, folder_manager, site).reconcile()
        assert not result.changed
        assert {r.uuid for r in await list_records(db_session, site.id)} == set(uuids.values())

    async def test_mixed_changes(
        self,
        db_session: AsyncSession,
        folder_manager: FolderManager,
        site: Site,
        site_folder: Path,
    ) -> None:
        uuids = await _make_stories(
            db_session, folder_manager, site, "alpha", "beta", "gamma", "delta"
        )
        (site_folder / "gamma").rmdir()
        (site_folder / "delta").rmdir()
        assert folder_manager.create_folder(site_folder / "epsilon") is not None
        assert folder_manager.create_folder(site_folder / "zeta") is not None

        result = await _reconciler(db_session, folder_manager, site).reconcile()

        assert sorted(result.deleted) == sorted([uuids["gamma"], uuids["delta"]])
        assert len(result.created) == 2
        assert result.failed == 0
        records = await list_records(db_session, site.id)
        assert {r.name for r in records} == {"alpha", "beta", "epsilon", "zeta"}
        kept = {r.name: r.uuid for r in records}
        assert kept["alpha"] == uuids["alpha"]
        assert kept["beta"] == uuids["beta"]

        created_names = []
        for uuid in result.created:
            record = await get_record(db_session, uuid)
            assert record is not None
            created_names.append(record.name)
        assert created_names == ["epsilon", "zeta"]

    async def test_second_pass_changes_nothing(
        self,
        db_session: AsyncSession,
        folder_manager: FolderManager,
        site: Site,
        site_folder: Path,
    ) -> None:
        await _make_stories(db_session, folder_manager, site, "alpha", "beta")
        (site_folder / "beta").rmdir()
        (site_folder / "gamma").mkdir()
        reconciler = _reconciler(db_session, folder_manager, site)

        assert (await reconciler.reconcile()).changed
        before = {r.uuid for r in await list_records(db_session, site.id)}

        again = await reconciler.reconcile()
        assert not again.changed
        assert not await reconciler.has_inconsistencies()
        assert {r.uuid for r in await list_records(db_session, site.id)} == before

    async def test_orphan_assets_are_removed(
        self,
        db_session: AsyncSession,
        folder_manager: FolderManager,
        site: Site,
        site_folder: Path,
    ) -> None:
        uuids = await _make_stories(db_session, folder_manager, site, "alpha")
        record = await get_record(db_session, uuids["alpha"])
        assert record is not None
        await folder_service.create_asset(db_session, record, "note", "text", text="x")
        folder_id = record.id
        (site_folder / "alpha").rmdir()

        await _reconciler(db_session, folder_manager, site).reconcile()
        assert await folder_service.list_assets(db_session, folder_id) == []

    async def test_external_rename_reregisters_folder(
        self,
        db_session: AsyncSession,
        folder_manager: FolderManager,
        site: Site,
        site_folder: Path,
    ) -> None:
        uuids = await _make_stories(db_session, folder_manager, site, "alpha")
        os.rename(site_folder / "alpha", site_folder / "renamed")

        result = await _reconciler(db_session, folder_manager, site).reconcile()

        assert result.deleted == [uuids["alpha"]]
        assert len(result.created) == 1
        assert await _names(db_session, site.id) == {"renamed"}

    async def test_folder_moved_out_of_site_is_orphaned(
        self,
        db_session: AsyncSession,
        folder_manager: FolderManager,
        site: Site,
        site_folder: Path,
        root_dir: Path,
    ) -> None:
        uuids = await _make_stories(db_session, folder_manager, site, "alpha")
        os.rename(site_folder / "alpha", root_dir / "alpha")

        result = await _reconciler(db_session, folder_manager, site).reconcile()

        assert result.deleted == [uuids["alpha"]]
        assert await _names(db_session, site.id) == set()

    async def test_symlinks_leaving_the_site_folder_are_ignored(
        self,
        db_session: AsyncSession,
        folder_manager: FolderManager,
        site: Site,
        site_folder: Path,
        root_dir: Path,
    ) -> None:
        await _make_stories(db_session, folder_manager, site, "alpha")
        outside = root_dir.parent / "outside"
        outside.mkdir()
        sibling = root_dir / "sibling"
        sibling.mkdir()
        (site_folder / "linked").symlink_to(outside, target_is_directory=True)
        (site_folder / "neighbour").symlink_to(sibling, target_is_directory=True)

        reconciler = _reconciler(db_session, folder_manager, site)
        assert not await reconciler.has_inconsistencies()

        first = await reconciler.reconcile()
        assert first.created == []
        assert first.deleted == []
        second = await reconciler.reconcile()
        assert not second.changed
        assert await _names(db_session, site.id) == {"alpha"}

    async def test_symlink_to_a_story_folder_adds_nothing(
        self,
        db_session: AsyncSession,
        folder_manager: FolderManager,
        site: Site,
        site_folder: Path,
    ) -> None:
        uuids = await _make_stories(db_session, folder_manager, site, "alpha")
        (site_folder / "alias").symlink_to(site_folder / "alpha", target_is_directory=True)

        result = await _reconciler(db_session, folder_manager, site).reconcile()

        assert not result.changed
        assert [r.uuid for r in await list_records(db_session, site.id)] == [uuids["alpha"]]

    async def test_site_cannot_take_over_another_sites_folder(
        self,
        db_session: AsyncSession,
        folder_manager: FolderManager,
        site: Site,
        site_folder: Path,
    ) -> None:
        site_id = site.id
        await _make_stories(db_session, folder_manager, site, "alpha")
        other = await create_site(
            db_session, folder_manager, "Other", "https://other.example.com"
        )
        other_id, other_uuid = other.id, other.uuid
        (site_folder.parent / "other-example-com").rmdir()
        other.url = "http://news.example.com"
        await db_session.commit()

        result = await Reconciler(db_session, folder_manager, other_uuid).reconcile()

        assert not result.changed
        assert await list_records(db_session, other_id) == []
        assert await _names(db_session, site_id) == {"alpha"}

    async def test_duplicate_records_keep_the_oldest(
        self, db_session: AsyncSession, folder_manager: FolderManager, site: Site
    ) -> None:
        uuids = await _make_stories(db_session, folder_manager, site, "alpha")
        original = await get_record(db_session, uuids["alpha"])
        assert original is not None
        duplicate = await create_record(db_session, site.id, original.bookmark, "alpha")
        duplicate_uuid = duplicate.uuid
        await db_session.commit()

        reconciler = _reconciler(db_session, folder_manager, site)
        assert await reconciler.has_inconsistencies()
        result = await reconciler.reconcile()

        assert result.deleted == [duplicate_uuid]
        assert [r.uuid for r in await list_records(db_session, site.id)] == [uuids["alpha"]]

    async def test_revives_removed_record_when_folder_exists(
        self, db_session: AsyncSession, folder_manager: FolderManager, site: Site
    ) -> None:
        uuids = await _make_stories(db_session, folder_manager, site, "alpha")
        record = await get_record(db_session, uuids["alpha"])
        assert record is not None
        record.removed = True
        await db_session.commit()

        reconciler = _reconciler(db_session, folder_manager, site)
        found = await reconciler.find_inconsistencies()
        assert [uuid for uuid, _ in found.revivable] == [uuids["alpha"]]
        assert found.unregistered == []

        result = await reconciler.reconcile()
        assert result.revived == [uuids["alpha"]]
        assert result.created == []
        revived = await get_record(db_session, uuids["alpha"])
        assert revived is not None
        assert revived.removed is False

    async def test_removed_record_without_folder_is_left_alone(
        self,
        db_session: AsyncSession,
        folder_manager: FolderManager,
        site: Site,
        site_folder: Path,
    ) -> None:
        uuids = await _make_stories(db_session, folder_manager, site, "alpha")
        record = await get_record(db_session, uuids["alpha"])
        assert record is not None
        record.removed = True
        await db_session.commit()
        (site_folder / "alpha").rmdir()

        result = await _reconciler(db_session, folder_manager, site).reconcile()
        assert not result.changed
        assert await get_record(db_session, uuids["alpha"]) is not None

    async def test_refreshes_names(
        self, db_session: AsyncSession, folder_manager: FolderManager, site: Site
    ) -> None:
        uuids = await _make_stories(db_session, folder_manager, site, "alpha")
        record = await get_record(db_session, uuids["alpha"])
        assert record is not None
        record.name = "outdated"
        await db_session.commit()

        result = await _reconciler(db_session, folder_manager, site).reconcile()
        assert result.renamed == [uuids["alpha"]]
        assert await _names(db_session, site.id) == {"alpha"}

    async def test_recreates_missing_site_folder(
        self,
        db_session: AsyncSession,
        folder_manager: FolderManager,
        site: Site,
        site_folder: Path,
    ) -> None:
        uuids = await _make_stories(db_session, folder_manager, site, "alpha")
        (site_folder / "alpha").rmdir()
        site_folder.rmdir()

        result = await _reconciler(db_session, folder_manager, site).reconcile()

        assert result.site_folder_recreated
        assert site_folder.is_dir()
        assert site_folder_path(folder_manager, site) == site_folder
        assert result.deleted == [uuids["alpha"]]

    async def test_unknown_site(
        self, db_session: AsyncSession, folder_manager: FolderManager
    ) -> None:
        result = await Reconciler(db_session, folder_manager, "missing").reconcile()
        assert not result.changed

    async def test_failed_repair_is_skipped(
        self,
        db_session: AsyncSession,
        folder_manager: FolderManager,
        site: Site,
        site_folder: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        uuids = await _make_stories(db_session, folder_manager, site, "alpha", "beta")
        (site_folder / "alpha").rmdir()
        (site_folder / "beta").rmdir()
        (site_folder / "gamma").mkdir()

        original_delete = folder_service.delete_record

        async def flaky_delete(session: AsyncSession, uuid: str) -> bool:
            if uuid == uuids["alpha"]:
                raise SQLAlchemyError("disk I/O error")
            return await original_delete(session, uuid)

        monkeypatch.setattr(folder_service, "delete_record", flaky_delete)
        # The rollback expires loaded objects, so keep plain values.
        site_uuid = site.uuid

        result = await Reconciler(db_session, folder_manager, site_uuid).reconcile()

        assert result.failed == 1
        assert result.deleted == [uuids["beta"]]
        assert len(result.created) == 1
        assert await get_record(db_session, uuids["alpha"]) is not None
        assert await get_record(db_session, uuids["beta"]) is None

        monkeypatch.setattr(folder_service, "delete_record", original_delete)
        retry = await Reconciler(db_session, folder_manager, site_uuid).reconcile()
        assert retry.deleted == [uuids["alpha"]]
        assert retry.failed == 0

    async def test_publishes_changes(
        self,
        db_session: AsyncSession,
        folder_manager: FolderManager,
        site: Site,
        site_folder: Path,
    ) -> None:
        uuids = await _make_stories(db_session, folder_manager, site, "alpha")
        (site_folder / "alpha").rmdir()
        (site_folder / "beta").mkdir()

        events = EventChannel()
        seen: list[RegistryChange] = []
        events.subscribe(seen.append)
        result = await Reconciler(db_session, folder_manager, site.uuid, events).reconcile()

        assert seen == [
            RegistryChange(entity="story_folder", kind=ChangeKind.CREATED, uuid=result.created[0]),
            RegistryChange(entity="story_folder", kind=ChangeKind.DELETED, uuid=uuids["alpha"]),
        ]

    async def test_no_changes_publish_nothing(
        self, db_session: AsyncSession, folder_manager: FolderManager, site: Site
    ) -> None:
        await _make_stories(db_session, folder_manager, site, "alpha")
        events = EventChannel()
        seen: list[RegistryChange] = []
        events.subscribe(seen.append)
        await Reconciler(db_session, folder_manager, site.uuid, events).reconcile()
        assert seen == []


class TestProcess:
    async def test_skips_consistent_site(
        self, db_session: AsyncSession, folder_manager: FolderManager, site: Site
    ) -> None:
        await _make_stories(db_session, folder_manager, site, "alpha")
        assert await _reconciler(db_session, folder_manager, site).process() is None

    async def test_reconciles_when_needed(
        self,
        db_session: AsyncSession,
        folder_manager: FolderManager,
        site: Site,
        site_folder: Path,
    ) -> None:
        (site_folder / "alpha").mkdir()
        result = await _reconciler(db_session, folder_manager, site).process()
        assert result is not None
        assert len(result.created) == 1
