"""Sandboxed folder operations beneath a single root directory."""

from __future__ import annotations

import logging
import os
import re
import shutil
from pathlib import Path
from typing import TYPE_CHECKING

from storyfolders.exceptions import UnusableRootError
from storyfolders.filesystem.bookmarks import (
    Bookmark,
    create_bookmark,
    default_trash_dirs,
    is_trashed,
    resolve_bookmark,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

_UNSAFE_NAME_CHARS = re.compile(r"[/\\.]")


def _is_writable_dir(path: Path | None) -> bool:
    return path is not None and path.is_dir() and os.access(path, os.W_OK | os.X_OK)


def default_root_dir() -> Path | None:
    """Return the platform default writable directory, or None if there is none."""
    home = Path.home()
    for candidate in (home / "Documents", home):
        if _is_writable_dir(candidate):
            return candidate
    return None


class FolderManager:
    """Folder CRUD relative to a movable current folder, confined to a root.

    Relative paths resolve against ``current_folder``, which is always the
    root or one of its descendants. Every mutating operation checks that its
    target lies inside the root by comparing filesystem identity, so symlinks
    cannot be used to reach outside it. Operations report failure through
    their return value and log the cause; they do not raise.
    """

    def __init__(
        self,
        root: Path | None = None,
        fallback: Path | None = None,
        trash_dirs: Iterable[Path] | None = None,
    ) -> None:
        if _is_writable_dir(root):
            chosen = root
        else:
            if root is not None:
                logger.warning("Root folder %s is missing or not writable; using fallback", root)
            chosen = fallback if _is_writable_dir(fallback) else default_root_dir()
        if chosen is None:
            msg = "No writable root folder is available"
            raise UnusableRootError(msg)

        self.root: Path = chosen.resolve()
        self.current_folder: Path = self.root
        self.trash_dirs: list[Path] = (
            list(trash_dirs) if trash_dirs is not None else default_trash_dirs()
        )
        logger.debug("Folder manager rooted at %s", self.root)

    # Queries

    def folder_exists(self, path: Path) -> bool:
        """Return True if the path exists and is a directory."""
        return Path(path).is_dir()

    def resolve_path(self, path: str | Path, if_exists_append_suffix: bool = False) -> Path:
        """Resolve a folder path relative to the current folder.

        With ``if_exists_append_suffix`` an existing folder's name gets a
        numeric suffix (``"Name 2"``, ``"Name 3"``, ...) until the name is free.
        Nothing is created.
        """
        target = Path(os.path.abspath(self.current_folder / path))
        if not if_exists_append_suffix or not self.folder_exists(target):
            return target

        counter = 2
        while True:
            candidate = target.with_name(f"{target.name} {counter}")
            if not candidate.exists():
                return candidate
            counter += 1

    def contains(self, folder: Path, descendant: Path) -> bool:
        """Return True if ``descendant`` lies strictly inside ``folder``.

        The descendant's real path is walked upward and each ancestor is
        compared to ``folder`` by device and inode, so aliases and symlinks
        are judged by what they point to.
        """
        try:
            folder_stat = os.stat(folder)
            target = Path(descendant).resolve(strict=True)
        except OSError as exc:
            logger.debug("Unable to check containment of %s in %s: %s", descendant, folder, exc)
            return False
        for parent in target.parents:
            try:
                if os.path.samestat(folder_stat, os.stat(parent)):
                    return True
            except OSError:
                return False
        return False

    def is_parent_of(self, folder: Path, child: Path) -> bool:
        """Return True if ``folder`` is the immediate parent of ``child``."""
        try:
            parent = Path(child).resolve(strict=True).parent
            return os.path.samefile(folder, parent)
        except OSError:
            return False

    def is_same_folder(self, first: Path, second: Path) -> bool:
        """Return True if both paths name the same directory."""
        try:
            return self.folder_exists(first) and os.path.samefile(first, second)
        except OSError:
            return False

    def _is_inside_root(self, path: Path) -> bool:
        """Check that a path, existing or not, would live inside the root.

        For paths that do not exist yet the nearest existing ancestor decides.
        """
        probe = Path(os.path.abspath(path))
        probe_is_target = True
        while not probe.exists():
            if probe.parent == probe:
                return False
            probe = probe.parent
            probe_is_target = False
        try:
            if os.path.samefile(probe, self.root):
                return not probe_is_target
        except OSError:
            return False
        return self.contains(self.root, probe)

    def _is_root_or_inside(self, path: Path) -> bool:
        try:
            if os.path.samefile(path, self.root):
                return True
        except OSError:
            return False
        return self.contains(self.root, path)

    # Current folder

    def set_current_folder(self, path: Path) -> bool:
        """Make ``path`` the current folder if it is the root or inside it."""
        if not self.folder_exists(path) or not self._is_root_or_inside(path):
            logger.warning("Refusing to set current folder outside of root: %s", path)
            return False
        self.current_folder = Path(path).resolve()
        return True

    def reset_current_folder(self) -> None:
        """Set the current folder back to the root."""
        self.current_folder = self.root

    # Enumeration

    def _scan(self, path: Path, folders_only: bool) -> list[Path]:
        items: list[Path] = []
        try:
            with os.scandir(path) as it:
                entries = list(it)
        except OSError as exc:
            logger.error("Error getting contents of %s: %s", path, exc)
            return items

        entries.sort(key=lambda e: e.name)
        for entry in entries:
            if entry.name.startswith("."):
                continue
            try:
                if folders_only and not entry.is_dir():
                    continue
                items.append(Path(entry.path).resolve())
            except OSError as exc:
                logger.warning("Skipping unreadable entry %s: %s", entry.path, exc)
        return items

    def list_folders(self, path: Path | None = None) -> list[Path]:
        """List immediate child folders, skipping hidden entries."""
        return self._scan(path if path is not None else self.current_folder, folders_only=True)

    def list_contents(self, path: Path | None = None) -> list[Path]:
        """List all immediate children, skipping hidden entries."""
        return self._scan(path if path is not None else self.current_folder, folders_only=False)

    # Mutations

    def create_folder(
        self, path: str | Path, if_exists_append_suffix: bool = False
    ) -> Path | None:
        """Create a folder, returning its path, or None if it could not be created.

        An existing folder is returned as-is unless ``if_exists_append_suffix``
        asks for a fresh, suffixed name.
        """
        target = self.resolve_path(path, if_exists_append_suffix=if_exists_append_suffix)
        if not self._is_inside_root(target):
            logger.error("Refusing to create folder outside of root %s: %s", self.root, target)
            return None

        if self.folder_exists(target):
            return target.resolve()

        try:
            target.mkdir(parents=True, exist_ok=False)
        except OSError as exc:
            logger.error("Unable to create directory %s: %s", target, exc)
            return None
        return target.resolve()

    def delete_item(self, path: Path) -> bool:
        """Delete a file or folder inside the root."""
        if not self.contains(self.root, path):
            logger.error("Item for deletion %s is outside of the root folder %s", path, self.root)
            return False
        try:
            if Path(path).is_dir() and not Path(path).is_symlink():
                shutil.rmtree(path)
            else:
                Path(path).unlink()
        except OSError as exc:
            logger.error("Error removing item %s: %s", path, exc)
            return False
        return True

    def delete_folder(self, path: Path) -> bool:
        """Delete a folder inside the root. Non-folders are left alone."""
        if not self.folder_exists(path):
            return False
        return self.delete_item(path)

    def delete_contents(self, path: Path) -> bool:
        """Delete every child of a folder. Returns False if any deletion failed."""
        success = True
        for item in self.list_contents(path):
            if not self.delete_item(item):
                success = False
        return success

    def move_item(self, source: Path, destination: Path) -> bool:
        """Move a file or folder; both locations must be inside the root."""
        if not self.contains(self.root, source) or not self._is_inside_root(destination):
            logger.error("Refusing to move %s to %s outside of root", source, destination)
            return False
        if destination.exists():
            logger.error("Unable to move %s: %s already exists", source, destination)
            return False
        try:
            os.rename(source, destination)
        except OSError as exc:
            logger.error("Unable to move %s to %s: %s", source, destination, exc)
            return False
        return True

    def move_folder(self, source: Path, destination: Path) -> bool:
        """Move a folder to a new location whose name is sanitized first."""
        name = self.sanitize_folder_name(Path(destination).name)
        if not self.is_valid_folder_name(name):
            return False

        destination = Path(destination).parent / name
        if not self.folder_exists(source) or destination.exists():
            return False
        return self.move_item(Path(source), destination)

    def rename_folder(self, source: Path, new_name: str) -> Path | None:
        """Rename a folder in place, suffixing the name if it is taken.

        Returns the new path, or None if the folder could not be renamed.
        """
        sanitized = self.sanitize_folder_name(new_name)
        if not self.is_valid_folder_name(sanitized):
            return None

        parent = Path(source).parent
        new_path = parent / sanitized
        if self.folder_exists(new_path):
            counter = 2
            while (parent / f"{sanitized} {counter}").exists():
                counter += 1
            new_path = parent / f"{sanitized} {counter}"

        if self.move_folder(source, new_path):
            return new_path.resolve()
        return None

    # Names

    @staticmethod
    def sanitize_folder_name(name: str) -> str:
        """Make a name safe to use as a single path component.

        Path separators and dots become hyphens, and leading/trailing hyphens
        are stripped: ``"www.example.com/path/"`` -> ``"www-example-com-path"``.
        """
        return _UNSAFE_NAME_CHARS.sub("-", name).strip("-")

    @staticmethod
    def is_valid_folder_name(name: str) -> bool:
        """Return True if the name is not empty or whitespace-only."""
        return bool(name.strip())

    # Bookmarks

    @property
    def bookmark_search_roots(self) -> list[Path]:
        """Folders searched when a bookmarked item is no longer at its recorded path."""
        return [self.root, *self.trash_dirs]

    def bookmark(self, path: Path) -> bytes | None:
        """Return bookmark data for an existing item, or None on error."""
        try:
            return create_bookmark(Path(path)).to_bytes()
        except OSError as exc:
            logger.error("Unable to create bookmark for %s: %s", path, exc)
            return None

    def resolve_bookmark(self, data: bytes) -> tuple[Path | None, bool]:
        """Resolve bookmark data to ``(path, is_stale)``.

        Undecodable data resolves to ``(None, True)``.
        """
        try:
            bookmark = Bookmark.from_bytes(data)
        except ValueError as exc:
            logger.error("Unable to resolve bookmark data: %s", exc)
            return None, True
        resolved = resolve_bookmark(bookmark, self.bookmark_search_roots)
        return resolved.path, resolved.is_stale

    def is_trashed(self, path: Path) -> bool:
        """Return True if the path points into a trash folder."""
        return is_trashed(Path(path))
