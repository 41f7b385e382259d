"""Portable bookmarks: durable, relocation-tolerant references to files and folders.

A bookmark records the filesystem identity of an item (device and inode
numbers) together with the path it had when the bookmark was made. Resolving
a bookmark first tries the recorded path; if the item is no longer there, the
search roots are walked looking for the same identity. A bookmark that only
resolves after such a search is reported as stale, as is any bookmark whose
item now sits in a trash folder.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

BOOKMARK_VERSION = 1

# Path segments that mark an item as moved to a trash or recycle bin. They are
# the same regardless of the system language.
TRASH_SEGMENTS = frozenset({".Trash", ".Trashes", "$RECYCLE.BIN"})


@dataclass(frozen=True)
class Bookmark:
    """Filesystem identity plus the last known location of an item."""

    path: str
    device: int
    inode: int

    def to_bytes(self) -> bytes:
        """Serialize to the opaque form stored in the registry."""
        payload = {
            "v": BOOKMARK_VERSION,
            "path": self.path,
            "dev": self.device,
            "ino": self.inode,
        }
        return json.dumps(payload, sort_keys=True).encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes) -> Bookmark:
        """Parse serialized bookmark data.

        Raises ValueError if the data is not a bookmark of a supported version.
        """
        try:
            payload = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ValueError("Bookmark data is not decodable") from exc
        if not isinstance(payload, dict) or payload.get("v") != BOOKMARK_VERSION:
            raise ValueError("Unsupported bookmark format")
        try:
            return cls(
                path=str(payload["path"]),
                device=int(payload["dev"]),
                inode=int(payload["ino"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError("Bookmark data is missing required fields") from exc


@dataclass(frozen=True)
class ResolvedBookmark:
    """Outcome of resolving a bookmark."""

    path: Path | None
    is_stale: bool


def create_bookmark(path: Path) -> Bookmark:
    """Create a bookmark for an existing item. Raises OSError if it cannot be read."""
    real = path.resolve(strict=True)
    stat = real.stat()
    return Bookmark(path=str(real), device=stat.st_dev, inode=stat.st_ino)


def is_trashed(path: Path) -> bool:
    """Check whether a path points into a trash folder.

    Recognizes the macOS ``.Trash``/``.Trashes`` folders, the Windows
    ``$RECYCLE.BIN`` and the freedesktop ``Trash/files`` layout.
    """
    parts = path.parts
    if any(part in TRASH_SEGMENTS for part in parts):
        return True
    return any(a == "Trash" and b == "files" for a, b in zip(parts, parts[1:], strict=False))


def default_trash_dirs() -> list[Path]:
    """Return the trash folders of the current user that exist on this machine."""
    home = Path.home()
    candidates = [home / ".Trash", home / ".local" / "share" / "Trash" / "files"]
    return [c for c in candidates if c.is_dir()]


def _matches(path: Path, bookmark: Bookmark) -> bool:
    try:
        stat = path.stat()
    except OSError:
        return False
    return stat.st_dev == bookmark.device and stat.st_ino == bookmark.inode


def find_by_identity(bookmark: Bookmark, search_roots: Iterable[Path]) -> Path | None:
    """Walk the search roots looking for an item with the bookmark's identity."""
    for search_root in search_roots:
        if not search_root.is_dir():
            continue
        for dirpath, dirnames, filenames in os.walk(search_root):
            for name in (*dirnames, *filenames):
                candidate = Path(dirpath) / name
                if _matches(candidate, bookmark):
                    return candidate.resolve()
    return None


def resolve_bookmark(bookmark: Bookmark, search_roots: Iterable[Path]) -> ResolvedBookmark:
    """Resolve a bookmark to a live path.

    Returns the recorded path (not stale) when the same item is still there,
    the relocated path (stale) when it was found elsewhere in the search
    roots, and no path (stale) when it cannot be found at all. A resolved
    path inside a trash folder is always stale.
    """
    recorded = Path(bookmark.path)
    if _matches(recorded, bookmark):
        return ResolvedBookmark(path=recorded, is_stale=is_trashed(recorded))

    relocated = find_by_identity(bookmark, search_roots)
    if relocated is None:
        logger.debug("Bookmarked item %s could not be located", bookmark.path)
        return ResolvedBookmark(path=None, is_stale=True)

    logger.debug("Bookmarked item %s moved to %s", bookmark.path, relocated)
    return ResolvedBookmark(path=relocated, is_stale=True)
