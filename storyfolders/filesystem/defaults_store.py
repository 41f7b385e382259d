"""TOML-backed key-value store for small user preferences and shared snapshots."""

from __future__ import annotations

import logging
import tomllib
from typing import TYPE_CHECKING, Any

import tomli_w

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)


class DefaultsStore:
    """A flat key-value store persisted as one TOML document.

    The file is re-read on every access so that separate processes sharing
    the same file (the app and its share extension) observe each other's
    writes. Values must be TOML-representable: no ``None``, and bytes must be
    encoded by the caller.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            return tomllib.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as exc:
            logger.error("Failed to read defaults from %s: %s", self.path, exc)
            return {}

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_bytes(tomli_w.dumps(data).encode("utf-8"))

    def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value for a key, or the default."""
        return self._load().get(key, default)

    def get_int(self, key: str, default: int = 0) -> int:
        """Return an integer value, or the default if missing or mistyped."""
        value = self._load().get(key)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        return default

    def get_dict(self, key: str) -> dict[str, Any] | None:
        """Return a table value, or None if missing or mistyped."""
        value = self._load().get(key)
        return value if isinstance(value, dict) else None

    def get_list(self, key: str) -> list[dict[str, Any]] | None:
        """Return a list of tables, or None if missing or mistyped."""
        value = self._load().get(key)
        if not isinstance(value, list) or not all(isinstance(v, dict) for v in value):
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        """Store a value under a key, replacing any previous value."""
        data = self._load()
        data[key] = value
        self._write(data)

    def remove(self, key: str) -> None:
        """Remove a key. Missing keys are ignored."""
        data = self._load()
        if key in data:
            del data[key]
            self._write(data)

    def __contains__(self, key: str) -> bool:
        return key in self._load()
