"""Tests for application configuration."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from storyfolders.config import Settings


class TestSettings:
    def test_default_settings(self) -> None:
        s = Settings(_env_file=None)
        assert s.debug is False
        assert s.port == 8000
        assert s.root_dir is None
        assert s.reconcile_on_startup is True
        assert s.database_url == "sqlite+aiosqlite:///data/db/storyfolders.db"

    def test_shared_defaults_live_outside_shared_dir(self) -> None:
        s = Settings(_env_file=None)
        assert s.shared_dir not in s.shared_defaults_path.parents

    def test_custom_settings(self, tmp_path: Path) -> None:
        s = Settings(
            _env_file=None,
            debug=True,
            root_dir=tmp_path / "root",
            database_url="sqlite+aiosqlite:///test.db",
        )
        assert s.debug is True
        assert s.root_dir == tmp_path / "root"

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ROOT_DIR", "/srv/stories")
        monkeypatch.setenv("RECONCILE_ON_STARTUP", "false")
        s = Settings(_env_file=None)
        assert s.root_dir == Path("/srv/stories")
        assert s.reconcile_on_startup is False

    def test_port_range_is_validated(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, port=0)

    def test_settings_from_fixture(self, test_settings: Settings) -> None:
        assert test_settings.debug is True
        assert test_settings.root_dir is not None
        assert test_settings.root_dir.exists()


class TestCliEntry:
    def test_cli_entry_uses_app_settings(self) -> None:
        """cli_entry() should use the global app's settings, not create a new Settings()."""
        from storyfolders.main import app, cli_entry

        original_settings = getattr(app.state, "settings", None)
        app.state.settings = Settings(_env_file=None, host="127.0.0.1", port=9999, debug=True)

        try:
            with patch("uvicorn.run") as mock_run:
                cli_entry()

            mock_run.assert_called_once_with(
                "storyfolders.main:app",
                host="127.0.0.1",
                port=9999,
                reload=True,
            )
        finally:
            app.state.settings = original_settings
