"""Tests for settings loading."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from mediashelf.config import Settings


class TestSettingsDefaults:
    """Test default values."""

    def test_engine_defaults(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.chdir(tmp_path)
        settings = Settings()

        assert settings.scanner.max_depth == 3
        assert settings.scanner.reconcile_depth == 2
        assert settings.scanner.ignored_prefixes == ["Android"]
        assert "LOST.DIR" in settings.scanner.ignored_dirs
        assert settings.cache.ttl_hours == 24
        assert settings.cache.drift_threshold == 0.05

    def test_database_url_derived_from_data_dir(self, tmp_path: Path) -> None:
        settings = Settings(storage={"data_dir": str(tmp_path)})

        assert settings.database.url == f"sqlite+aiosqlite:///{tmp_path / 'mediashelf.db'}"
        assert settings.storage.state_path == tmp_path / "state.json"

    def test_explicit_database_url_kept(self, tmp_path: Path) -> None:
        settings = Settings(database={"url": "sqlite+aiosqlite:///other.db"})
        assert settings.database.url == "sqlite+aiosqlite:///other.db"


class TestSettingsEnvironment:
    """Test MEDIASHELF_* environment overrides."""

    def test_nested_env_override(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("MEDIASHELF_CACHE__TTL_HOURS", "12")
        monkeypatch.setenv("MEDIASHELF_SCANNER__MAX_DEPTH", "5")

        settings = Settings()

        assert settings.cache.ttl_hours == 12
        assert settings.scanner.max_depth == 5

    def test_invalid_values_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(scanner={"batch_size": 0})
        with pytest.raises(ValidationError):
            Settings(cache={"ttl_hours": 0})
