"""Tests for the application lifespan wiring."""

import pytest
from fastapi.testclient import TestClient

from chartmirror.config import Settings
from chartmirror.domain.exceptions import ConfigurationError
from chartmirror.infrastructure.lifecycle import _ensure_sqlite_directory
from chartmirror.main import create_app

# Hey future me - `with TestClient(app)` runs the real lifespan: SQLite file in
# tmp_path, real service and worker. No request here reaches the catalog.


def _settings(tmp_path, fast_catalog_settings, **sync) -> Settings:
    return Settings(
        catalog=fast_catalog_settings,
        database={"url": f"sqlite+aiosqlite:///{tmp_path}/data/nested/mirror.db"},
        sync={"enabled": False, **sync},
    )


class TestLifespan:
    """Startup and shutdown through the FastAPI lifespan."""

    def test_startup_wires_state(
        self, tmp_path, fast_catalog_settings, restore_root_logger
    ) -> None:
        app = create_app(_settings(tmp_path, fast_catalog_settings))

        with TestClient(app) as client:
            assert (tmp_path / "data" / "nested").is_dir()
            assert app.state.mirror_service is not None
            assert app.state.sync_enabled is False

            ready = client.get("/health/ready")
            status = client.get("/api/catalog/status")

        assert ready.status_code == 200
        assert ready.json()["database"] is True
        assert status.status_code == 200
        assert status.json()["mirrored_songs"] == 0
        assert status.json()["worker"]["running"] is False

    def test_enabled_worker_runs_until_shutdown(
        self, tmp_path, fast_catalog_settings, restore_root_logger
    ) -> None:
        app = create_app(
            _settings(tmp_path, fast_catalog_settings, enabled=True, interval_seconds=3600)
        )

        with TestClient(app) as client:
            worker = app.state.sync_worker
            assert worker.get_status()["running"] is True
            assert client.get("/health/ready").json()["sync_worker"] is True

        assert worker.get_status()["running"] is False


class TestEnsureSqliteDirectory:
    """Parent directory creation for file-backed SQLite."""

    def test_memory_database_is_skipped(self) -> None:
        _ensure_sqlite_directory(Settings(database={"url": "sqlite+aiosqlite:///:memory:"}))

    def test_non_sqlite_is_skipped(self) -> None:
        _ensure_sqlite_directory(
            Settings(database={"url": "postgresql+asyncpg://user@localhost/mirror"})
        )

    def test_invalid_url(self) -> None:
        with pytest.raises(ConfigurationError, match="Invalid database URL"):
            _ensure_sqlite_directory(Settings(database={"url": "not a url"}))
