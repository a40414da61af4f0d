"""Tests for JobStoreSettings and load_settings."""

from datetime import timedelta

import pytest

from jobstore.core.errors import SchedulerConfigError
from jobstore.core.settings import JobStoreSettings, load_settings
from jobstore.scheduling import JobStore


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    for name in ("DATABASE_URL", "INSTANCE_NAME", "MISFIRE_THRESHOLD_SECONDS", "LOG_LEVEL"):
        monkeypatch.delenv(f"JOBSTORE_{name}", raising=False)
    monkeypatch.chdir(tmp_path)


class TestSettings:
    def test_defaults(self):
        settings = JobStoreSettings()
        assert settings.instance_name == "scheduler"
        assert settings.misfire_threshold == timedelta(seconds=5)
        assert settings.clustered is False
        assert len(settings.instance_id) == 26

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("JOBSTORE_INSTANCE_NAME", "reports")
        monkeypatch.setenv("JOBSTORE_MISFIRE_THRESHOLD_SECONDS", "60")
        settings = load_settings()
        assert settings.instance_name == "reports"
        assert settings.misfire_threshold == timedelta(minutes=1)

    def test_overrides_win(self, monkeypatch):
        monkeypatch.setenv("JOBSTORE_INSTANCE_NAME", "reports")
        assert load_settings(instance_name="etl").instance_name == "etl"

    def test_log_level_is_normalized(self):
        assert load_settings(log_level="debug").log_level == "DEBUG"

    @pytest.mark.parametrize(
        "overrides",
        [{"log_level": "LOUD"}, {"misfire_threshold_seconds": -1}, {"instance_name": ""}],
    )
    def test_invalid_values(self, overrides):
        with pytest.raises(SchedulerConfigError):
            load_settings(**overrides)


class TestFromSettings:
    def test_builds_store(self):
        store = JobStore.from_settings(
            database_url="sqlite://", instance_name="etl", misfire_threshold_seconds=30
        )
        assert store.instance_name == "etl"
        assert store.misfire_threshold == timedelta(seconds=30)
        assert store.get_number_of_jobs() == 0

    def test_constructor_overrides(self):
        store = JobStore.from_settings(load_settings(database_url="sqlite://"), clustered=True)
        assert store.clustered is True
        assert store.supports_persistence
