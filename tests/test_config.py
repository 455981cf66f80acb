from __future__ import annotations

from pathlib import Path

import allure
import pytest

from perspective_service.config import PollSettings, Settings, StorageSettings

pytestmark = [
    allure.epic("Service"),
    allure.feature("Configuration"),
]


def test_from_env_defaults_match_worker_contract(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "SHIFTN_PATH",
        "PERSPECTIVE_WORKER_EXECUTABLE",
        "PERSPECTIVE_POLL_INTERVAL_SECONDS",
        "PERSPECTIVE_POLL_MAX_ATTEMPTS",
        "PERSPECTIVE_JPEG_QUALITY",
        "PERSPECTIVE_PORT",
        "PORT",
        "API_KEY",
        "PERSPECTIVE_API_KEY",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()

    assert settings.worker.executable == Path("/app/shiftn") / "ShiftN.exe"
    assert settings.worker.default_mode == "A2"
    assert settings.poll.interval_seconds == 3.0
    assert settings.poll.max_attempts == 100
    assert settings.poll.deadline_seconds == 300.0
    assert settings.conversion.quality == 90
    assert settings.server.port == 3000
    assert settings.server.api_key is None
    assert settings.server.max_upload_bytes == 50 * 1024 * 1024


def test_from_env_reads_legacy_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("PERSPECTIVE_WORKER_EXECUTABLE", raising=False)
    monkeypatch.delenv("PERSPECTIVE_PORT", raising=False)
    monkeypatch.delenv("PERSPECTIVE_API_KEY", raising=False)
    monkeypatch.setenv("SHIFTN_PATH", "/opt/shiftn")
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("API_KEY", "k")

    settings = Settings.from_env()

    assert settings.worker.executable == Path("/opt/shiftn") / "ShiftN.exe"
    assert settings.server.port == 8080
    assert settings.server.api_key == "k"


def test_from_env_parses_worker_args_prefix(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PERSPECTIVE_WORKER_ARGS_PREFIX", "-m 'fake worker'")

    settings = Settings.from_env()

    assert settings.worker.args_prefix == ("-m", "fake worker")


def test_from_env_rejects_invalid_boolean(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PERSPECTIVE_SERIALIZE_WORKER", "maybe")

    with pytest.raises(ValueError, match="PERSPECTIVE_SERIALIZE_WORKER"):
        Settings.from_env()


def test_from_env_rejects_unknown_launcher(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PERSPECTIVE_WORKER_LAUNCHER", "docker")

    with pytest.raises(ValueError, match="PERSPECTIVE_WORKER_LAUNCHER"):
        Settings.from_env()


def test_from_env_rejects_unknown_default_mode(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PERSPECTIVE_DEFAULT_MODE", "a9")

    with pytest.raises(ValueError, match="PERSPECTIVE_DEFAULT_MODE"):
        Settings.from_env()


def test_validate_rejects_quality_out_of_range() -> None:
    settings = Settings()
    settings.conversion.quality = 0

    with pytest.raises(ValueError, match="JPEG_QUALITY"):
        settings.validate()


def test_validate_rejects_non_positive_poll_budget() -> None:
    settings = Settings(poll=PollSettings(max_attempts=0))

    with pytest.raises(ValueError, match="POLL_MAX_ATTEMPTS"):
        settings.validate()


def test_validate_requires_retention_longer_than_job_deadline() -> None:
    settings = Settings(
        poll=PollSettings(interval_seconds=3.0, max_attempts=100),
        storage=StorageSettings(retention_seconds=300.0),
    )

    with pytest.raises(ValueError, match="must exceed the job deadline"):
        settings.validate()
