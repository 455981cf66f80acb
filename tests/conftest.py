"""Shared test fixtures."""

from __future__ import annotations

import os
import sys
import time
from pathlib import Path

import pytest
from PIL import Image

from perspective_service.config import (
    ConversionSettings,
    PollSettings,
    ServerSettings,
    Settings,
    StorageSettings,
    WorkerSettings,
)
from perspective_service.supervisor.launcher import DirectLauncher

FAKE_WORKER_ARGS = ("-m", "perspective_service.supervisor.fake_worker")


@pytest.fixture()
def sample_image(tmp_path: Path) -> Path:
    path = tmp_path / "source" / "photo.png"
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", (64, 48), color=(200, 120, 40)).save(path, format="PNG")
    return path


@pytest.fixture()
def fake_worker_launcher() -> DirectLauncher:
    return DirectLauncher(executable=Path(sys.executable), args_prefix=FAKE_WORKER_ARGS)


@pytest.fixture()
def fake_worker_behavior(monkeypatch: pytest.MonkeyPatch):
    """Select how the fake worker behaves for the current test."""

    def _set(behavior: str) -> None:
        monkeypatch.setenv("PERSPECTIVE_FAKE_WORKER_BEHAVIOR", behavior)

    _set("linger")
    return _set


@pytest.fixture()
def fast_settings(tmp_path: Path) -> Settings:
    """Settings wired to the fake worker with a short polling budget."""

    return Settings(
        worker=WorkerSettings(
            executable=Path(sys.executable),
            launcher="direct",
            args_prefix=FAKE_WORKER_ARGS,
            terminate_grace_seconds=1.0,
        ),
        poll=PollSettings(interval_seconds=0.1, max_attempts=100),
        conversion=ConversionSettings(backend="pillow"),
        storage=StorageSettings(
            upload_dir=tmp_path / "uploads",
            output_dir=tmp_path / "outputs",
            retention_seconds=3_600.0,
            sweep_interval_seconds=3_600.0,
        ),
        server=ServerSettings(api_key="secret-key"),
    )


class ProcessWatch:
    """Helpers for asserting on processes the tests do not own directly."""

    @staticmethod
    def alive(pid: int) -> bool:
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        # An unreaped zombie still answers signal 0.
        try:
            stat = Path(f"/proc/{pid}/stat").read_text()
        except OSError:
            return True
        return stat.rsplit(")", 1)[1].split()[0] != "Z"

    def wait_until_dead(self, pid: int, timeout: float = 5.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if not self.alive(pid):
                return True
            time.sleep(0.05)
        return not self.alive(pid)

    @staticmethod
    def pid_from_file(path: Path, timeout: float = 10.0) -> int:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            text = path.read_text().strip() if path.exists() else ""
            if text:
                return int(text)
            time.sleep(0.02)
        raise AssertionError(f"{path} was never written")


@pytest.fixture()
def process_watch() -> ProcessWatch:
    return ProcessWatch()
