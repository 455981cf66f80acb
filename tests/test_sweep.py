from __future__ import annotations

import os
import time
from pathlib import Path

import allure

from perspective_service.supervisor.sweep import StaleFileSweeper, sweep_stale_files

pytestmark = [
    allure.epic("Job Supervision"),
    allure.feature("Orphan Sweep"),
]


def _aged(path: Path, age_seconds: float) -> Path:
    path.write_bytes(b"x")
    stamp = time.time() - age_seconds
    os.utime(path, (stamp, stamp))
    return path


def test_sweep_removes_only_files_older_than_threshold(tmp_path: Path) -> None:
    stale = _aged(tmp_path / "stale.bmp", 7_200)
    fresh = _aged(tmp_path / "fresh.png", 10)
    (tmp_path / "nested").mkdir()

    result = sweep_stale_files(tmp_path, max_age_seconds=3_600)

    assert result.deleted == [stale]
    assert result.scanned == 3
    assert result.errors == 0
    assert not stale.exists()
    assert fresh.exists()
    assert (tmp_path / "nested").is_dir()


def test_sweep_tolerates_missing_directory(tmp_path: Path) -> None:
    result = sweep_stale_files(tmp_path / "absent", max_age_seconds=60)

    assert result.scanned == 0
    assert result.deleted == []


def test_sweeper_covers_every_directory(tmp_path: Path) -> None:
    uploads = tmp_path / "uploads"
    outputs = tmp_path / "outputs"
    uploads.mkdir()
    outputs.mkdir()
    _aged(uploads / "a.png", 500)
    _aged(outputs / "b.jpg", 500)
    sweeper = StaleFileSweeper(
        directories=(uploads, outputs),
        max_age_seconds=100,
        interval_seconds=3_600,
    )

    results = sweeper.sweep_once()

    assert [len(result.deleted) for result in results] == [1, 1]


def test_sweeper_thread_runs_periodically_until_stopped(tmp_path: Path) -> None:
    sweeper = StaleFileSweeper(directories=(tmp_path,), max_age_seconds=100, interval_seconds=0.05)
    sweeper.start()
    try:
        stale = _aged(tmp_path / "late.bmp", 500)
        deadline = time.monotonic() + 10
        while stale.exists() and time.monotonic() < deadline:
            time.sleep(0.02)
    finally:
        sweeper.stop()

    assert not stale.exists()


def test_sweep_keeps_stale_files_of_active_jobs(tmp_path: Path) -> None:
    busy = _aged(tmp_path / "busy.png", 7_200)
    orphan = _aged(tmp_path / "orphan.png", 7_200)

    result = sweep_stale_files(
        tmp_path,
        max_age_seconds=3_600,
        in_use=lambda path: path.name == "busy.png",
    )

    assert result.deleted == [orphan]
    assert busy.exists()
