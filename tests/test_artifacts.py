from __future__ import annotations

import logging
from pathlib import Path

import allure
import pytest

from perspective_service.supervisor.artifacts import ArtifactRegistry

pytestmark = [
    allure.epic("Job Supervision"),
    allure.feature("Artifact Cleanup"),
]


def _touch(path: Path) -> Path:
    path.write_bytes(b"data")
    return path


def test_release_keeps_only_retained_artifact(tmp_path: Path) -> None:
    registry = ArtifactRegistry("job-1")
    upload = registry.register(_touch(tmp_path / "upload.png"))
    bitmap = registry.register(_touch(tmp_path / "job-1.bmp"))
    jpeg = _touch(tmp_path / "job-1.jpg")
    registry.retain(jpeg)

    removed = registry.release()

    assert removed == [upload, bitmap]
    assert not upload.exists()
    assert not bitmap.exists()
    assert jpeg.exists()
    assert registry.paths == [jpeg]


def test_discard_all_removes_retained_artifact_too(tmp_path: Path) -> None:
    registry = ArtifactRegistry("job-2")
    jpeg = _touch(tmp_path / "job-2.jpg")
    registry.retain(jpeg)
    registry.release()

    assert registry.discard_all() == [jpeg]
    assert not jpeg.exists()
    assert registry.retained is None
    assert registry.discard_all() == []


def test_missing_files_are_ignored(tmp_path: Path) -> None:
    registry = ArtifactRegistry("job-3")
    registry.register(tmp_path / "never-written.bmp")

    assert registry.release() == []


def test_discard_deletes_one_artifact_immediately(tmp_path: Path) -> None:
    registry = ArtifactRegistry("job-4")
    bitmap = registry.register(_touch(tmp_path / "job-4.bmp"))
    other = registry.register(_touch(tmp_path / "upload.png"))

    assert registry.discard(bitmap) is True
    assert not bitmap.exists()
    assert registry.paths == [other]


def test_deletion_failure_is_logged_not_raised(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    registry = ArtifactRegistry("job-5")
    stuck = registry.register(_touch(tmp_path / "stuck.bmp"))
    loose = registry.register(_touch(tmp_path / "loose.png"))
    original_unlink = Path.unlink

    def _unlink(self: Path, missing_ok: bool = False) -> None:
        if self == stuck:
            raise PermissionError("file is locked")
        original_unlink(self, missing_ok=missing_ok)

    monkeypatch.setattr(Path, "unlink", _unlink)

    with caplog.at_level(logging.WARNING):
        removed = registry.release()

    assert removed == [loose]
    assert stuck.exists()
    assert "Cleanup failed: job_id=job-5" in caplog.text
