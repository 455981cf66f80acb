"""Use-case services wiring configuration into the supervisor."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

from perspective_service.config import Settings
from perspective_service.supervisor.converter import build_converter
from perspective_service.supervisor.launcher import build_launcher
from perspective_service.supervisor.models import Job, JobResult
from perspective_service.supervisor.supervisor import JobSupervisor
from perspective_service.supervisor.sweep import StaleFileSweeper

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class WorkerStatus:
    """Presence of the configured worker executable on disk."""

    executable: Path
    exists: bool


def worker_status(settings: Settings) -> WorkerStatus:
    executable = settings.worker.executable
    return WorkerStatus(executable=executable, exists=executable.exists())


def build_supervisor(settings: Settings) -> JobSupervisor:
    """Create a supervisor with launcher and converter chosen from settings."""

    launcher = build_launcher(
        name=settings.worker.launcher,
        executable=settings.worker.executable,
        wine_command=settings.worker.wine_command,
        args_prefix=settings.worker.args_prefix,
    )
    converter = build_converter(
        name=settings.conversion.backend,
        command=settings.conversion.command,
        timeout_seconds=settings.conversion.timeout_seconds,
    )
    return JobSupervisor(
        launcher=launcher,
        converter=converter,
        output_dir=settings.storage.output_dir,
        poll_interval_seconds=settings.poll.interval_seconds,
        max_poll_attempts=settings.poll.max_attempts,
        terminate_grace_seconds=settings.worker.terminate_grace_seconds,
        conversion_quality=settings.conversion.quality,
        serialize_worker=settings.worker.serialize,
    )


def build_sweeper(
    settings: Settings,
    supervisor: JobSupervisor | None = None,
) -> StaleFileSweeper:
    """Sweeper over upload and output dirs that spares files of in-flight jobs."""

    return StaleFileSweeper(
        directories=(settings.storage.upload_dir, settings.storage.output_dir),
        max_age_seconds=settings.storage.retention_seconds,
        interval_seconds=settings.storage.sweep_interval_seconds,
        in_use=supervisor.in_use if supervisor is not None else None,
    )


class CorrectionService:
    """Coordinates upload storage and job supervision."""

    def __init__(self, *, settings: Settings, supervisor: JobSupervisor | None = None) -> None:
        self.settings = settings
        self.supervisor = supervisor or build_supervisor(settings)

    def ensure_directories(self) -> None:
        self.settings.storage.upload_dir.mkdir(parents=True, exist_ok=True)
        self.settings.storage.output_dir.mkdir(parents=True, exist_ok=True)

    def new_upload_path(self, suffix: str) -> Path:
        """Unique location for an incoming upload."""

        self.settings.storage.upload_dir.mkdir(parents=True, exist_ok=True)
        return self.settings.storage.upload_dir / f"{uuid4().hex}{suffix.lower()}"

    def correct(self, input_path: Path, mode: str | None = None) -> tuple[Job, JobResult]:
        """Run one job; the caller discards ``job.artifacts`` after delivery."""

        job = self.supervisor.submit(input_path, mode or self.settings.worker.default_mode)
        return job, self.supervisor.run(job)
