"""Controllers for service CLI commands."""

from __future__ import annotations

import shutil
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from perspective_service.config import Settings
from perspective_service.services import CorrectionService, build_sweeper, worker_status
from perspective_service.supervisor.models import JobFailure


@dataclass(slots=True)
class CorrectCommand:
    """CLI input for a one-shot local correction."""

    input_path: Path
    mode: str | None
    output_path: Path | None


@dataclass(slots=True)
class SweepCommand:
    """CLI input for a single stale-file sweep."""

    max_age_seconds: float | None


@dataclass(slots=True)
class CommandResult:
    """Printable outcome with success flag."""

    lines: list[str]
    success: bool


class ServiceCliController:
    """Coordinates CLI command execution."""

    def __init__(self, settings_factory: Callable[[], Settings] | None = None) -> None:
        self._settings_factory = settings_factory or (lambda: Settings.from_env())

    def correct(self, command: CorrectCommand) -> CommandResult:
        settings = self._settings_factory()
        service = CorrectionService(settings=settings)
        # The job owns and deletes its input, so it gets a private copy.
        staged = service.new_upload_path(command.input_path.suffix)
        shutil.copyfile(command.input_path, staged)

        job, result = service.correct(staged, command.mode)
        try:
            if isinstance(result, JobFailure):
                lines = [
                    f"Job {result.job_id} failed: kind={result.kind.value}",
                    f"Details: {result.message}",
                ]
                if result.diagnostics.stdout.strip():
                    lines.append(f"Worker stdout: {result.diagnostics.stdout.strip()}")
                return CommandResult(lines=lines, success=False)

            destination = command.output_path or _default_output_path(
                command.input_path,
                result.artifact_path.suffix,
            )
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(result.artifact_path, destination)
            return CommandResult(
                lines=[
                    f"Job {result.job_id} succeeded in {result.elapsed_seconds:.1f}s "
                    f"after {result.poll_attempts} poll attempts",
                    f"Converted: {'yes' if result.converted else 'no'} ({result.media_type})",
                    f"Output: {destination}",
                ],
                success=True,
            )
        finally:
            job.artifacts.discard_all()

    def sweep(self, command: SweepCommand) -> list[str]:
        settings = self._settings_factory()
        if command.max_age_seconds is not None:
            settings.storage.retention_seconds = command.max_age_seconds
        sweeper = build_sweeper(settings)
        lines = []
        for result in sweeper.sweep_once():
            lines.append(
                f"Swept {result.directory}: scanned={result.scanned} "
                f"deleted={len(result.deleted)} errors={result.errors}",
            )
        return lines

    def health(self) -> CommandResult:
        settings = self._settings_factory()
        status = worker_status(settings)
        return CommandResult(
            lines=[
                f"Worker executable: {status.executable}",
                f"Exists: {'yes' if status.exists else 'no'}",
                f"Launcher: {settings.worker.launcher}",
            ],
            success=status.exists,
        )


def _default_output_path(input_path: Path, suffix: str) -> Path:
    return Path.cwd() / f"{input_path.stem}_corrected{suffix}"
