"""End-to-end supervision of one correction job."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import NamedTuple
from uuid import uuid4

from perspective_service.supervisor.artifacts import ArtifactRegistry
from perspective_service.supervisor.converter import (
    CONVERTED_MEDIA_TYPE,
    ConversionError,
    FormatConverter,
    converted_path_for,
)
from perspective_service.supervisor.launcher import Launcher
from perspective_service.supervisor.models import (
    SUPPORTED_MODES,
    FailureKind,
    Job,
    JobFailure,
    JobResult,
    JobState,
    JobSuccess,
    PollOutcome,
    WorkerDiagnostics,
)
from perspective_service.supervisor.poller import (
    DEFAULT_INTERVAL_SECONDS,
    DEFAULT_MAX_ATTEMPTS,
    CompletionPoller,
    probe_size,
)
from perspective_service.supervisor.process import SpawnError, WorkerHandle, start_worker

logger = logging.getLogger(__name__)

BITMAP_MEDIA_TYPE = "image/bmp"


class _WorkerRun(NamedTuple):
    failure: JobFailure | None
    attempts: int


class JobSupervisor:
    """Runs the worker, waits for stable output, converts it and cleans up.

    Worker exit is observed but never trusted as completion: only the poller
    decides. ``serialize_worker`` allows one worker at a time across jobs while
    submissions stay concurrent.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        launcher: Launcher,
        converter: FormatConverter,
        output_dir: Path,
        poll_interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        max_poll_attempts: int = DEFAULT_MAX_ATTEMPTS,
        terminate_grace_seconds: float = 2.0,
        conversion_quality: int = 90,
        serialize_worker: bool = False,
        probe: Callable[[Path], int | None] = probe_size,
    ) -> None:
        self.launcher = launcher
        self.converter = converter
        self.output_dir = output_dir
        self.poll_interval_seconds = poll_interval_seconds
        self.max_poll_attempts = max_poll_attempts
        self.terminate_grace_seconds = terminate_grace_seconds
        self.conversion_quality = conversion_quality
        self.serialize_worker = serialize_worker
        self._probe = probe
        self._worker_lock = threading.Lock()
        self._active_lock = threading.Lock()
        self._active_pollers: set[CompletionPoller] = set()
        self._active_jobs: dict[str, Job] = {}

    @property
    def deadline_seconds(self) -> float:
        return self.poll_interval_seconds * self.max_poll_attempts

    def submit(self, input_path: Path, mode: str) -> Job:
        """Create a job that owns ``input_path`` from now on."""

        if mode not in SUPPORTED_MODES:
            raise ValueError(
                f"Unsupported mode: {mode!r}. Expected one of: {', '.join(SUPPORTED_MODES)}.",
            )
        # The worker runs inside the output directory, so relative paths would break.
        input_path = input_path.absolute()
        output_dir = self.output_dir.absolute()
        job_id = uuid4().hex
        artifacts = ArtifactRegistry(job_id)
        artifacts.register(input_path)
        output_dir.mkdir(parents=True, exist_ok=True)
        job = Job(
            job_id=job_id,
            input_path=input_path,
            mode=mode,
            output_dir=output_dir,
            artifacts=artifacts,
        )
        with self._active_lock:
            self._active_jobs[job_id] = job
        logger.info("Job submitted: job_id=%s input=%s mode=%s", job_id, input_path, mode)
        return job

    def run(self, job: Job) -> JobResult:
        """Supervise ``job`` to exactly one terminal result.

        Every artifact except the returned one is deleted before this returns;
        the caller discards the returned artifact after transmitting it.
        """

        started = time.monotonic()
        try:
            with self._worker_slot(job):
                worker_run = self._run_worker(job, started)
            if worker_run.failure is not None:
                return worker_run.failure
            return self._complete(job, started, worker_run.attempts)
        finally:
            with self._active_lock:
                self._active_jobs.pop(job.job_id, None)
            removed = job.artifacts.release()
            logger.info(
                "Job finished: job_id=%s state=%s removed_artifacts=%d",
                job.job_id,
                job.state.value,
                len(removed),
            )

    def in_use(self, path: Path) -> bool:
        """Whether ``path`` belongs to a job that has not finished running yet.

        Queued jobs waiting for the worker slot count too, however long they wait.
        """

        target = path.absolute()
        with self._active_lock:
            jobs = list(self._active_jobs.values())
        return any(target in job.artifacts.paths for job in jobs)

    def shutdown(self) -> None:
        """Stop polling for every in-flight job."""

        with self._active_lock:
            pollers = list(self._active_pollers)
        for poller in pollers:
            poller.cancel()

    @contextmanager
    def _worker_slot(self, job: Job) -> Iterator[None]:
        if not self.serialize_worker:
            yield
            return
        logger.debug("Waiting for worker slot: job_id=%s", job.job_id)
        with self._worker_lock:
            yield

    def _run_worker(self, job: Job, started: float) -> _WorkerRun:
        job.transition(JobState.RUNNING)
        argv = self.launcher.build_argv(
            input_path=job.input_path,
            output_filename=job.output_filename,
            mode=job.mode,
        )
        job.artifacts.register(job.expected_output_path)
        try:
            handle = start_worker(
                argv,
                cwd=job.output_dir,
                env_overlay=self.launcher.env_overlay(),
            )
        except SpawnError as error:
            logger.error("Worker spawn failed: job_id=%s error=%s", job.job_id, error)
            job.transition(JobState.FAILED)
            return _WorkerRun(
                failure=JobFailure(
                    job_id=job.job_id,
                    kind=FailureKind.SPAWN_ERROR,
                    message=f"Failed to start worker: {error}",
                    diagnostics=WorkerDiagnostics(),
                    elapsed_seconds=time.monotonic() - started,
                ),
                attempts=0,
            )

        handle.on_exit(
            lambda code: logger.info(
                "Worker exited before output was confirmed: job_id=%s exit_code=%s",
                job.job_id,
                code,
            ),
        )
        poller = CompletionPoller(
            job.expected_output_path,
            interval_seconds=self.poll_interval_seconds,
            max_attempts=self.max_poll_attempts,
            probe=self._probe,
        )
        job.transition(JobState.POLLING)
        outcome = self._poll(poller, handle)
        attempts = poller.state.attempts

        if outcome is PollOutcome.COMPLETE:
            job.transition(JobState.COMPLETING)
            handle.terminate(self.terminate_grace_seconds)
            return _WorkerRun(failure=None, attempts=attempts)

        handle.kill()
        diagnostics = handle.diagnostics()
        elapsed = time.monotonic() - started
        if outcome is PollOutcome.TIMEOUT:
            job.transition(JobState.TIMED_OUT)
            kind = FailureKind.TIMEOUT
            message = f"Worker timeout: no stable output after {attempts} attempts ({elapsed:.1f}s)."
        else:
            job.transition(JobState.FAILED)
            kind = FailureKind.CANCELLED
            message = f"Job cancelled after {attempts} attempts ({elapsed:.1f}s)."
        if diagnostics.stderr.strip():
            message = f"{message} STDERR: {diagnostics.stderr.strip()}"
        logger.warning(
            "Job failed: job_id=%s kind=%s attempts=%d exit_code=%s",
            job.job_id,
            kind.value,
            attempts,
            diagnostics.exit_code,
        )
        return _WorkerRun(
            failure=JobFailure(
                job_id=job.job_id,
                kind=kind,
                message=message,
                diagnostics=diagnostics,
                elapsed_seconds=elapsed,
                poll_attempts=attempts,
            ),
            attempts=attempts,
        )

    def _poll(self, poller: CompletionPoller, handle: WorkerHandle) -> PollOutcome:
        with self._active_lock:
            self._active_pollers.add(poller)
        try:
            return poller.run()
        except BaseException:
            handle.kill()
            raise
        finally:
            with self._active_lock:
                self._active_pollers.discard(poller)

    def _complete(self, job: Job, started: float, attempts: int) -> JobSuccess:
        bitmap = job.expected_output_path
        target = job.artifacts.register(converted_path_for(bitmap))
        try:
            self.converter.convert(bitmap, target, quality=self.conversion_quality)
        except ConversionError as error:
            logger.warning(
                "Conversion failed, returning bitmap: job_id=%s error=%s",
                job.job_id,
                error,
            )
            deliverable, media_type, converted = bitmap, BITMAP_MEDIA_TYPE, False
        else:
            job.artifacts.discard(bitmap)
            deliverable, media_type, converted = target, CONVERTED_MEDIA_TYPE, True

        job.artifacts.retain(deliverable)
        job.transition(JobState.SUCCEEDED)
        elapsed = time.monotonic() - started
        logger.info(
            "Job succeeded: job_id=%s output=%s converted=%s elapsed=%.1fs",
            job.job_id,
            deliverable,
            converted,
            elapsed,
        )
        return JobSuccess(
            job_id=job.job_id,
            artifact_path=deliverable,
            media_type=media_type,
            converted=converted,
            elapsed_seconds=elapsed,
            poll_attempts=attempts,
        )
