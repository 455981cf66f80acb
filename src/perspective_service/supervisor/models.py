"""Domain models for supervised correction jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from perspective_service.supervisor.artifacts import ArtifactRegistry

SUPPORTED_MODES: tuple[str, ...] = ("A1", "A2", "A3")
MODE_DESCRIPTIONS: dict[str, str] = {
    "A1": "Automatic correction mode 1",
    "A2": "Automatic correction mode 2 (default)",
    "A3": "Automatic correction mode 3",
}
DEFAULT_MODE = "A2"

# The worker always writes a bitmap, whatever extension the caller asks for.
WORKER_OUTPUT_SUFFIX = ".bmp"
REQUESTED_OUTPUT_SUFFIX = ".jpg"


class JobState(str, Enum):
    """Job lifecycle states."""

    SUBMITTED = "submitted"
    RUNNING = "running"
    POLLING = "polling"
    COMPLETING = "completing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset({JobState.SUCCEEDED, JobState.FAILED, JobState.TIMED_OUT})


class FailureKind(str, Enum):
    """Fatal failure classes surfaced to the caller."""

    SPAWN_ERROR = "spawn_error"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class PollOutcome(str, Enum):
    """Terminal signal produced by the completion poller."""

    COMPLETE = "complete"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class PollState:
    """Per-job polling cursor."""

    max_attempts: int
    attempts: int = 0
    last_observed_size: int | None = None

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts


@dataclass(slots=True)
class WorkerDiagnostics:
    """Captured worker output attached to results for troubleshooting."""

    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    killed: bool = False


@dataclass(slots=True)
class Job:
    """One supervised correction request.

    All temporary filenames are namespaced by ``job_id``. The job owns its
    input file and every artifact registered in ``artifacts`` until cleanup.
    """

    job_id: str
    input_path: Path
    mode: str
    output_dir: Path
    artifacts: ArtifactRegistry
    state: JobState = JobState.SUBMITTED
    history: list[JobState] = field(default_factory=list)

    @property
    def output_filename(self) -> str:
        return f"{self.job_id}{REQUESTED_OUTPUT_SUFFIX}"

    @property
    def expected_output_path(self) -> Path:
        return self.output_dir / f"{self.job_id}{WORKER_OUTPUT_SUFFIX}"

    def transition(self, state: JobState) -> None:
        """Move to ``state``; terminal states are final."""

        if self.state.is_terminal:
            raise ValueError(
                f"Job {self.job_id} is already {self.state.value}; cannot move to {state.value}.",
            )
        self.history.append(self.state)
        self.state = state


@dataclass(slots=True)
class JobSuccess:
    """Job finished with a deliverable artifact."""

    job_id: str
    artifact_path: Path
    media_type: str
    converted: bool
    elapsed_seconds: float
    poll_attempts: int

    @property
    def ok(self) -> bool:
        return True


@dataclass(slots=True)
class JobFailure:
    """Job finished without a deliverable artifact."""

    job_id: str
    kind: FailureKind
    message: str
    diagnostics: WorkerDiagnostics
    elapsed_seconds: float
    poll_attempts: int = 0

    @property
    def ok(self) -> bool:
        return False


JobResult = JobSuccess | JobFailure
