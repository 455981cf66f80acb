"""Supervision of the external perspective-correction worker.

The worker is an opaque executable with no completion signal: it may exit
before its output is flushed, or keep running after it is done. Completion is
therefore inferred from the output file alone (size stability), bounded by an
attempt budget, and every transient file is tracked per job so it can be
removed on any exit path.
"""

from perspective_service.supervisor.artifacts import ArtifactRegistry
from perspective_service.supervisor.models import (
    FailureKind,
    Job,
    JobFailure,
    JobResult,
    JobState,
    JobSuccess,
)
from perspective_service.supervisor.process import SpawnError
from perspective_service.supervisor.supervisor import JobSupervisor

__all__ = [
    "ArtifactRegistry",
    "FailureKind",
    "Job",
    "JobFailure",
    "JobResult",
    "JobState",
    "JobSuccess",
    "JobSupervisor",
    "SpawnError",
]
