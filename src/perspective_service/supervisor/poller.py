"""Size-stability polling for the worker's output file."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from pathlib import Path

from perspective_service.supervisor.models import PollOutcome, PollState

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 3.0
DEFAULT_MAX_ATTEMPTS = 100


def probe_size(path: Path) -> int | None:
    """Return the file size, or None when the file does not exist yet."""

    try:
        return path.stat().st_size
    except FileNotFoundError:
        return None


class CompletionPoller:
    """Decide when an externally written file is complete.

    The file counts as complete once two consecutive ticks observe the same
    non-zero size. Each tick consumes one attempt, probe errors included; the
    poller gives up with ``TIMEOUT`` when the attempt budget runs out.
    """

    def __init__(
        self,
        path: Path,
        *,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        probe: Callable[[Path], int | None] = probe_size,
    ) -> None:
        if interval_seconds < 0:
            raise ValueError("interval_seconds must be >= 0.")
        if max_attempts <= 0:
            raise ValueError("max_attempts must be > 0.")
        self.path = path
        self.interval_seconds = interval_seconds
        self.state = PollState(max_attempts=max_attempts)
        self._probe = probe
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    def run(self) -> PollOutcome:
        """Block until the file is stable, the budget is spent or polling is cancelled."""

        while True:
            if self._cancelled.wait(self.interval_seconds):
                return PollOutcome.CANCELLED
            outcome = self.tick()
            if outcome is not None:
                return outcome

    def tick(self) -> PollOutcome | None:
        """Run one poll attempt; return a terminal outcome or None to keep going."""

        state = self.state
        state.attempts += 1
        try:
            size = self._probe(self.path)
        except OSError as error:
            logger.debug(
                "Polling error (attempt %d) for %s: %s",
                state.attempts,
                self.path,
                error,
            )
            size = None

        if size is None:
            state.last_observed_size = None
        elif size > 0 and size == state.last_observed_size:
            logger.info(
                "Output stable: path=%s size=%d attempt=%d",
                self.path,
                size,
                state.attempts,
            )
            return PollOutcome.COMPLETE
        else:
            state.last_observed_size = size

        if state.exhausted:
            logger.info(
                "Polling budget exhausted: path=%s attempts=%d last_size=%s",
                self.path,
                state.attempts,
                state.last_observed_size,
            )
            return PollOutcome.TIMEOUT
        return None
