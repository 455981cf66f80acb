"""Periodic removal of orphaned files left behind by crashed jobs."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SweepResult:
    """Counters for one sweep pass over one directory."""

    directory: Path
    scanned: int = 0
    deleted: list[Path] = field(default_factory=list)
    errors: int = 0


def sweep_stale_files(
    directory: Path,
    *,
    max_age_seconds: float,
    now: float | None = None,
    in_use: Callable[[Path], bool] | None = None,
) -> SweepResult:
    """Delete regular files in ``directory`` whose mtime is older than ``max_age_seconds``.

    Files for which ``in_use`` returns True are kept regardless of age.
    """

    result = SweepResult(directory=directory)
    current = time.time() if now is None else now
    try:
        entries = list(directory.iterdir())
    except FileNotFoundError:
        return result
    except OSError as error:
        logger.error("Cleanup error: directory=%s error=%s", directory, error)
        result.errors += 1
        return result

    for path in entries:
        result.scanned += 1
        try:
            if not path.is_file():
                continue
            if current - path.stat().st_mtime <= max_age_seconds:
                continue
            if in_use is not None and in_use(path):
                logger.info("Keeping stale file of an active job: path=%s", path)
                continue
            path.unlink(missing_ok=True)
        except OSError as error:
            logger.error("Cleanup error: path=%s error=%s", path, error)
            result.errors += 1
            continue
        result.deleted.append(path)

    if result.deleted:
        logger.info("Swept stale files: directory=%s deleted=%d", directory, len(result.deleted))
    return result


class StaleFileSweeper:
    """Background thread sweeping directories on a fixed interval."""

    def __init__(
        self,
        *,
        directories: Sequence[Path],
        max_age_seconds: float,
        interval_seconds: float,
        in_use: Callable[[Path], bool] | None = None,
    ) -> None:
        self.directories = tuple(directories)
        self.in_use = in_use
        self.max_age_seconds = max_age_seconds
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def sweep_once(self) -> list[SweepResult]:
        return [
            sweep_stale_files(
                directory,
                max_age_seconds=self.max_age_seconds,
                in_use=self.in_use,
            )
            for directory in self.directories
        ]

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name="stale-file-sweeper")
        self._thread.start()
        logger.info(
            "Stale file sweeper started: interval=%.0fs max_age=%.0fs",
            self.interval_seconds,
            self.max_age_seconds,
        )

    def stop(self) -> None:
        if self._thread is None:
            return
        self._stop.set()
        self._thread.join(timeout=15)
        self._thread = None
        logger.info("Stale file sweeper stopped")

    def _loop(self) -> None:
        while not self._stop.wait(timeout=self.interval_seconds):
            try:
                self.sweep_once()
            except Exception:
                logger.exception("Stale file sweep failed")
