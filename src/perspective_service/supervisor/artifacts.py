"""Per-job tracking and best-effort deletion of transient files."""

from __future__ import annotations

import logging
import threading
from pathlib import Path

logger = logging.getLogger(__name__)


class ArtifactRegistry:
    """Ordered list of files created for one job.

    ``release`` removes everything except the retained artifact (the one being
    returned to the caller); ``discard_all`` removes that one too once it has
    been transmitted. Deletion failures are logged and never raised.
    """

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        self._paths: list[Path] = []
        self._retained: Path | None = None
        self._lock = threading.Lock()

    @property
    def paths(self) -> list[Path]:
        with self._lock:
            return list(self._paths)

    @property
    def retained(self) -> Path | None:
        return self._retained

    def register(self, path: Path) -> Path:
        with self._lock:
            if path not in self._paths:
                self._paths.append(path)
        return path

    def retain(self, path: Path) -> None:
        """Mark ``path`` as the artifact handed back to the caller."""

        self.register(path)
        self._retained = path

    def release(self) -> list[Path]:
        """Delete every registered artifact except the retained one."""

        with self._lock:
            doomed = [path for path in self._paths if path != self._retained]
            self._paths = [path for path in self._paths if path == self._retained]
        return [path for path in doomed if self._unlink(path)]

    def discard_all(self) -> list[Path]:
        """Delete every registered artifact, the retained one included."""

        with self._lock:
            doomed = list(self._paths)
            self._paths = []
            self._retained = None
        return [path for path in doomed if self._unlink(path)]

    def discard(self, path: Path) -> bool:
        """Delete one artifact right away and stop tracking it."""

        with self._lock:
            self._paths = [item for item in self._paths if item != path]
            if self._retained == path:
                self._retained = None
        return self._unlink(path)

    def _unlink(self, path: Path) -> bool:
        try:
            existed = path.exists()
            path.unlink(missing_ok=True)
        except OSError as error:
            logger.warning("Cleanup failed: job_id=%s path=%s error=%s", self.job_id, path, error)
            return False
        if existed:
            logger.debug("Deleted artifact: job_id=%s path=%s", self.job_id, path)
        return existed
