"""Thin handle over one external worker process."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
import time
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import IO

from perspective_service.supervisor.models import WorkerDiagnostics

logger = logging.getLogger(__name__)

_POSIX = os.name == "posix"
_READER_JOIN_SECONDS = 2.0
_GROUP_POLL_SECONDS = 0.05


class SpawnError(RuntimeError):
    """The worker command could not be started at all."""

    def __init__(self, message: str, *, command: str) -> None:
        super().__init__(message)
        self.command = command


class WorkerHandle:
    """Running worker with incrementally captured stdout / stderr.

    Process exit is reported through ``on_exit`` callbacks only. Exit is
    advisory: the worker may exit before its output is flushed, or never exit
    after finishing.
    """

    def __init__(self, process: subprocess.Popen[str], *, command: str) -> None:
        self._process = process
        self.command = command
        self.killed = False
        self.exit_code: int | None = None
        self._stdout: list[str] = []
        self._stderr: list[str] = []
        self._buffer_lock = threading.Lock()
        self._exit_callbacks: list[Callable[[int], None]] = []
        self._exited = threading.Event()
        self._readers = [
            self._spawn_reader(process.stdout, self._stdout, "stdout"),
            self._spawn_reader(process.stderr, self._stderr, "stderr"),
        ]
        self._watcher = threading.Thread(
            target=self._watch_exit,
            daemon=True,
            name=f"worker-exit-{process.pid}",
        )
        self._watcher.start()

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def stdout(self) -> str:
        with self._buffer_lock:
            return "".join(self._stdout)

    @property
    def stderr(self) -> str:
        with self._buffer_lock:
            return "".join(self._stderr)

    @property
    def running(self) -> bool:
        return not self._exited.is_set()

    def on_exit(self, callback: Callable[[int], None]) -> None:
        """Register a one-shot callback for a self-initiated exit."""

        fire_now = False
        with self._buffer_lock:
            if self._exited.is_set():
                fire_now = not self.killed and self.exit_code is not None
            else:
                self._exit_callbacks.append(callback)
        if fire_now and self.exit_code is not None:
            callback(self.exit_code)

    def wait(self, timeout: float | None = None) -> int | None:
        """Wait for exit and return the exit code, or None on timeout."""

        if not self._exited.wait(timeout):
            return None
        return self.exit_code

    def terminate(self, grace_seconds: float) -> None:
        """SIGTERM, then SIGKILL whatever is still alive after ``grace_seconds``.

        On POSIX the whole process group is signalled, so descendants that
        outlive the direct child (a launcher shim that exits early) are
        stopped too.
        """

        if not self._send(signal.SIGTERM):
            return
        deadline = time.monotonic() + max(0.0, grace_seconds)
        self.wait(max(0.0, grace_seconds))
        while self._group_alive() and time.monotonic() < deadline:
            time.sleep(_GROUP_POLL_SECONDS)
        if self._group_alive():
            logger.info("Worker ignored SIGTERM, killing: pid=%s", self.pid)
            self.kill()

    def kill(self) -> None:
        """Forcefully kill the worker (and its process group on POSIX)."""

        if not self._send(getattr(signal, "SIGKILL", signal.SIGTERM)):
            return
        if self.wait(_READER_JOIN_SECONDS) is None:
            logger.warning("Worker still running after kill: pid=%s", self.pid)

    def diagnostics(self) -> WorkerDiagnostics:
        """Snapshot captured output, draining the pipes if the worker exited."""

        if not self.running:
            for reader in self._readers:
                reader.join(timeout=_READER_JOIN_SECONDS)
        return WorkerDiagnostics(
            stdout=self.stdout,
            stderr=self.stderr,
            exit_code=self.exit_code,
            killed=self.killed,
        )

    def _send(self, signum: int) -> bool:
        """Signal the worker; True when the signal reached at least one process."""

        if not _POSIX and not self.running:
            return False
        # Set before signalling so the exit watcher never reports our own kill.
        previously_killed = self.killed
        self.killed = True
        try:
            if _POSIX:
                os.killpg(self._process.pid, signum)
            elif signum == signal.SIGTERM:
                self._process.terminate()
            else:
                self._process.kill()
        except (ProcessLookupError, PermissionError):
            self.killed = previously_killed
            return False
        except OSError as error:
            self.killed = previously_killed
            logger.warning("Failed to signal worker: pid=%s error=%s", self.pid, error)
            return False
        return True

    def _group_alive(self) -> bool:
        if not _POSIX:
            return self.running
        try:
            os.killpg(self._process.pid, 0)
        except (ProcessLookupError, PermissionError):
            return False
        return True

    def _spawn_reader(
        self,
        stream: IO[str] | None,
        sink: list[str],
        name: str,
    ) -> threading.Thread:
        def _drain() -> None:
            if stream is None:
                return
            try:
                for chunk in iter(stream.readline, ""):
                    with self._buffer_lock:
                        sink.append(chunk)
            except (OSError, ValueError):
                return
            finally:
                stream.close()

        thread = threading.Thread(
            target=_drain,
            daemon=True,
            name=f"worker-{name}-{self._process.pid}",
        )
        thread.start()
        return thread

    def _watch_exit(self) -> None:
        returncode = self._process.wait()
        with self._buffer_lock:
            self.exit_code = returncode
            callbacks = [] if self.killed else list(self._exit_callbacks)
            self._exit_callbacks.clear()
            self._exited.set()
        for callback in callbacks:
            try:
                callback(returncode)
            except Exception:
                logger.exception("Worker exit callback failed: pid=%s", self.pid)


def start_worker(
    argv: Sequence[str],
    *,
    cwd: Path,
    env_overlay: Mapping[str, str] | None = None,
) -> WorkerHandle:
    """Launch ``argv`` in ``cwd`` with ``env_overlay`` merged over the environment."""

    if not argv:
        raise SpawnError("Worker command is empty.", command="")

    env = os.environ.copy()
    env.update(env_overlay or {})
    command = argv[0]
    try:
        process = subprocess.Popen(  # noqa: S603
            list(argv),
            cwd=cwd,
            env=env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            start_new_session=_POSIX,
        )
    except FileNotFoundError as error:
        raise SpawnError(f"Worker command not found: {command}", command=command) from error
    except PermissionError as error:
        raise SpawnError(f"Worker command not executable: {command}", command=command) from error
    except OSError as error:
        raise SpawnError(f"Worker failed to start: {error}", command=command) from error

    logger.info("Worker started: pid=%s command=%s", process.pid, " ".join(argv))
    return WorkerHandle(process, command=command)
