"""Runtime configuration for the correction service."""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path

from perspective_service.supervisor.converter import SUPPORTED_CONVERTERS
from perspective_service.supervisor.launcher import SUPPORTED_LAUNCHERS
from perspective_service.supervisor.models import DEFAULT_MODE, SUPPORTED_MODES

_DEFAULT_SHIFTN_PATH = "/app/shiftn"
_DEFAULT_EXECUTABLE_NAME = "ShiftN.exe"


@dataclass(slots=True)
class WorkerSettings:
    """External worker invocation settings."""

    executable: Path = Path(_DEFAULT_SHIFTN_PATH) / _DEFAULT_EXECUTABLE_NAME
    launcher: str = "auto"
    wine_command: str = "wine"
    args_prefix: tuple[str, ...] = ()
    default_mode: str = DEFAULT_MODE
    terminate_grace_seconds: float = 2.0
    serialize: bool = False


@dataclass(slots=True)
class PollSettings:
    """Completion polling settings; the job deadline is their product."""

    interval_seconds: float = 3.0
    max_attempts: int = 100

    @property
    def deadline_seconds(self) -> float:
        return self.interval_seconds * self.max_attempts


@dataclass(slots=True)
class ConversionSettings:
    """Bitmap-to-JPEG conversion settings."""

    backend: str = "imagemagick"
    command: str = "convert"
    quality: int = 90
    timeout_seconds: float = 60.0


@dataclass(slots=True)
class StorageSettings:
    """Transient file locations and orphan sweep policy."""

    upload_dir: Path = Path("temp") / "uploads"
    output_dir: Path = Path("temp") / "outputs"
    retention_seconds: float = 3_600.0
    sweep_interval_seconds: float = 3_600.0


@dataclass(slots=True)
class ServerSettings:
    """HTTP surface settings."""

    host: str = "0.0.0.0"  # noqa: S104
    port: int = 3000
    api_key: str | None = None
    cors_origins: tuple[str, ...] = ("*",)
    max_upload_bytes: int = 50 * 1024 * 1024
    log_level: str = "INFO"


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    worker: WorkerSettings = field(default_factory=WorkerSettings)
    poll: PollSettings = field(default_factory=PollSettings)
    conversion: ConversionSettings = field(default_factory=ConversionSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    server: ServerSettings = field(default_factory=ServerSettings)

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        shiftn_path = Path(os.getenv("SHIFTN_PATH", _DEFAULT_SHIFTN_PATH))
        settings = cls(
            worker=WorkerSettings(
                executable=Path(
                    os.getenv(
                        "PERSPECTIVE_WORKER_EXECUTABLE",
                        str(shiftn_path / _DEFAULT_EXECUTABLE_NAME),
                    ),
                ),
                launcher=os.getenv("PERSPECTIVE_WORKER_LAUNCHER", "auto").strip().lower(),
                wine_command=os.getenv("PERSPECTIVE_WINE_COMMAND", "wine"),
                args_prefix=tuple(shlex.split(os.getenv("PERSPECTIVE_WORKER_ARGS_PREFIX", ""))),
                default_mode=os.getenv("PERSPECTIVE_DEFAULT_MODE", DEFAULT_MODE).strip().upper(),
                terminate_grace_seconds=float(
                    os.getenv("PERSPECTIVE_TERMINATE_GRACE_SECONDS", "2.0"),
                ),
                serialize=_env_bool("PERSPECTIVE_SERIALIZE_WORKER", default=False),
            ),
            poll=PollSettings(
                interval_seconds=float(os.getenv("PERSPECTIVE_POLL_INTERVAL_SECONDS", "3.0")),
                max_attempts=int(os.getenv("PERSPECTIVE_POLL_MAX_ATTEMPTS", "100")),
            ),
            conversion=ConversionSettings(
                backend=os.getenv("PERSPECTIVE_CONVERTER", "imagemagick").strip().lower(),
                command=os.getenv("PERSPECTIVE_CONVERT_COMMAND", "convert"),
                quality=int(os.getenv("PERSPECTIVE_JPEG_QUALITY", "90")),
                timeout_seconds=float(os.getenv("PERSPECTIVE_CONVERT_TIMEOUT_SECONDS", "60")),
            ),
            storage=StorageSettings(
                upload_dir=Path(
                    os.getenv("PERSPECTIVE_UPLOAD_DIR", str(Path("temp") / "uploads")),
                ),
                output_dir=Path(
                    os.getenv("PERSPECTIVE_OUTPUT_DIR", str(Path("temp") / "outputs")),
                ),
                retention_seconds=float(os.getenv("PERSPECTIVE_RETENTION_SECONDS", "3600")),
                sweep_interval_seconds=float(
                    os.getenv("PERSPECTIVE_SWEEP_INTERVAL_SECONDS", "3600"),
                ),
            ),
            server=ServerSettings(
                host=os.getenv("PERSPECTIVE_HOST", "0.0.0.0"),  # noqa: S104
                port=int(os.getenv("PERSPECTIVE_PORT", os.getenv("PORT", "3000"))),
                api_key=os.getenv("PERSPECTIVE_API_KEY", os.getenv("API_KEY")) or None,
                cors_origins=_csv(os.getenv("PERSPECTIVE_CORS_ORIGINS", "*")),
                max_upload_bytes=int(
                    os.getenv("PERSPECTIVE_MAX_UPLOAD_BYTES", str(50 * 1024 * 1024)),
                ),
                log_level=os.getenv("PERSPECTIVE_LOG_LEVEL", "INFO").strip().upper(),
            ),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        """Raise configuration error for values the supervisor cannot work with."""

        if self.worker.launcher not in SUPPORTED_LAUNCHERS:
            raise ValueError(
                f"PERSPECTIVE_WORKER_LAUNCHER must be one of {', '.join(SUPPORTED_LAUNCHERS)}; "
                f"got {self.worker.launcher!r}.",
            )
        if self.worker.default_mode not in SUPPORTED_MODES:
            raise ValueError(
                f"PERSPECTIVE_DEFAULT_MODE must be one of {', '.join(SUPPORTED_MODES)}; "
                f"got {self.worker.default_mode!r}.",
            )
        if self.worker.terminate_grace_seconds < 0:
            raise ValueError("PERSPECTIVE_TERMINATE_GRACE_SECONDS must be >= 0.")
        if self.poll.interval_seconds <= 0:
            raise ValueError("PERSPECTIVE_POLL_INTERVAL_SECONDS must be > 0.")
        if self.poll.max_attempts <= 0:
            raise ValueError("PERSPECTIVE_POLL_MAX_ATTEMPTS must be > 0.")
        if self.conversion.backend not in SUPPORTED_CONVERTERS:
            raise ValueError(
                f"PERSPECTIVE_CONVERTER must be one of {', '.join(SUPPORTED_CONVERTERS)}; "
                f"got {self.conversion.backend!r}.",
            )
        if not 1 <= self.conversion.quality <= 100:
            raise ValueError("PERSPECTIVE_JPEG_QUALITY must be between 1 and 100.")
        if self.conversion.timeout_seconds <= 0:
            raise ValueError("PERSPECTIVE_CONVERT_TIMEOUT_SECONDS must be > 0.")
        if self.storage.sweep_interval_seconds <= 0:
            raise ValueError("PERSPECTIVE_SWEEP_INTERVAL_SECONDS must be > 0.")
        if self.storage.retention_seconds <= self.poll.deadline_seconds:
            raise ValueError(
                "PERSPECTIVE_RETENTION_SECONDS must exceed the job deadline "
                f"({self.poll.deadline_seconds:.0f}s) so the sweep never races active jobs.",
            )
        if self.server.max_upload_bytes <= 0:
            raise ValueError("PERSPECTIVE_MAX_UPLOAD_BYTES must be > 0.")


def _csv(raw: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
