"""Command-vector strategies for invoking the worker executable."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

SUPPORTED_LAUNCHERS: tuple[str, ...] = ("auto", "direct", "wine")


class Launcher(Protocol):
    """Builds the argv and environment overlay for one worker invocation."""

    def build_argv(self, *, input_path: Path, output_filename: str, mode: str) -> list[str]:
        """Return the full argument vector."""

    def env_overlay(self) -> dict[str, str]:
        """Return environment variables layered over the service environment."""


@dataclass(slots=True)
class DirectLauncher:
    """Run the worker binary directly, optionally with leading arguments."""

    executable: Path
    args_prefix: tuple[str, ...] = ()
    extra_env: dict[str, str] = field(default_factory=dict)

    def build_argv(self, *, input_path: Path, output_filename: str, mode: str) -> list[str]:
        return [str(self.executable), *self.args_prefix, str(input_path), output_filename, mode]

    def env_overlay(self) -> dict[str, str]:
        return dict(self.extra_env)


@dataclass(slots=True)
class WineLauncher:
    """Run a Windows worker binary through the Wine compatibility layer."""

    executable: Path
    wine_command: str = "wine"
    extra_env: dict[str, str] = field(default_factory=dict)

    def build_argv(self, *, input_path: Path, output_filename: str, mode: str) -> list[str]:
        return [self.wine_command, str(self.executable), str(input_path), output_filename, mode]

    def env_overlay(self) -> dict[str, str]:
        return {"WINEDEBUG": "-all", **self.extra_env}


def resolve_launcher_name(name: str, *, platform: str | None = None) -> str:
    """Resolve ``auto`` to ``wine`` on Linux and ``direct`` elsewhere."""

    normalized = name.strip().lower()
    if normalized not in SUPPORTED_LAUNCHERS:
        raise ValueError(
            f"Unsupported launcher: {name!r}. Expected one of: {', '.join(SUPPORTED_LAUNCHERS)}.",
        )
    if normalized != "auto":
        return normalized
    current = platform or sys.platform
    return "wine" if current.startswith("linux") else "direct"


def build_launcher(
    *,
    name: str,
    executable: Path,
    wine_command: str = "wine",
    args_prefix: tuple[str, ...] = (),
    platform: str | None = None,
) -> Launcher:
    """Pick the launcher strategy once, at startup."""

    resolved = resolve_launcher_name(name, platform=platform)
    if resolved == "wine":
        return WineLauncher(executable=executable, wine_command=wine_command)
    return DirectLauncher(executable=executable, args_prefix=args_prefix)
