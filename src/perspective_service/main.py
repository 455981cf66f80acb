"""CLI entrypoint for perspective-service."""

from pathlib import Path

import rich_click as click
import uvicorn
from dotenv import load_dotenv

from perspective_service import __version__
from perspective_service.api import create_app
from perspective_service.config import Settings
from perspective_service.controllers import CorrectCommand, ServiceCliController, SweepCommand
from perspective_service.logging_setup import init_logging
from perspective_service.supervisor.models import SUPPORTED_MODES

click.rich_click.USE_MARKDOWN = True
CONTROLLER = ServiceCliController()


@click.group()
@click.version_option(version=__version__, prog_name="perspective-service")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    show_default=True,
    help="Logging level.",
)
def perspective_service(log_level: str) -> None:
    """Supervised perspective-correction service."""

    load_dotenv()
    init_logging(log_level)


@perspective_service.command("serve")
@click.option("--host", default=None, help="Bind address (default from PERSPECTIVE_HOST).")
@click.option(
    "--port",
    type=click.IntRange(min=1, max=65535),
    default=None,
    help="Port (default from PERSPECTIVE_PORT or PORT).",
)
def serve(host: str | None, port: int | None) -> None:
    """Run the HTTP API."""

    settings = Settings.from_env()
    uvicorn.run(
        create_app(settings),
        host=host or settings.server.host,
        port=port or settings.server.port,
        log_config=None,
    )


@perspective_service.command("correct")
@click.argument(
    "input_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "--mode",
    type=click.Choice(SUPPORTED_MODES, case_sensitive=False),
    default=None,
    help="Correction mode (default from PERSPECTIVE_DEFAULT_MODE).",
)
@click.option(
    "--output",
    "output_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Where to write the corrected image.",
)
def correct(input_path: Path, mode: str | None, output_path: Path | None) -> None:
    """Run one supervised correction job locally."""

    result = CONTROLLER.correct(
        CorrectCommand(
            input_path=input_path,
            mode=mode.upper() if mode else None,
            output_path=output_path,
        ),
    )
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Correction failed.")


@perspective_service.command("sweep")
@click.option(
    "--max-age-seconds",
    type=click.FloatRange(min=0),
    default=None,
    help="Delete files older than this (default from PERSPECTIVE_RETENTION_SECONDS).",
)
def sweep(max_age_seconds: float | None) -> None:
    """Delete stale upload and output files once."""

    _emit_lines(CONTROLLER.sweep(SweepCommand(max_age_seconds=max_age_seconds)))


@perspective_service.command("health")
def health() -> None:
    """Check that the worker executable is present."""

    result = CONTROLLER.health()
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Worker executable not found.")


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    perspective_service()
