"""Bitmap-to-JPEG converters used on the job completion path."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from PIL import Image

logger = logging.getLogger(__name__)

SUPPORTED_CONVERTERS: tuple[str, ...] = ("imagemagick", "pillow")
CONVERTED_SUFFIX = ".jpg"
CONVERTED_MEDIA_TYPE = "image/jpeg"


class ConversionError(RuntimeError):
    """Conversion failed; callers fall back to the unconverted file."""


def converted_path_for(source: Path) -> Path:
    """Sibling path that a conversion of ``source`` writes to."""

    return source.with_suffix(CONVERTED_SUFFIX)


class FormatConverter(Protocol):
    """Converts one bitmap into a compressed sibling image."""

    def convert(self, source: Path, target: Path, *, quality: int) -> Path:
        """Write ``target`` from ``source`` or raise ``ConversionError``."""


@dataclass(slots=True)
class ImageMagickConverter:
    """Shell out to ImageMagick's ``convert``."""

    command: str = "convert"
    timeout_seconds: float = 60.0

    def convert(self, source: Path, target: Path, *, quality: int) -> Path:
        args = [self.command, str(source), "-quality", str(quality), str(target)]
        try:
            completed = subprocess.run(  # noqa: S603
                args,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.timeout_seconds,
                check=False,
            )
        except FileNotFoundError as error:
            raise ConversionError(f"Converter not found: {self.command}") from error
        except subprocess.TimeoutExpired as error:
            raise ConversionError(
                f"Converter timed out after {self.timeout_seconds:.0f}s",
            ) from error
        except OSError as error:
            raise ConversionError(f"Converter failed to start: {error}") from error

        if completed.returncode != 0:
            raise ConversionError(
                f"Converter exited with code {completed.returncode}: {completed.stderr.strip()}",
            )
        if not target.exists():
            raise ConversionError(f"Converter produced no output at {target}")
        return target


@dataclass(slots=True)
class PillowConverter:
    """Convert in-process with Pillow."""

    def convert(self, source: Path, target: Path, *, quality: int) -> Path:
        try:
            with Image.open(source) as image:
                image.convert("RGB").save(target, format="JPEG", quality=quality)
        except (OSError, ValueError, Image.DecompressionBombError) as error:
            raise ConversionError(f"Pillow conversion failed: {error}") from error
        return target


def build_converter(
    *,
    name: str,
    command: str = "convert",
    timeout_seconds: float = 60.0,
) -> FormatConverter:
    normalized = name.strip().lower()
    if normalized == "imagemagick":
        return ImageMagickConverter(command=command, timeout_seconds=timeout_seconds)
    if normalized == "pillow":
        return PillowConverter()
    raise ValueError(
        f"Unsupported converter: {name!r}. Expected one of: {', '.join(SUPPORTED_CONVERTERS)}.",
    )
