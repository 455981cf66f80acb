from __future__ import annotations

import os
import stat
import sys
from pathlib import Path

import allure
import pytest
from PIL import Image

from perspective_service.supervisor.converter import (
    ConversionError,
    ImageMagickConverter,
    PillowConverter,
    build_converter,
    converted_path_for,
)

pytestmark = [
    allure.epic("Job Supervision"),
    allure.feature("Format Conversion"),
]


def _bitmap(path: Path) -> Path:
    Image.new("RGB", (32, 32), color=(10, 20, 30)).save(path, format="BMP")
    return path


def _write_fake_convert(path: Path, *, exit_code: int, write_output: bool) -> Path:
    script = (
        "import sys\n"
        "from pathlib import Path\n"
        f"if {write_output!r}:\n"
        "    Path(sys.argv[-1]).write_bytes(b'jpeg')\n"
        "print('convert: simulated', file=sys.stderr)\n"
        f"sys.exit({exit_code})\n"
    )
    implementation = path.parent / f"{path.name}_impl.py"
    implementation.write_text(script, "utf-8")
    if os.name == "nt":
        launcher = path.parent / f"{path.name}.cmd"
        launcher.write_text(f'@echo off\r\n"{sys.executable}" "{implementation}" %*\r\n', "utf-8")
        return launcher
    path.write_text(f'#!/usr/bin/env sh\nexec "{sys.executable}" "{implementation}" "$@"\n', "utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return path


def test_converted_path_is_jpeg_sibling() -> None:
    assert converted_path_for(Path("/out/job.bmp")) == Path("/out/job.jpg")


def test_pillow_converter_writes_jpeg(tmp_path: Path) -> None:
    source = _bitmap(tmp_path / "job.bmp")
    target = PillowConverter().convert(source, converted_path_for(source), quality=90)

    with Image.open(target) as image:
        assert image.format == "JPEG"


def test_pillow_converter_rejects_corrupt_bitmap(tmp_path: Path) -> None:
    source = tmp_path / "job.bmp"
    source.write_bytes(b"not a bitmap")

    with pytest.raises(ConversionError, match="Pillow conversion failed"):
        PillowConverter().convert(source, tmp_path / "job.jpg", quality=90)


def test_imagemagick_converter_reports_missing_tool(tmp_path: Path) -> None:
    converter = ImageMagickConverter(command=str(tmp_path / "convert"))

    with pytest.raises(ConversionError, match="Converter not found"):
        converter.convert(_bitmap(tmp_path / "job.bmp"), tmp_path / "job.jpg", quality=90)


def test_imagemagick_converter_reports_non_zero_exit(tmp_path: Path) -> None:
    command = _write_fake_convert(tmp_path / "convert", exit_code=1, write_output=True)
    converter = ImageMagickConverter(command=str(command))

    with pytest.raises(ConversionError, match="exited with code 1: convert: simulated"):
        converter.convert(_bitmap(tmp_path / "job.bmp"), tmp_path / "job.jpg", quality=90)


def test_imagemagick_converter_requires_output_file(tmp_path: Path) -> None:
    command = _write_fake_convert(tmp_path / "convert", exit_code=0, write_output=False)
    converter = ImageMagickConverter(command=str(command))

    with pytest.raises(ConversionError, match="produced no output"):
        converter.convert(_bitmap(tmp_path / "job.bmp"), tmp_path / "job.jpg", quality=90)


def test_imagemagick_converter_passes_quality(tmp_path: Path) -> None:
    command = _write_fake_convert(tmp_path / "convert", exit_code=0, write_output=True)
    converter = ImageMagickConverter(command=str(command))

    target = converter.convert(_bitmap(tmp_path / "job.bmp"), tmp_path / "job.jpg", quality=75)

    assert target.read_bytes() == b"jpeg"


def test_build_converter_rejects_unknown_backend() -> None:
    with pytest.raises(ValueError, match="Unsupported converter"):
        build_converter(name="ffmpeg")
