"""Local stand-in for the correction worker, used by integration tests and demos.

Accepts the worker's argument contract ``<input> <output-filename> <mode>`` and
writes ``<output-stem>.bmp`` into the current directory. Behaviour is selected
with ``PERSPECTIVE_FAKE_WORKER_BEHAVIOR``:

- ``linger`` (default): write the bitmap, then keep running like a GUI loop.
- ``exit``: write the bitmap and exit 0.
- ``hang``: never write anything.
- ``fail``: print to stderr and exit 1 without output.

``PERSPECTIVE_FAKE_WORKER_DELAY`` delays the bitmap by that many seconds.
``PERSPECTIVE_FAKE_WORKER_TRACE`` names a file that gets one
``<pid> start|end <epoch>`` line when the worker starts and when it returns.
"""

from __future__ import annotations

import argparse
import os
import sys
import time
from pathlib import Path

from PIL import Image

_LINGER_SECONDS = 3600


def _trace(event: str) -> None:
    trace_path = os.getenv("PERSPECTIVE_FAKE_WORKER_TRACE")
    if not trace_path:
        return
    with open(trace_path, "a", encoding="utf-8") as handle:
        handle.write(f"{os.getpid()} {event} {time.time():.6f}\n")


def main(argv: list[str] | None = None) -> int:
    """Run the fake correction."""

    parser = argparse.ArgumentParser()
    parser.add_argument("input_path")
    parser.add_argument("output_filename")
    parser.add_argument("mode")
    args = parser.parse_args(argv)

    behavior = os.getenv("PERSPECTIVE_FAKE_WORKER_BEHAVIOR", "linger")
    delay = float(os.getenv("PERSPECTIVE_FAKE_WORKER_DELAY", "0"))
    _trace("start")
    print(f"fake worker: mode={args.mode} behavior={behavior}", flush=True)

    if behavior == "fail":
        print(f"cannot open {args.input_path}", file=sys.stderr, flush=True)
        _trace("end")
        return 1
    if behavior == "hang":
        print("fake worker stalled", file=sys.stderr, flush=True)
        time.sleep(_LINGER_SECONDS)
        return 0

    time.sleep(delay)
    target = Path.cwd() / Path(args.output_filename).with_suffix(".bmp").name
    with Image.open(args.input_path) as image:
        image.convert("RGB").save(target, format="BMP")

    if behavior == "exit":
        _trace("end")
        return 0
    time.sleep(_LINGER_SECONDS)
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
