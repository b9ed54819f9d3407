from __future__ import annotations

import os
import secrets
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Union

import cv2
import numpy as np


PathLike = Union[str, "os.PathLike[str]"]


def iso_now_ms() -> str:
    """UTC ISO-8601 timestamp with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def temp_file_name(prefix: str, suffix: str) -> str:
    return f"{prefix}{secrets.randbits(31):x}{suffix}"


def _publish(path: PathLike, suffix: str, write: Callable[[Path], None]) -> Path:
    """
    Write to a uniquely named temp file beside `path`, then swap it into place.

    os.replace is atomic on POSIX, so a reader sees either the old artifact or
    the new one. If anything fails before the swap the temp file is removed,
    the previous artifact is left untouched and the error propagates.
    """
    final = Path(path)
    final.parent.mkdir(parents=True, exist_ok=True)
    tmp = final.parent / temp_file_name("tmp_", suffix)
    try:
        write(tmp)
        os.replace(tmp, final)
    except BaseException:
        try:
            tmp.unlink()
        except FileNotFoundError:
            pass
        raise
    return final


def publish_bytes(path: PathLike, data: bytes) -> Path:
    def _write(tmp: Path) -> None:
        with open(tmp, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
    return _publish(path, Path(path).suffix or ".tmp", _write)


def publish_png(path: PathLike, rgba: np.ndarray) -> Path:
    """Encode an RGBA (H,W,4) uint8 array as PNG and publish it atomically."""
    if rgba.ndim != 3 or rgba.shape[2] != 4 or rgba.dtype != np.uint8:
        raise ValueError("expected an (H,W,4) uint8 RGBA array")

    def _write(tmp: Path) -> None:
        # OpenCV expects BGRA channel order
        if not cv2.imwrite(str(tmp), cv2.cvtColor(rgba, cv2.COLOR_RGBA2BGRA)):
            raise OSError(f"failed to encode PNG to {tmp}")
    return _publish(path, ".png", _write)


def timer_ms(func):
    """
    Decorator that returns (result, elapsed_ms) for timing a generation step.
    """
    def wrapper(*args, **kwargs):
        t0 = time.perf_counter()
        out = func(*args, **kwargs)
        dt_ms = (time.perf_counter() - t0) * 1e3
        return out, dt_ms
    return wrapper
