"""Pytest configuration and fixtures."""

from __future__ import annotations

import os
import sys
import time
from pathlib import Path

import pytest

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Add src to Python path
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from pipespawn.config import reload_config  # noqa: E402
from pipespawn.runtime.endpoint import PipeEndpoint  # noqa: E402

IS_LINUX = sys.platform.startswith("linux")
PROC_FD_DIR = Path("/proc/self/fd")

requires_proc = pytest.mark.skipif(
    not PROC_FD_DIR.exists(), reason="requires /proc/self/fd"
)


@pytest.fixture(autouse=True)
def fresh_config():
    """Reload the cached config around every test."""
    reload_config()
    yield
    reload_config()


def count_open_fds() -> int:
    """Number of descriptors open in this process (including the listing one)."""
    return len(os.listdir(PROC_FD_DIR))


def read_exact(endpoint: PipeEndpoint, size: int, timeout: float = 5.0) -> bytes:
    """Read exactly size bytes from a blocking endpoint."""
    deadline = time.monotonic() + timeout
    chunks: list[bytes] = []
    remaining = size
    while remaining > 0:
        if time.monotonic() > deadline:
            raise TimeoutError(f"read_exact: {size - remaining}/{size} bytes")
        chunk = endpoint.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def read_line(endpoint: PipeEndpoint) -> bytes:
    """Read one newline-terminated line, byte by byte."""
    line = b""
    while not line.endswith(b"\n"):
        chunk = endpoint.read(1)
        if not chunk:
            break
        line += chunk
    return line


def is_fd_open(fd: int) -> bool:
    try:
        os.fstat(fd)
    except OSError:
        return False
    return True
