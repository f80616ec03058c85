"""Pollable endpoints over the raw pipe descriptors of a child process.

An endpoint is a thin, zero-copy wrapper around one descriptor. It can be
switched between blocking and non-blocking mode, registered with a
``selectors`` selector, awaited through anyio, or viewed as an unbuffered
byte stream. Nothing is buffered or decoded.

Endpoints are not thread-safe: a single endpoint must not be driven from
several threads without external locking.
"""

from __future__ import annotations

import io
import logging
import os
import selectors
from typing import Any, Literal

import anyio

from ..config import get_config

__all__ = ["PipeEndpoint"]

logger = logging.getLogger(__name__)


class PipeEndpoint:
    """Parent-side end of one child stdio pipe.

    Example:
        sel = selectors.DefaultSelector()
        child.stdout.set_blocking(False)
        child.stdout.register(sel)
        for key, _ in sel.select(timeout=1.0):
            chunk = key.fileobj.read()

    Attributes:
        name: Stream name of the child ("stdin", "stdout" or "stderr")
        mode: "r" for a readable endpoint, "w" for a writable one
    """

    def __init__(self, fd: int, mode: Literal["r", "w"], name: str = "") -> None:
        if mode not in ("r", "w"):
            raise ValueError(f"invalid endpoint mode: {mode!r}")
        self._fd = fd
        self.mode = mode
        self.name = name or f"fd{fd}"

    def __repr__(self) -> str:
        state = "closed" if self.closed else f"fd={self._fd}"
        return f"PipeEndpoint({self.name}, mode={self.mode}, {state})"

    def __enter__(self) -> "PipeEndpoint":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # =========================================================================
    # Descriptor state
    # =========================================================================

    def fileno(self) -> int:
        self._check_open()
        return self._fd

    @property
    def closed(self) -> bool:
        return self._fd < 0

    @property
    def readable(self) -> bool:
        return self.mode == "r"

    @property
    def writable(self) -> bool:
        return self.mode == "w"

    @property
    def events(self) -> int:
        """Selector event mask matching the endpoint direction."""
        return selectors.EVENT_READ if self.readable else selectors.EVENT_WRITE

    def set_blocking(self, blocking: bool) -> None:
        self._check_open()
        os.set_blocking(self._fd, blocking)

    def is_blocking(self) -> bool:
        self._check_open()
        return os.get_blocking(self._fd)

    def close(self) -> None:
        """Release the descriptor. Safe to call more than once."""
        if self._fd < 0:
            return
        fd, self._fd = self._fd, -1
        try:
            os.close(fd)
        except OSError as e:
            logger.debug(f"Closing {self.name} endpoint fd={fd} failed: {e}")

    # =========================================================================
    # Byte I/O
    # =========================================================================

    def read(self, size: int | None = None) -> bytes | None:
        """Read at most size bytes.

        Returns:
            The bytes read, b"" at end of stream, or None when the endpoint is
            non-blocking and no data is available.
        """
        self._check_open()
        if not self.readable:
            raise io.UnsupportedOperation(f"{self.name} endpoint is not readable")
        if size is None:
            size = get_config().read_size
        try:
            return os.read(self._fd, size)
        except BlockingIOError:
            return None

    def write(self, data: bytes) -> int | None:
        """Write data once; a partial write is possible.

        Returns:
            Number of bytes written, or None when the endpoint is non-blocking
            and the pipe is full.
        """
        self._check_open()
        if not self.writable:
            raise io.UnsupportedOperation(f"{self.name} endpoint is not writable")
        try:
            return os.write(self._fd, data)
        except BlockingIOError:
            return None

    def stream(self) -> io.FileIO:
        """Unbuffered byte-stream view over the descriptor.

        The stream does not own the descriptor: closing it leaves the
        endpoint open.
        """
        self._check_open()
        return io.FileIO(self._fd, "rb" if self.readable else "wb", closefd=False)

    # =========================================================================
    # Readiness
    # =========================================================================

    def register(
        self, selector: selectors.BaseSelector, data: Any = None
    ) -> selectors.SelectorKey:
        """Register with selector for read- or write-readiness.

        The endpoint itself is the registered file object, so ready keys give
        back the endpoint through ``key.fileobj``.
        """
        self._check_open()
        return selector.register(self, self.events, data)

    def unregister(self, selector: selectors.BaseSelector) -> selectors.SelectorKey:
        return selector.unregister(self)

    async def wait_ready(self) -> None:
        """Wait until the descriptor is ready for the endpoint direction."""
        self._check_open()
        if self.readable:
            await anyio.wait_readable(self._fd)
        else:
            await anyio.wait_writable(self._fd)

    async def read_async(self, size: int | None = None) -> bytes:
        """Wait for readiness, then read. Returns b"" at end of stream."""
        while True:
            await self.wait_ready()
            data = self.read(size)
            if data is not None:
                return data

    async def write_async(self, data: bytes) -> int:
        """Wait for readiness, then write once.

        On a blocking endpoint a write larger than the free pipe space still
        blocks the thread; switch to non-blocking mode first for fully
        cooperative writes.
        """
        while True:
            await self.wait_ready()
            written = self.write(data)
            if written is not None:
                return written

    def _check_open(self) -> None:
        if self._fd < 0:
            raise ValueError(f"I/O operation on closed {self.name} endpoint")
