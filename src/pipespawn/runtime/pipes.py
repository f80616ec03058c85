"""Pipe creation and descriptor bookkeeping for the spawn protocol.

A PipeSet owns the six descriptors of the stdin/stdout/stderr pipes from
creation until the spawn either succeeds (three are handed to the child
process handle) or fails (all six are closed).
"""

from __future__ import annotations

import fcntl
import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass

from ..errors import ResourceExhaustedError

__all__ = [
    "Pipe",
    "PipeSet",
    "close_fds",
    "relocate_fd",
]

logger = logging.getLogger(__name__)

# Descriptors below this number are the child's stdio slots
FIRST_FREE_FD = 3


def relocate_fd(fd: int) -> int:
    """Move a descriptor out of the stdio range.

    A pipe end sitting on 0, 1 or 2 (possible when the parent runs with a
    closed stdio stream) would be clobbered by the dup2 actions of the spawn.
    The returned descriptor is close-on-exec.
    """
    if fd >= FIRST_FREE_FD:
        return fd
    try:
        new_fd = fcntl.fcntl(fd, fcntl.F_DUPFD_CLOEXEC, FIRST_FREE_FD)
    finally:
        os.close(fd)
    logger.debug(f"Relocated pipe descriptor {fd} -> {new_fd}")
    return new_fd


def close_fds(fds: Iterable[int | None]) -> None:
    """Close every descriptor in fds, ignoring ones already closed."""
    for fd in fds:
        if fd is None or fd < 0:
            continue
        try:
            os.close(fd)
        except OSError as e:
            logger.debug(f"close({fd}) failed: {e}")


@dataclass
class Pipe:
    """One unidirectional pipe.

    Attributes:
        read_fd: Read end
        write_fd: Write end
    """

    read_fd: int
    write_fd: int

    @classmethod
    def create(cls) -> "Pipe":
        read_fd, write_fd = os.pipe()
        try:
            read_fd = relocate_fd(read_fd)
        except OSError:
            os.close(write_fd)
            raise
        try:
            write_fd = relocate_fd(write_fd)
        except OSError:
            os.close(read_fd)
            raise
        return cls(read_fd, write_fd)

    def close(self) -> None:
        close_fds((self.read_fd, self.write_fd))
        self.read_fd = self.write_fd = -1


@dataclass
class PipeSet:
    """The stdin, stdout and stderr pipes of one spawn.

    Ownership:
        - before spawn: all six descriptors
        - after spawn: child_fds() are closed in the parent and
          parent_fds() are transferred to the process handle
    """

    stdin: Pipe
    stdout: Pipe
    stderr: Pipe

    @classmethod
    def create(cls) -> "PipeSet":
        """Create the three pipes.

        Raises:
            ResourceExhaustedError: If a pipe cannot be created. Pipes created
                before the failure are closed first.
        """
        pipes: list[Pipe] = []
        try:
            for _ in range(3):
                pipes.append(Pipe.create())
        except OSError as e:
            for pipe in pipes:
                pipe.close()
            logger.debug(f"Pipe creation failed after {len(pipes)} pipe(s): {e}")
            raise ResourceExhaustedError(e.errno or 0) from e
        return cls(*pipes)

    def file_actions(self) -> list[tuple[int, ...]]:
        """Descriptor actions executed in the child before exec.

        The order matters: the three dup2 actions populate the stdio slots
        first, then the parent-side ends are closed.
        """
        return [
            (os.POSIX_SPAWN_DUP2, self.stdin.read_fd, 0),
            (os.POSIX_SPAWN_DUP2, self.stdout.write_fd, 1),
            (os.POSIX_SPAWN_DUP2, self.stderr.write_fd, 2),
            (os.POSIX_SPAWN_CLOSE, self.stdin.write_fd),
            (os.POSIX_SPAWN_CLOSE, self.stdout.read_fd),
            (os.POSIX_SPAWN_CLOSE, self.stderr.read_fd),
        ]

    def child_fds(self) -> tuple[int, int, int]:
        """Descriptors used by the child: stdin read, stdout/stderr write."""
        return (self.stdin.read_fd, self.stdout.write_fd, self.stderr.write_fd)

    def parent_fds(self) -> tuple[int, int, int]:
        """Descriptors retained by the parent: stdin write, stdout/stderr read."""
        return (self.stdin.write_fd, self.stdout.read_fd, self.stderr.read_fd)

    def close_child_side(self) -> None:
        close_fds(self.child_fds())
        self.stdin.read_fd = self.stdout.write_fd = self.stderr.write_fd = -1

    def close(self) -> None:
        for pipe in (self.stdin, self.stdout, self.stderr):
            pipe.close()
