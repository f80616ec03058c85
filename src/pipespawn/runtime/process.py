"""Child process handle with pollable stdio endpoints and lifecycle control.

The handle owns the three parent-side pipe descriptors of a spawned child:

- stdin: the parent's write side (child's standard input)
- stdout: the parent's read side of the child's standard output
- stderr: the parent's read side of the child's standard error

Lifecycle:
    Running -> Terminated(status)

The only transition is a successful reap inside wait() or poll(). A signal
that has been delivered but not yet reaped is still Running.
"""

from __future__ import annotations

import errno
import logging
import os
import signal
import threading
from dataclasses import dataclass
from typing import Any

from anyio import to_thread

from ..errors import NotTerminatedError
from .endpoint import PipeEndpoint

__all__ = [
    "ChildProcess",
    "ExitStatus",
    "ProcessHandle",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExitStatus:
    """Decoded view of a raw wait status word.

    Attributes:
        raw: Status word as returned by waitpid
    """

    raw: int

    @property
    def exited(self) -> bool:
        return os.WIFEXITED(self.raw)

    @property
    def signaled(self) -> bool:
        return os.WIFSIGNALED(self.raw)

    @property
    def exit_code(self) -> int | None:
        return os.WEXITSTATUS(self.raw) if self.exited else None

    @property
    def term_signal(self) -> signal.Signals | None:
        return signal.Signals(os.WTERMSIG(self.raw)) if self.signaled else None

    @property
    def returncode(self) -> int:
        """Exit code, or the negated signal number (subprocess convention)."""
        return os.waitstatus_to_exitcode(self.raw)

    def __str__(self) -> str:
        if self.signaled:
            return f"killed by {self.term_signal.name}"
        return f"exit code {self.exit_code}"


class ChildProcess:
    """Handle over a running or terminated child process.

    Created only by a successful spawn (see ProcessBuilder.start()). Closing
    the handle releases the descriptors but never kills the child.

    Example:
        with ProcessBuilder("/bin/sh", "-c", "echo hello").start() as child:
            data = child.stdout.stream().read()
            status = child.wait()

    Concurrency:
        The reap is gated by a per-handle lock: a second caller of wait()
        blocks until the first one has captured the status and then returns
        that status without another waitpid call.
    """

    def __init__(self, pid: int, stdin_fd: int, stdout_fd: int, stderr_fd: int) -> None:
        """Wrap a spawned pid and the descriptors retained by the parent.

        Args:
            pid: The child's pid
            stdin_fd: Write end of the child's stdin pipe
            stdout_fd: Read end of the child's stdout pipe
            stderr_fd: Read end of the child's stderr pipe
        """
        if pid <= 0:
            raise ValueError(f"invalid pid: {pid}")
        self._pid = pid
        self.stdin = PipeEndpoint(stdin_fd, "w", "stdin")
        self.stdout = PipeEndpoint(stdout_fd, "r", "stdout")
        self.stderr = PipeEndpoint(stderr_fd, "r", "stderr")
        self._status: int | None = None
        self._reap_lock = threading.Lock()

    def __repr__(self) -> str:
        state = "running" if self._status is None else str(ExitStatus(self._status))
        return f"ChildProcess(pid={self._pid}, {state})"

    def __enter__(self) -> "ChildProcess":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @property
    def pid(self) -> int:
        return self._pid

    @property
    def endpoints(self) -> tuple[PipeEndpoint, PipeEndpoint, PipeEndpoint]:
        return (self.stdin, self.stdout, self.stderr)

    # =========================================================================
    # Exit status
    # =========================================================================

    @property
    def terminated(self) -> bool:
        return self._status is not None

    @property
    def status(self) -> ExitStatus | None:
        """Decoded exit status, None while the child has not been reaped."""
        return None if self._status is None else ExitStatus(self._status)

    @property
    def returncode(self) -> int | None:
        return None if self._status is None else os.waitstatus_to_exitcode(self._status)

    def wait(self) -> int:
        """Block until the child terminates and return its raw status word.

        Once captured, the status is returned without a further system call.
        """
        if self._status is not None:
            return self._status

        with self._reap_lock:
            if self._status is None:
                _, status = os.waitpid(self._pid, 0)
                self._status = status
                logger.debug(
                    f"Reaped subprocess pid={self._pid} ({ExitStatus(status)})"
                )
        return self._status

    def poll(self) -> int | None:
        """Reap the child if it has already terminated, without blocking.

        Returns:
            The raw status word, or None while the child is running or
            another thread is currently inside wait().
        """
        if self._status is not None:
            return self._status

        if not self._reap_lock.acquire(blocking=False):
            return None
        try:
            if self._status is None:
                pid, status = os.waitpid(self._pid, os.WNOHANG)
                if pid == 0:
                    return None
                self._status = status
                logger.debug(
                    f"Reaped subprocess pid={self._pid} ({ExitStatus(status)})"
                )
            return self._status
        finally:
            self._reap_lock.release()

    def exit_value(self) -> int:
        """Return the captured raw status word.

        Raises:
            NotTerminatedError: If the child has not been reaped yet
        """
        if self._status is None:
            raise NotTerminatedError(self._pid)
        return self._status

    async def wait_async(self) -> int:
        """Await wait() in a worker thread.

        Cancelling the caller abandons the worker thread; the reap still
        completes in the background and is cached on the handle.
        """
        if self._status is not None:
            return self._status
        return await to_thread.run_sync(self.wait, abandon_on_cancel=True)

    # =========================================================================
    # Signals
    # =========================================================================

    def kill(self, sig: int = signal.SIGKILL) -> int:
        """Send sig (SIGKILL by default) to the child alone.

        Returns:
            0 on success, otherwise the errno of the failed delivery. A child
            that has already been reaped yields ESRCH without a system call.
        """
        if self._status is not None:
            return errno.ESRCH
        return self._send_signal(self._pid, sig)

    def kill_process_group(self, sig: int = signal.SIGKILL) -> int:
        """Send sig (SIGKILL by default) to the child's whole process group.

        Targets the negated pid, which addresses the group whose leader is
        the child. The child is made group leader at spawn time unless
        LaunchSpec.new_process_group is False.

        Still delivered after the child has been reaped: the group id stays
        reserved while descendants of the child remain in the group.

        Returns:
            0 on success, otherwise the errno of the failed delivery.
        """
        return self._send_signal(-self._pid, sig)

    def _send_signal(self, target: int, sig: int) -> int:
        try:
            os.kill(target, sig)
        except OSError as e:
            logger.debug(f"kill({target}, {sig}) failed: {e}")
            return e.errno or errno.EINVAL
        logger.debug(f"Sent signal {sig} to {target}")
        return 0

    # =========================================================================
    # Resources
    # =========================================================================

    def close(self) -> None:
        """Close the three endpoints. Idempotent; does not kill the child."""
        for endpoint in self.endpoints:
            endpoint.close()


# Name used by callers that think in terms of handles
ProcessHandle = ChildProcess
