"""Process builder: launch configuration and the atomic spawn protocol.

Spawn protocol (see spawn()):
1. Validate the launch spec and working directory
2. Create the stdin/stdout/stderr pipes
3. posix_spawnp with dup2/close file actions, so descriptor remapping
   happens inside the child with no fork+exec window in Python code
4. Close the child-side descriptors in the parent
5. Wrap pid + parent-side descriptors in a ChildProcess

Every failure in steps 1-3 leaves no descriptor behind.
"""

from __future__ import annotations

import errno
import logging
import os
import shutil
import signal
import stat
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..config import get_config
from ..errors import InvalidArgumentError, SpawnFailedError
from .pipes import PipeSet
from .process import ChildProcess

__all__ = [
    "LaunchSpec",
    "ProcessBuilder",
    "spawn",
]

logger = logging.getLogger(__name__)

CommandArg = str | os.PathLike[str]

# posix_spawn has no chdir attribute; a working directory is applied by a
# shell that changes directory and execs the already-resolved executable.
CHDIR_SHELL = "/bin/sh"
CHDIR_SCRIPT = 'cd -- "$1" || exit 127; shift; exec "$@"'

# Dispositions the interpreter sets to SIG_IGN and exec would preserve
RESTORED_SIGNALS = tuple(
    sig for sig in (getattr(signal, name, None) for name in ("SIGPIPE", "SIGXFSZ"))
    if sig is not None
)


def _normalize_command(command: Iterable[CommandArg]) -> list[str]:
    """Validate and copy a command line."""
    normalized: list[str] = []
    for arg in command:
        if isinstance(arg, os.PathLike):
            value = os.fspath(arg)
        elif isinstance(arg, str):
            value = arg
        else:
            raise InvalidArgumentError(
                f"command arguments must be str or os.PathLike, got {type(arg).__name__}"
            )
        if "\0" in value:
            raise InvalidArgumentError("command arguments cannot contain NUL")
        normalized.append(value)

    if not normalized:
        raise InvalidArgumentError("command must include at least one argument")
    if not normalized[0].strip():
        raise InvalidArgumentError("executable cannot be empty or whitespace")
    return normalized


def _validate_environment(env: Mapping[str, str]) -> dict[str, str]:
    validated: dict[str, str] = {}
    for name, value in env.items():
        if not isinstance(name, str) or not isinstance(value, str):
            raise InvalidArgumentError(
                f"environment entries must be str, got {name!r}={value!r}"
            )
        if not name or "=" in name or "\0" in name:
            raise InvalidArgumentError(f"illegal environment variable name: {name!r}")
        if "\0" in value:
            raise InvalidArgumentError(f"environment variable {name} contains NUL")
        validated[name] = value
    return validated


@dataclass(frozen=True)
class LaunchSpec:
    """Snapshot of everything needed for one spawn.

    Attributes:
        argv: Command line; argv[0] is searched in PATH
        env: Complete environment of the child
        cwd: Working directory of the child (None = inherit the parent's)
        new_process_group: Make the child leader of a new process group
        restore_signals: Reset SIGPIPE/SIGXFSZ to SIG_DFL in the child
    """

    argv: tuple[str, ...]
    env: Mapping[str, str] = field(default_factory=lambda: dict(os.environ))
    cwd: str | None = None
    new_process_group: bool = True
    restore_signals: bool = True

    def __post_init__(self) -> None:
        argv = self.argv
        if isinstance(argv, (str, os.PathLike)):
            argv = (argv,)
        object.__setattr__(self, "argv", tuple(_normalize_command(argv)))
        object.__setattr__(self, "env", _validate_environment(self.env))
        if self.cwd is not None:
            object.__setattr__(self, "cwd", os.fspath(self.cwd))

    @property
    def executable(self) -> str:
        return self.argv[0]


class ProcessBuilder:
    """Accumulates a launch configuration and starts child processes.

    Example:
        builder = ProcessBuilder("/bin/sh", "-c", 'echo "$GREETING"')
        builder.environment["GREETING"] = "hello"
        builder.directory = "/tmp"
        child = builder.start()

    The command is copied on construction and on every assignment, so later
    changes to the caller's list do not affect the builder. The environment
    is the exception: ``environment`` is the builder's own live dict.
    """

    def __init__(
        self,
        *command: CommandArg | Sequence[CommandArg],
        new_process_group: bool | None = None,
        restore_signals: bool | None = None,
    ) -> None:
        """Create a builder.

        Args:
            *command: Either the arguments themselves or a single sequence
                of arguments
            new_process_group: Override PIPESPAWN_NEW_PROCESS_GROUP
            restore_signals: Override PIPESPAWN_RESTORE_SIGNALS

        Raises:
            InvalidArgumentError: If the command is empty or malformed
        """
        if len(command) == 1 and not isinstance(command[0], (str, os.PathLike)):
            try:
                command = tuple(command[0])  # type: ignore[arg-type]
            except TypeError as e:
                raise InvalidArgumentError(f"invalid command: {command[0]!r}") from e
        self._command = _normalize_command(command)  # type: ignore[arg-type]
        self._env: dict[str, str] = dict(os.environ)
        self._directory: str | None = None

        config = get_config()
        self.new_process_group = (
            config.new_process_group if new_process_group is None else new_process_group
        )
        self.restore_signals = (
            config.restore_signals if restore_signals is None else restore_signals
        )

    def __repr__(self) -> str:
        return (
            f"ProcessBuilder(command={self._command!r}, "
            f"directory={self._directory!r}, "
            f"new_process_group={self.new_process_group})"
        )

    @property
    def command(self) -> list[str]:
        """A copy of the command line."""
        return list(self._command)

    @command.setter
    def command(self, command: Sequence[CommandArg]) -> None:
        if isinstance(command, (str, os.PathLike)):
            command = [command]
        self._command = _normalize_command(command)

    @property
    def environment(self) -> dict[str, str]:
        """The builder's live environment mapping.

        Initialized to a snapshot of os.environ when the builder is created.
        Mutations made through the returned dict apply to every later
        start(); the dict lives as long as the builder.
        """
        return self._env

    @property
    def directory(self) -> str:
        """Working directory for children started by this builder.

        Returns the configured directory, or the current directory of this
        process when none has been set.
        """
        if self._directory is not None:
            return self._directory
        return os.getcwd()

    @directory.setter
    def directory(self, path: str | os.PathLike[str] | None) -> None:
        # Stored on the builder and applied at spawn time only; the
        # process-wide working directory is never changed.
        self._directory = None if path is None else os.fspath(path)

    def to_spec(self) -> LaunchSpec:
        """Snapshot the current configuration."""
        return LaunchSpec(
            argv=tuple(self._command),
            env=dict(self._env),
            cwd=self._directory,
            new_process_group=self.new_process_group,
            restore_signals=self.restore_signals,
        )

    def start(self) -> ChildProcess:
        """Spawn a child process from the current configuration.

        Does not block on the child: the child runs concurrently with the
        construction of the returned handle.

        Raises:
            InvalidArgumentError: If the environment holds an illegal entry
            ResourceExhaustedError: If the pipes cannot be created
            SpawnFailedError: If the process cannot be created
        """
        return spawn(self.to_spec())


def _resolve_executable(executable: str, cwd: str, env: Mapping[str, str]) -> str | None:
    if os.sep in executable:
        path = os.path.join(cwd, executable)
        if os.path.isfile(path) and os.access(path, os.X_OK):
            return path
        return None
    return shutil.which(executable, path=env.get("PATH", os.defpath))


def _chdir_argv(spec: LaunchSpec) -> list[str]:
    """Command line that starts spec.argv inside spec.cwd.

    Raises:
        SpawnFailedError: If the directory or the executable is unusable
    """
    assert spec.cwd is not None
    # The shell changes directory before exec: both paths must be absolute
    cwd = os.path.abspath(spec.cwd)
    try:
        mode = os.stat(cwd).st_mode
    except OSError as e:
        raise SpawnFailedError(e.errno or errno.ENOENT, spec.executable) from e
    if not stat.S_ISDIR(mode):
        raise SpawnFailedError(errno.ENOTDIR, spec.executable)

    resolved = _resolve_executable(spec.executable, cwd, spec.env)
    if resolved is None:
        raise SpawnFailedError(errno.ENOENT, spec.executable)

    return [
        CHDIR_SHELL, "-c", CHDIR_SCRIPT, "sh",
        cwd, os.path.abspath(resolved), *spec.argv[1:],
    ]


def _spawn_attributes(spec: LaunchSpec) -> dict[str, Any]:
    kwargs: dict[str, Any] = {}
    if spec.new_process_group:
        # 0: the child's pid becomes its process group id
        kwargs["setpgroup"] = 0
    if spec.restore_signals:
        kwargs["setsigdef"] = RESTORED_SIGNALS
    return kwargs


def spawn(spec: LaunchSpec) -> ChildProcess:
    """Start spec as a child process wired to three fresh pipes.

    Raises:
        ResourceExhaustedError: If the pipes cannot be created
        SpawnFailedError: If the process cannot be created
    """
    argv = list(spec.argv) if spec.cwd is None else _chdir_argv(spec)

    pipes = PipeSet.create()
    try:
        pid = os.posix_spawnp(
            argv[0],
            argv,
            spec.env,
            file_actions=pipes.file_actions(),
            **_spawn_attributes(spec),
        )
    except OSError as e:
        pipes.close()
        logger.debug(f"Spawn failed argv={spec.executable} cwd={spec.cwd}: {e}")
        raise SpawnFailedError(e.errno or errno.EINVAL, spec.executable) from e
    except Exception:
        pipes.close()
        raise

    pipes.close_child_side()

    logger.debug(
        f"Started subprocess pid={pid} "
        f"argv={spec.executable} cwd={spec.cwd} "
        f"new_process_group={spec.new_process_group}"
    )
    return ChildProcess(pid, *pipes.parent_fds())
