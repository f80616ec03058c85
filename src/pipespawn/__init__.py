"""pipespawn - 带可轮询标准 I/O 的子进程启动器。

通过 posix_spawn 原子地启动子进程，并将其 stdin/stdout/stderr
暴露为可注册到 selectors / anyio 的管道端点。

环境变量:
    PIPESPAWN_NEW_PROCESS_GROUP: 子进程是否成为新进程组组长 (默认 true)
    PIPESPAWN_RESTORE_SIGNALS: 是否恢复子进程的 SIGPIPE 默认处理 (默认 true)
    PIPESPAWN_READ_SIZE: 默认读取字节数 (默认 65536)
    PIPESPAWN_LOG_DEBUG: 日志输出到临时文件 (默认 false)

用法:
    from pipespawn import ProcessBuilder

    child = ProcessBuilder("/bin/sh", "-c", "echo hello").start()
    print(child.stdout.read())
    child.wait()
"""

__version__ = "0.1.0"

from .errors import (
    InvalidArgumentError,
    NotTerminatedError,
    PipespawnError,
    ResourceExhaustedError,
    SpawnFailedError,
)
from .runtime import (
    ChildProcess,
    ExitStatus,
    LaunchSpec,
    PipeEndpoint,
    ProcessBuilder,
    ProcessHandle,
    spawn,
)

__all__ = [
    "__version__",
    "ChildProcess",
    "ExitStatus",
    "InvalidArgumentError",
    "LaunchSpec",
    "NotTerminatedError",
    "PipeEndpoint",
    "PipespawnError",
    "ProcessBuilder",
    "ProcessHandle",
    "ResourceExhaustedError",
    "SpawnFailedError",
    "spawn",
]
