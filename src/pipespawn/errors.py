"""pipespawn 异常类。

pipespawn v0.1.0

信号发送失败不在此列：kill() 系列以返回码表示失败。
"""

from __future__ import annotations

import os

__all__ = [
    "PipespawnError",
    "InvalidArgumentError",
    "ResourceExhaustedError",
    "SpawnFailedError",
    "NotTerminatedError",
]


class PipespawnError(Exception):
    """pipespawn 基础异常。"""
    pass


class InvalidArgumentError(PipespawnError, ValueError):
    """命令或环境变量不合法（空命令、非字符串参数等）。"""
    pass


class ResourceExhaustedError(PipespawnError, OSError):
    """创建管道失败（文件描述符耗尽、内存不足）。

    Attributes:
        errno: 底层错误码
    """

    def __init__(self, errno: int, message: str = "") -> None:
        super().__init__(errno, message or f"pipe creation failed: {os.strerror(errno)}")


class SpawnFailedError(PipespawnError, OSError):
    """原子创建子进程失败（可执行文件不存在、权限不足等）。

    Attributes:
        errno: 底层错误码
        executable: 尝试启动的可执行文件
    """

    def __init__(self, errno: int, executable: str, message: str = "") -> None:
        self.executable = executable
        super().__init__(errno, message or f"cannot spawn {executable!r}: {os.strerror(errno)}")


class NotTerminatedError(PipespawnError):
    """子进程尚未被回收时查询退出状态。

    Attributes:
        pid: 子进程 pid
    """

    def __init__(self, pid: int) -> None:
        self.pid = pid
        super().__init__(f"subprocess pid={pid} has not yet completed")
