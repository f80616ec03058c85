"""pipespawn 环境变量配置管理。

环境变量:
    PIPESPAWN_NEW_PROCESS_GROUP: 子进程是否成为新进程组的组长
        - true/1/yes = 是 (默认，kill_process_group() 依赖此项)
        - false/0/no = 否 (继承父进程的进程组)

    PIPESPAWN_RESTORE_SIGNALS: 是否在子进程中恢复 SIGPIPE/SIGXFSZ 默认处理
        - true/1/yes = 恢复 (默认)
        - false/0/no = 不恢复 (子进程继承解释器的 SIG_IGN)

    PIPESPAWN_READ_SIZE: PipeEndpoint.read() 默认读取字节数
        - 默认 65536
        - 限制在 1 到 16 MiB 范围

    PIPESPAWN_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (日志输出到临时文件)
        - false/0/no = 关闭 (默认，日志输出到 stderr)
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

__all__ = ["Config", "load_config", "get_config", "reload_config"]

DEFAULT_READ_SIZE = 65536
MAX_READ_SIZE = 16 * 1024 * 1024


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_read_size(value: str | None) -> int:
    """解析默认读取大小，无效值回退到默认值。"""
    if not value:
        return DEFAULT_READ_SIZE
    try:
        size = int(value)
    except ValueError:
        return DEFAULT_READ_SIZE
    return max(1, min(size, MAX_READ_SIZE))


@dataclass
class Config:
    """pipespawn 配置。

    Attributes:
        new_process_group: 子进程是否放入独立进程组
        restore_signals: 是否在子进程中恢复默认信号处理
        read_size: PipeEndpoint.read() 的默认字节数
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
    """

    new_process_group: bool = True
    restore_signals: bool = True
    read_size: int = DEFAULT_READ_SIZE
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        return (
            f"Config(new_process_group={self.new_process_group}, "
            f"restore_signals={self.restore_signals}, "
            f"read_size={self.read_size}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "pipespawn"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"pipespawn_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("PIPESPAWN_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        new_process_group=_parse_bool(
            os.environ.get("PIPESPAWN_NEW_PROCESS_GROUP"), default=True
        ),
        restore_signals=_parse_bool(
            os.environ.get("PIPESPAWN_RESTORE_SIGNALS"), default=True
        ),
        read_size=_parse_read_size(os.environ.get("PIPESPAWN_READ_SIZE")),
        log_debug=log_debug,
        log_file=log_file,
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
