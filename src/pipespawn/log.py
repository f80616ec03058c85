"""pipespawn 日志配置。

库本身只通过 logging.getLogger(__name__) 输出日志；
嵌入方可以调用 setup_logging() 获得与配置一致的输出。
"""

from __future__ import annotations

import logging
import sys

from .config import Config, get_config

__all__ = ["setup_logging", "LOG_FORMAT"]

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(config: Config | None = None) -> logging.Handler:
    """为 pipespawn 命名空间配置日志输出。

    - LOG_DEBUG 模式：DEBUG 级别，输出到临时文件
    - 默认模式：INFO 级别，输出到 stderr

    Args:
        config: 配置（默认使用全局配置）

    Returns:
        新安装的 handler（便于调用方移除）
    """
    config = config or get_config()

    if config.log_debug and config.log_file:
        handler: logging.Handler = logging.FileHandler(config.log_file, encoding="utf-8")
        log_level = logging.DEBUG
    else:
        handler = logging.StreamHandler(sys.stderr)
        log_level = logging.INFO

    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    # 只对 pipespawn 命名空间启用，不改动 root logger
    package_logger = logging.getLogger("pipespawn")
    package_logger.addHandler(handler)
    package_logger.setLevel(log_level)

    return handler
