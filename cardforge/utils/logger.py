"""日志工具模块.

提供控制台彩色输出和可选的文件日志，全局共享一个日志级别。
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from cardforge.utils.constants import LOG_DIR

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_FILE_MAX_BYTES = 5 * 1024 * 1024  # 5MB
LOG_FILE_BACKUP_COUNT = 3

# 引擎内部日志统一挂在该命名空间下
ROOT_LOGGER_NAME = "cardforge"

_log_level: int = logging.INFO
_configured: bool = False


class ColoredFormatter(logging.Formatter):
    """按级别着色的控制台格式化器."""

    COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        """格式化日志记录，不修改原始记录."""
        color = self.COLORS.get(record.levelno, "")
        original = record.levelname
        record.levelname = f"{color}{original}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


def _configure_package_logger() -> logging.Logger:
    """为 cardforge 命名空间安装控制台处理器（仅一次）."""
    global _configured
    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    if _configured:
        return package_logger

    package_logger.setLevel(_log_level)
    package_logger.propagate = False

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(_log_level)
    console.setFormatter(ColoredFormatter(LOG_FORMAT, DATE_FORMAT))
    package_logger.addHandler(console)

    _configured = True
    return package_logger


def enable_file_logging(log_dir: Optional[Path] = None) -> Path:
    """启用轮转文件日志.

    Args:
        log_dir: 日志目录，默认使用应用数据目录下的 logs

    Returns:
        日志文件路径
    """
    package_logger = _configure_package_logger()
    directory = Path(log_dir) if log_dir else LOG_DIR
    directory.mkdir(parents=True, exist_ok=True)
    log_file = directory / "cardforge.log"

    for handler in package_logger.handlers:
        if isinstance(handler, RotatingFileHandler) and Path(handler.baseFilename) == log_file.resolve():
            return log_file

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setLevel(_log_level)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    package_logger.addHandler(file_handler)
    return log_file


def setup_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    """获取模块日志记录器.

    Args:
        name: 日志记录器名称，通常使用 __name__
        level: 日志级别，默认跟随全局级别

    Returns:
        配置好的日志记录器
    """
    _configure_package_logger()
    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(level)
    return logger


def set_log_level(level: int | str) -> None:
    """设置全局日志级别."""
    global _log_level
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    _log_level = level

    package_logger = _configure_package_logger()
    package_logger.setLevel(level)
    for handler in package_logger.handlers:
        handler.setLevel(level)


def get_log_level() -> int:
    """获取当前全局日志级别."""
    return _log_level
