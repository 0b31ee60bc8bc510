"""文件工具函数模块.

导出产物的落盘操作。写入先落到同目录临时文件再原子替换，
失败时不会留下半写的文件。
"""

from __future__ import annotations

import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from cardforge.utils.logger import setup_logger

logger = setup_logger(__name__)


def ensure_directory(path: Path) -> Path:
    """确保目录存在.

    Args:
        path: 目录路径

    Returns:
        目录路径
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


@contextmanager
def atomic_write_context(target: Path | str) -> Generator[Path, None, None]:
    """原子写入上下文管理器.

    产出一个与目标同目录的临时路径，块正常结束后替换目标文件；
    块内抛出异常时删除临时文件并继续抛出。

    Args:
        target: 目标文件路径

    Yields:
        临时文件路径
    """
    target = Path(target)
    ensure_directory(target.parent)
    fd, temp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    os.close(fd)
    temp_path = Path(temp_name)
    try:
        yield temp_path
        os.replace(temp_path, target)
    except BaseException:
        if temp_path.exists():
            try:
                temp_path.unlink()
            except OSError as e:
                logger.warning(f"删除临时文件失败: {temp_path}, {e}")
        raise


def write_bytes_atomic(target: Path | str, data: bytes) -> Path:
    """原子写入二进制内容.

    Args:
        target: 目标文件路径
        data: 文件内容

    Returns:
        目标文件路径
    """
    target = Path(target)
    with atomic_write_context(target) as temp_path:
        temp_path.write_bytes(data)
    logger.debug(f"已写入 {target} ({len(data)} 字节)")
    return target
