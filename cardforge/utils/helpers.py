"""辅助函数模块.

提供文件名清理、单位换算等通用辅助函数。
"""

from __future__ import annotations

import math
import re
import unicodedata
import uuid
from typing import Optional

from cardforge.utils.constants import DEFAULT_EXPORT_NAME, MM_PER_INCH, POINTS_PER_INCH

_UNSAFE_RUN = re.compile(r"[^A-Za-z0-9\-_]+")
_REPEATED_HYPHENS = re.compile(r"-{2,}")


def generate_short_id(length: int = 12) -> str:
    """生成短 ID.

    Args:
        length: ID 长度

    Returns:
        短 ID 字符串
    """
    return uuid.uuid4().hex[:length]


def clamp(value: float, min_val: float, max_val: float) -> float:
    """限制值在指定范围内.

    非有限值返回下限；上限小于下限时同样返回下限。

    Args:
        value: 原始值
        min_val: 最小值
        max_val: 最大值

    Returns:
        限制后的值
    """
    if not math.isfinite(value):
        return min_val
    if max_val < min_val:
        return min_val
    return max(min_val, min(max_val, value))


def round_half_up(value: float) -> int:
    """四舍五入到整数，.5 一律向正无穷方向进位.

    内置 ``round`` 采用银行家舍入（2.5 -> 2），这里 2.5 -> 3、-2.5 -> -2。

    Args:
        value: 原始值（有限数）

    Returns:
        整数结果
    """
    return math.floor(value + 0.5)


def mm_to_points(value: float) -> float:
    """毫米转 PDF 点."""
    return value * POINTS_PER_INCH / MM_PER_INCH


def _strip_to_token(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value)
    without_marks = "".join(c for c in decomposed if not unicodedata.combining(c))
    token = _UNSAFE_RUN.sub("-", without_marks)
    token = _REPEATED_HYPHENS.sub("-", token)
    return token.strip("-")


def sanitize_file_name(name: str, fallback: str = DEFAULT_EXPORT_NAME) -> str:
    """生成安全的文件名主体.

    去除变音符号，非 [A-Za-z0-9-_] 的连续字符替换为单个连字符，
    去掉首尾连字符并转为小写。

    Args:
        name: 原始名称
        fallback: 清理结果为空时使用的名称

    Returns:
        安全的文件名主体（不含扩展名）

    Example:
        >>> sanitize_file_name("Carta Mágica #1")
        'carta-magica-1'
    """
    trimmed = (name or "").strip()
    token = _strip_to_token(trimmed or fallback)
    return token.lower() if token else fallback


def ensure_extension(file_name: str, extension: str) -> str:
    """确保文件名带有指定扩展名.

    Args:
        file_name: 文件名
        extension: 扩展名（可带或不带点号）

    Returns:
        带扩展名的文件名
    """
    suffix = extension if extension.startswith(".") else f".{extension}"
    if file_name.endswith(suffix):
        return file_name
    return f"{file_name}{suffix}"


def sanitize_output_file_name(file_name: str, extension: str) -> str:
    """清理用户指定的输出文件名，保留扩展名.

    路径分隔符等字符会被替换，结果只能落在输出目录内。

    Example:
        >>> sanitize_output_file_name("../../Hero Card.png", "png")
        'hero-card.png'
    """
    suffix = f".{extension.lstrip('.')}"
    stem = file_name[: -len(suffix)] if file_name.lower().endswith(suffix.lower()) else file_name
    return f"{sanitize_file_name(stem)}{suffix}"


def build_export_file_name(name: str, extension: str, suffix: Optional[str] = None) -> str:
    """构建导出文件名.

    Args:
        name: 模板名称
        extension: 扩展名（不含点号）
        suffix: 可选后缀，如 "print"

    Returns:
        形如 ``my-card-print.pdf`` 的文件名
    """
    base = sanitize_file_name(name)
    safe_suffix = f"-{sanitize_file_name(suffix)}" if suffix else ""
    if safe_suffix == f"-{DEFAULT_EXPORT_NAME}":
        safe_suffix = ""
    return f"{base or DEFAULT_EXPORT_NAME}{safe_suffix}.{extension.lstrip('.')}"
