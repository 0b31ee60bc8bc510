"""颜色解析工具.

模板中的颜色以 CSS 字符串保存（``#1d4ed8``、``rgba(30, 64, 175, 0.7)`` 等），
渲染前统一解析为 RGBA 元组。
"""

from __future__ import annotations

import re
from functools import lru_cache

from PIL import ImageColor

RGBAColor = tuple[int, int, int, int]

# CSS 风格的 rgba()，透明度为 0-1 浮点数；Pillow 只接受 0-255 整数
_CSS_RGBA = re.compile(
    r"^rgba?\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*(?:,\s*([0-9]*\.?[0-9]+)\s*)?\)$",
    re.IGNORECASE,
)

TRANSPARENT: RGBAColor = (0, 0, 0, 0)


def is_valid_color(value: str) -> bool:
    """检查颜色字符串能否被解析."""
    try:
        parse_color(value)
    except ValueError:
        return False
    return True


@lru_cache(maxsize=256)
def parse_color(value: str) -> RGBAColor:
    """解析 CSS 颜色字符串.

    Args:
        value: 颜色字符串

    Returns:
        (r, g, b, a) 元组，分量均为 0-255

    Raises:
        ValueError: 无法识别的颜色
    """
    text = (value or "").strip()
    if not text:
        raise ValueError("颜色值不能为空")
    if text.lower() == "transparent":
        return TRANSPARENT

    match = _CSS_RGBA.match(text)
    if match:
        r, g, b = (int(match.group(i)) for i in range(1, 4))
        if any(v > 255 for v in (r, g, b)):
            raise ValueError(f"颜色值必须在0-255之间: {value}")
        alpha_text = match.group(4)
        alpha = 1.0 if alpha_text is None else float(alpha_text)
        if alpha > 1.0:
            raise ValueError(f"透明度必须在0-1之间: {value}")
        return (r, g, b, round(alpha * 255))

    rgba = ImageColor.getcolor(text, "RGBA")
    return tuple(rgba)  # type: ignore[return-value]


def with_opacity(color: RGBAColor, opacity: float) -> RGBAColor:
    """将额外不透明度乘入颜色的 alpha 通道.

    Args:
        color: RGBA 颜色
        opacity: 不透明度 (0-1)

    Returns:
        新的 RGBA 颜色
    """
    opacity = max(0.0, min(1.0, opacity))
    return (color[0], color[1], color[2], round(color[3] * opacity))
