"""几何不变量维护.

保证每个元素都位于画布内且不小于最小尺寸。画布尺寸变化和交互式
拖拽/缩放都通过这里的函数，编辑器看到的与导出的结果因此一致。

所有函数都是纯函数：返回新对象，不修改入参。
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from cardforge.models.template_config import (
    AnyElement,
    ElementBase,
    RectangleElement,
    Template,
    TextElement,
)
from cardforge.utils.constants import MIN_ELEMENT_SIZE
from cardforge.utils.exceptions import InvalidGeometryError
from cardforge.utils.helpers import clamp, round_half_up
from cardforge.utils.logger import setup_logger

logger = setup_logger(__name__)

# 浮点比较容差
EPSILON = 1e-6

# 部分更新时不允许修改的字段
IMMUTABLE_FIELDS = frozenset({"id", "type"})


class GestureMode(str, Enum):
    """交互手势类型."""

    MOVE = "move"
    RESIZE = "resize"


# ===================
# 归一化
# ===================


def normalize_element(element: AnyElement, canvas_width: float, canvas_height: float) -> AnyElement:
    """将元素限制回画布范围和最小尺寸.

    先把宽高限制在 [20, 画布尺寸]，再把 x/y 限制在 [0, 画布尺寸 - 新宽高]；
    矩形的圆角同时限制为短边的一半。结果幂等。

    Args:
        element: 元素
        canvas_width: 画布宽度
        canvas_height: 画布高度

    Returns:
        归一化后的新元素
    """
    width = float(clamp(element.width, MIN_ELEMENT_SIZE, canvas_width))
    height = float(clamp(element.height, MIN_ELEMENT_SIZE, canvas_height))
    x = float(clamp(element.x, 0, max(canvas_width - width, 0)))
    y = float(clamp(element.y, 0, max(canvas_height - height, 0)))

    update: dict[str, Any] = {"x": x, "y": y, "width": width, "height": height}
    if isinstance(element, RectangleElement):
        update["border_radius"] = max(min(element.border_radius, min(width, height) / 2), 0.0)
    return element.model_copy(update=update)


def normalize_template(template: Template) -> Template:
    """按当前画布尺寸归一化模板内所有元素."""
    return resize_canvas(template, template.width, template.height)


def resize_canvas(template: Template, width: float, height: float) -> Template:
    """修改画布尺寸并按新尺寸依次归一化所有元素.

    不会删除元素，也不改变顺序。

    Args:
        template: 模板
        width: 新画布宽度
        height: 新画布高度

    Returns:
        新模板

    Raises:
        InvalidGeometryError: 画布尺寸不是有限数或小于元素最小尺寸
    """
    for label, value in (("宽度", width), ("高度", height)):
        if not math.isfinite(value) or value < MIN_ELEMENT_SIZE:
            raise InvalidGeometryError(f"画布{label}不能小于 {MIN_ELEMENT_SIZE}，实际: {value}")

    elements = [normalize_element(element, width, height) for element in template.elements]
    if (width, height) != (template.width, template.height):
        logger.debug(f"画布尺寸变更: {template.width}x{template.height} -> {width}x{height}")
    return template.model_copy(update={"width": width, "height": height, "elements": elements}, deep=True)


# ===================
# 交互手势
# ===================


def apply_gesture(
    snapshot: AnyElement,
    delta: tuple[float, float],
    mode: GestureMode | str,
    canvas_width: float,
    canvas_height: float,
    zoom: float = 1.0,
) -> AnyElement:
    """计算一次指针移动后的元素.

    ``snapshot`` 必须是手势开始时的元素状态，``delta`` 是相对手势起点的
    累计指针位移（屏幕单位）。每次指针事件都从同一快照出发计算，避免
    连续事件累积误差。

    Args:
        snapshot: 手势开始时的元素
        delta: 指针位移 (dx, dy)，屏幕单位
        mode: 移动或右下角缩放
        canvas_width: 画布宽度
        canvas_height: 画布高度
        zoom: 编辑器缩放倍数，位移会除以该值

    Returns:
        新元素；锁定元素原样返回
    """
    if snapshot.locked:
        return snapshot

    mode = GestureMode(mode)
    scale = zoom if zoom and zoom > 0 and math.isfinite(zoom) else 1.0
    dx = delta[0] / scale
    dy = delta[1] / scale

    if mode == GestureMode.MOVE:
        update = {
            "x": clamp(round_half_up(snapshot.x + dx), 0, canvas_width - snapshot.width),
            "y": clamp(round_half_up(snapshot.y + dy), 0, canvas_height - snapshot.height),
        }
    else:
        update = {
            "width": clamp(round_half_up(snapshot.width + dx), MIN_ELEMENT_SIZE, canvas_width - snapshot.x),
            "height": clamp(round_half_up(snapshot.height + dy), MIN_ELEMENT_SIZE, canvas_height - snapshot.y),
        }
    return normalize_element(snapshot.model_copy(update=update), canvas_width, canvas_height)


# ===================
# 部分更新
# ===================


def _field_name(model: type[ElementBase], key: str) -> Optional[str]:
    if key in model.model_fields:
        return key
    for name, info in model.model_fields.items():
        if info.alias == key:
            return name
    return None


def apply_element_changes(
    element: AnyElement,
    changes: Mapping[str, Any],
    canvas_width: float,
    canvas_height: float,
) -> AnyElement:
    """合并部分字段更新并归一化.

    字段名既可以是蛇形也可以是布局文件中的驼峰形式。合并结果重新经过
    模型校验，再经过几何归一化。

    Args:
        element: 原元素
        changes: 需要修改的字段
        canvas_width: 画布宽度
        canvas_height: 画布高度

    Returns:
        更新后的新元素

    Raises:
        InvalidGeometryError: 修改了 id/type、字段未知或值非法
    """
    model = type(element)
    data = element.model_dump()
    for key, value in changes.items():
        name = _field_name(model, key)
        if name is None:
            raise InvalidGeometryError(f"未知字段: {key}", element.id)
        if name in IMMUTABLE_FIELDS and value != data[name]:
            raise InvalidGeometryError(f"字段 '{name}' 不允许修改", element.id)
        data[name] = value

    try:
        merged = model.model_validate(data)
    except ValidationError as e:
        raise InvalidGeometryError(f"字段值无效: {e.errors()[0]['msg']}", element.id) from e
    return normalize_element(merged, canvas_width, canvas_height)


# ===================
# 校验
# ===================


def validate_element(element: AnyElement, canvas_width: float, canvas_height: float) -> None:
    """检查元素是否满足全部几何不变量.

    Raises:
        InvalidGeometryError: 第一个被违反的不变量
    """
    values = (element.x, element.y, element.width, element.height, element.rotation)
    if not all(math.isfinite(v) for v in values):
        raise InvalidGeometryError("坐标、尺寸和旋转必须是有限数", element.id)
    if element.width < MIN_ELEMENT_SIZE - EPSILON or element.height < MIN_ELEMENT_SIZE - EPSILON:
        raise InvalidGeometryError(
            f"尺寸 {element.width}x{element.height} 小于最小值 {MIN_ELEMENT_SIZE}", element.id
        )
    if element.x < -EPSILON or element.y < -EPSILON:
        raise InvalidGeometryError(f"位置 ({element.x}, {element.y}) 超出画布", element.id)
    if element.x + element.width > canvas_width + EPSILON or element.y + element.height > canvas_height + EPSILON:
        raise InvalidGeometryError(
            f"元素右下角 ({element.x + element.width}, {element.y + element.height}) "
            f"超出画布 {canvas_width}x{canvas_height}",
            element.id,
        )
    if isinstance(element, RectangleElement):
        if element.border_radius > min(element.width, element.height) / 2 + EPSILON:
            raise InvalidGeometryError(f"圆角 {element.border_radius} 超过短边一半", element.id)
        if not 0 <= element.opacity <= 1:
            raise InvalidGeometryError(f"不透明度 {element.opacity} 不在 0-1 之间", element.id)
    if isinstance(element, TextElement) and element.font_size <= 0:
        raise InvalidGeometryError(f"字号必须为正数，实际: {element.font_size}", element.id)


def validate_template(template: Template) -> None:
    """检查模板及其所有元素的几何不变量.

    Raises:
        InvalidGeometryError: 第一个被违反的不变量
    """
    if not (math.isfinite(template.width) and math.isfinite(template.height)):
        raise InvalidGeometryError("画布尺寸必须是有限数")
    if template.width < MIN_ELEMENT_SIZE or template.height < MIN_ELEMENT_SIZE:
        raise InvalidGeometryError(f"画布尺寸不能小于 {MIN_ELEMENT_SIZE}: {template.width}x{template.height}")
    for element in template.elements:
        validate_element(element, template.width, template.height)
