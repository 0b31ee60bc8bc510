"""模板与元素数据模型.

卡牌模板由固定尺寸的画布和有序的元素列表组成，元素分为文字、矩形、
图片占位三种，列表顺序即绘制顺序（第一个在最底层）。

Features:
    - 元素基类与三种子类（按 ``type`` 字段区分的联合类型）
    - 模板配置与快照
    - 布局 JSON 序列化/反序列化（驼峰字段名）
    - 按类型创建默认元素
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Annotated, Any, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

from cardforge.utils.color import is_valid_color
from cardforge.utils.constants import (
    DEFAULT_ELEMENT_HEIGHT,
    DEFAULT_ELEMENT_WIDTH,
    DEFAULT_FONT_FAMILY,
    DEFAULT_IMAGE_ELEMENT_HEIGHT,
    DEFAULT_PLACEHOLDER_LABEL,
    ELEMENT_CANVAS_MARGIN,
    MIN_ELEMENT_SIZE,
)
from cardforge.utils.helpers import clamp, generate_short_id, round_half_up


# ===================
# 常量定义
# ===================

# 文字元素默认值
DEFAULT_TEXT_CONTENT = "新文本"
DEFAULT_TEXT_FONT_SIZE = 32
DEFAULT_TEXT_FONT_WEIGHT = 600
DEFAULT_TEXT_COLOR = "#f1f5f9"

# 矩形元素默认值
DEFAULT_RECT_FILL = "#1d4ed8"
DEFAULT_RECT_BORDER_COLOR = "rgba(30, 64, 175, 0.7)"
DEFAULT_RECT_BORDER_RADIUS = 16
DEFAULT_RECT_OPACITY = 0.9

# 图片占位默认值
DEFAULT_IMAGE_BACKGROUND = "#0f172a"
DEFAULT_IMAGE_STROKE_COLOR = "rgba(59, 130, 246, 0.6)"
DEFAULT_IMAGE_STROKE_WIDTH = 2

# 模板默认值
DEFAULT_TEMPLATE_NAME = "新模板"
DEFAULT_CANVAS_SIZE = (750, 1050)
DEFAULT_TEMPLATE_BACKGROUND = "#0f172a"


# ===================
# 枚举定义
# ===================


class ElementType(str, Enum):
    """元素类型枚举."""

    TEXT = "text"
    RECTANGLE = "rectangle"
    IMAGE = "image"


class TextAlign(str, Enum):
    """文字水平对齐方式."""

    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


class ImageFit(str, Enum):
    """图片适应模式（占位渲染不使用，为真实图片保留）."""

    COVER = "cover"
    CONTAIN = "contain"
    FILL = "fill"


# 元素类型中文名称（用于默认命名）
ELEMENT_TYPE_NAMES: dict[ElementType, str] = {
    ElementType.TEXT: "文字",
    ElementType.RECTANGLE: "矩形",
    ElementType.IMAGE: "图片",
}


# ===================
# 辅助函数
# ===================


def generate_element_id() -> str:
    """生成唯一的元素ID.

    Returns:
        12位十六进制字符串
    """
    return generate_short_id(12)


def validate_color(value: str) -> str:
    """验证 CSS 颜色字符串，原样返回.

    Raises:
        ValueError: 无法解析的颜色
    """
    if not is_valid_color(value):
        raise ValueError(f"无效的颜色值: {value!r}")
    return value


# 所有模型共用的配置：Python 侧使用蛇形命名，布局 JSON 使用驼峰命名
_MODEL_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    validate_assignment=True,
    extra="ignore",
)


# ===================
# 元素基类
# ===================


class ElementBase(BaseModel):
    """元素基类.

    Attributes:
        id: 元素唯一标识（模板内唯一）
        name: 显示名称
        x: 左上角 X 坐标（画布单位）
        y: 左上角 Y 坐标（画布单位）
        width: 宽度
        height: 高度
        rotation: 旋转角度（度，顺时针，以自身中心为轴，不限制范围）
        visible: 是否可见
        locked: 是否锁定（锁定后拒绝拖拽和缩放，但仍会渲染和导出）
    """

    model_config = _MODEL_CONFIG

    id: str = Field(default_factory=generate_element_id, min_length=1)
    name: str = Field(default="")

    x: float = Field(default=0.0, allow_inf_nan=False)
    y: float = Field(default=0.0, allow_inf_nan=False)
    width: float = Field(default=100.0, allow_inf_nan=False)
    height: float = Field(default=100.0, allow_inf_nan=False)
    rotation: float = Field(default=0.0, allow_inf_nan=False)

    visible: bool = True
    locked: bool = False

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """获取边界框 (left, top, right, bottom)."""
        return (self.x, self.y, self.x + self.width, self.y + self.height)

    @property
    def center(self) -> tuple[float, float]:
        """获取中心点 (cx, cy)."""
        return (self.x + self.width / 2, self.y + self.height / 2)

    @property
    def element_type(self) -> ElementType:
        """获取元素类型枚举."""
        return ElementType(self.type)  # type: ignore[attr-defined]


# ===================
# 元素子类
# ===================


class TextElement(ElementBase):
    """文字元素.

    Attributes:
        text: 文字内容，可包含换行
        font_family: 字体名称
        font_size: 字号（像素）
        font_weight: 字重（100-900 数值）
        color: 文字颜色
        align: 水平对齐
    """

    type: Literal["text"] = "text"

    text: str = DEFAULT_TEXT_CONTENT
    font_family: str = DEFAULT_FONT_FAMILY
    font_size: float = Field(default=DEFAULT_TEXT_FONT_SIZE, gt=0, allow_inf_nan=False)
    font_weight: int = Field(default=DEFAULT_TEXT_FONT_WEIGHT, ge=1, le=1000)
    color: str = DEFAULT_TEXT_COLOR
    align: TextAlign = TextAlign.CENTER

    @field_validator("color")
    @classmethod
    def _check_color(cls, v: str) -> str:
        return validate_color(v)


class RectangleElement(ElementBase):
    """矩形元素.

    矩形的描边允许超出自身边界（装饰性出血），不做裁剪。

    Attributes:
        fill: 填充颜色
        border_color: 描边颜色
        border_width: 描边宽度
        border_radius: 圆角半径（归一化后不超过短边一半）
        opacity: 填充不透明度 (0-1)
    """

    type: Literal["rectangle"] = "rectangle"

    fill: str = DEFAULT_RECT_FILL
    border_color: str = DEFAULT_RECT_BORDER_COLOR
    border_width: float = Field(default=0.0, ge=0, allow_inf_nan=False)
    border_radius: float = Field(default=DEFAULT_RECT_BORDER_RADIUS, ge=0, allow_inf_nan=False)
    opacity: float = Field(default=DEFAULT_RECT_OPACITY, ge=0, le=1)

    @field_validator("fill", "border_color")
    @classmethod
    def _check_color(cls, v: str) -> str:
        return validate_color(v)

    @property
    def effective_radius(self) -> float:
        """按当前尺寸限制后的圆角半径."""
        return max(min(self.border_radius, min(self.width, self.height) / 2), 0.0)


class ImageElement(ElementBase):
    """图片占位元素.

    Attributes:
        fit: 适应模式
        background: 背景颜色
        stroke_color: 描边颜色
        stroke_width: 描边宽度
        placeholder: 占位文字，为 None 时使用默认文字，空字符串不绘制文字
    """

    type: Literal["image"] = "image"

    fit: ImageFit = ImageFit.COVER
    background: str = DEFAULT_IMAGE_BACKGROUND
    stroke_color: str = DEFAULT_IMAGE_STROKE_COLOR
    stroke_width: float = Field(default=DEFAULT_IMAGE_STROKE_WIDTH, ge=0, allow_inf_nan=False)
    placeholder: Optional[str] = DEFAULT_PLACEHOLDER_LABEL

    @field_validator("background", "stroke_color")
    @classmethod
    def _check_color(cls, v: str) -> str:
        return validate_color(v)


# ===================
# 元素联合类型
# ===================

Element = Annotated[
    Union[TextElement, RectangleElement, ImageElement],
    Field(discriminator="type"),
]

AnyElement = Union[TextElement, RectangleElement, ImageElement]

ELEMENT_CLASSES: dict[ElementType, type[ElementBase]] = {
    ElementType.TEXT: TextElement,
    ElementType.RECTANGLE: RectangleElement,
    ElementType.IMAGE: ImageElement,
}

_ELEMENT_ADAPTER: TypeAdapter[AnyElement] = TypeAdapter(Element)


def parse_element(data: Mapping[str, Any]) -> AnyElement:
    """按 ``type`` 字段把字典解析为对应的元素子类.

    Raises:
        pydantic.ValidationError: 类型未知或字段不合法
    """
    return _ELEMENT_ADAPTER.validate_python(dict(data))


# ===================
# 模板
# ===================

# 布局文件包含且仅包含的字段
LAYOUT_FIELDS = ("id", "name", "width", "height", "background", "show_grid", "elements")


class Template(BaseModel):
    """卡牌模板.

    Attributes:
        id: 模板ID
        name: 模板名称
        width: 画布宽度（设计单位，等同像素），不小于元素最小尺寸
        height: 画布高度
        background: 画布背景色
        show_grid: 是否显示网格（仅编辑器使用，不参与导出渲染）
        elements: 元素列表，顺序即绘制顺序

    Example:
        >>> template = Template(name="法术卡", width=600, height=800)
        >>> template.elements.append(create_element(ElementType.TEXT, template))
        >>> template.element_count
        1
    """

    model_config = _MODEL_CONFIG

    id: str = Field(default_factory=generate_element_id, min_length=1)
    name: str = DEFAULT_TEMPLATE_NAME
    width: float = Field(default=DEFAULT_CANVAS_SIZE[0], ge=MIN_ELEMENT_SIZE, allow_inf_nan=False)
    height: float = Field(default=DEFAULT_CANVAS_SIZE[1], ge=MIN_ELEMENT_SIZE, allow_inf_nan=False)
    background: str = DEFAULT_TEMPLATE_BACKGROUND
    show_grid: bool = True
    elements: list[Element] = Field(default_factory=list)

    @field_validator("background")
    @classmethod
    def _check_background(cls, v: str) -> str:
        return validate_color(v)

    @field_validator("elements")
    @classmethod
    def _check_unique_ids(cls, v: list[AnyElement]) -> list[AnyElement]:
        seen: set[str] = set()
        for element in v:
            if element.id in seen:
                raise ValueError(f"元素ID重复: {element.id}")
            seen.add(element.id)
        return v

    @property
    def element_count(self) -> int:
        """元素数量."""
        return len(self.elements)

    @property
    def element_ids(self) -> list[str]:
        """按绘制顺序排列的元素ID."""
        return [element.id for element in self.elements]

    @property
    def aspect_ratio(self) -> float:
        """宽高比."""
        return self.width / self.height

    def get_element(self, element_id: str) -> Optional[AnyElement]:
        """根据ID获取元素.

        Args:
            element_id: 元素ID

        Returns:
            元素对象，不存在返回None
        """
        for element in self.elements:
            if element.id == element_id:
                return element
        return None

    def index_of(self, element_id: str) -> int:
        """获取元素在列表中的位置，不存在返回 -1."""
        for index, element in enumerate(self.elements):
            if element.id == element_id:
                return index
        return -1

    def snapshot(self) -> "Template":
        """创建与当前模板完全独立的深拷贝.

        导出器只读取快照，避免在编辑过程中读到半更新的场景。
        """
        return self.model_copy(deep=True)

    def to_layout_dict(self) -> dict[str, Any]:
        """转换为布局字典（驼峰字段名，仅包含布局字段）."""
        return self.model_dump(mode="json", by_alias=True, include=set(LAYOUT_FIELDS))

    def to_json(self, indent: int = 2) -> str:
        """序列化为布局 JSON 字符串.

        Args:
            indent: 缩进空格数

        Returns:
            JSON字符串
        """
        return json.dumps(self.to_layout_dict(), ensure_ascii=False, indent=indent)

    @classmethod
    def from_json(cls, json_str: str | bytes) -> "Template":
        """从布局 JSON 字符串反序列化.

        Args:
            json_str: JSON字符串

        Returns:
            Template实例

        Raises:
            pydantic.ValidationError: 字段不合法
        """
        return cls.model_validate_json(json_str)


# ===================
# 元素构造
# ===================


def _default_size(kind: ElementType, template: Template) -> tuple[float, float]:
    width = min(DEFAULT_ELEMENT_WIDTH, template.width - ELEMENT_CANVAS_MARGIN)
    max_height = DEFAULT_IMAGE_ELEMENT_HEIGHT if kind == ElementType.IMAGE else DEFAULT_ELEMENT_HEIGHT
    height = min(max_height, template.height - ELEMENT_CANVAS_MARGIN)
    return width, height


def create_element(kind: ElementType | str, template: Template) -> AnyElement:
    """按类型创建默认元素，居中放置.

    不会把元素加入模板，插入由调用方负责。画布过小时尺寸可能低于
    最小值，调用方应再经过几何归一化。

    Args:
        kind: 元素类型
        template: 目标模板（用于计算尺寸、位置与默认名称）

    Returns:
        新元素
    """
    kind = ElementType(kind)
    width, height = _default_size(kind, template)
    x = clamp(round_half_up((template.width - width) / 2), MIN_ELEMENT_SIZE, template.width - width)
    y = clamp(round_half_up((template.height - height) / 2), MIN_ELEMENT_SIZE, template.height - height)

    base: dict[str, Any] = {
        "name": f"{ELEMENT_TYPE_NAMES[kind]} {template.element_count + 1}",
        "x": x,
        "y": y,
        "width": width,
        "height": height,
    }
    return ELEMENT_CLASSES[kind](**base)  # type: ignore[return-value]
