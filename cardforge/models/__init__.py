"""数据模型模块."""

from cardforge.models.app_settings import Settings
from cardforge.models.template_config import (
    # 枚举
    ElementType,
    TextAlign,
    ImageFit,
    # 常量
    ELEMENT_TYPE_NAMES,
    DEFAULT_CANVAS_SIZE,
    # 元素类
    ElementBase,
    TextElement,
    RectangleElement,
    ImageElement,
    Element,
    AnyElement,
    # 模板类
    Template,
    # 辅助函数
    create_element,
    generate_element_id,
    parse_element,
)

__all__ = [
    # 设置
    "Settings",
    # 枚举
    "ElementType",
    "TextAlign",
    "ImageFit",
    # 常量
    "ELEMENT_TYPE_NAMES",
    "DEFAULT_CANVAS_SIZE",
    # 元素类
    "ElementBase",
    "TextElement",
    "RectangleElement",
    "ImageElement",
    "Element",
    "AnyElement",
    # 模板类
    "Template",
    # 辅助函数
    "create_element",
    "generate_element_id",
    "parse_element",
]
