"""核心业务逻辑模块."""

from cardforge.core.config_manager import ConfigManager, get_config, get_settings
from cardforge.core.geometry import (
    GestureMode,
    apply_element_changes,
    apply_gesture,
    normalize_element,
    normalize_template,
    resize_canvas,
    validate_element,
    validate_template,
)
from cardforge.core.template_editor import TemplateEditor

__all__ = [
    # 配置
    "ConfigManager",
    "get_config",
    "get_settings",
    # 几何
    "GestureMode",
    "apply_element_changes",
    "apply_gesture",
    "normalize_element",
    "normalize_template",
    "resize_canvas",
    "validate_element",
    "validate_template",
    # 编辑会话
    "TemplateEditor",
]
