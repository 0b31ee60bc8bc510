"""应用常量定义."""

from pathlib import Path

# ===================
# 应用信息
# ===================
APP_NAME = "CardForge 卡牌模板设计器"
APP_VERSION = "0.3.0"

# ===================
# 路径常量
# ===================
# 应用数据目录
APP_DATA_DIR = Path.home() / ".cardforge"

# 日志目录
LOG_DIR = APP_DATA_DIR / "logs"

# 默认导出目录
EXPORT_DIR = APP_DATA_DIR / "exports"

# 本地模板库目录
TEMPLATES_DIR = APP_DATA_DIR / "templates"

# ===================
# 画布与元素
# ===================
# 元素最小可操作尺寸
MIN_ELEMENT_SIZE = 20

# 画布尺寸范围（编辑器输入限制）
MIN_CANVAS_SIZE = 200
MAX_CANVAS_SIZE = 1600

# 新建元素相对画布的留白
ELEMENT_CANVAS_MARGIN = 80

# 新建元素的最大默认尺寸
DEFAULT_ELEMENT_WIDTH = 280
DEFAULT_ELEMENT_HEIGHT = 140
DEFAULT_IMAGE_ELEMENT_HEIGHT = 360

# ===================
# 渲染
# ===================
TEXT_PADDING = 8
LINE_HEIGHT_FACTOR = 1.2
DEFAULT_FONT_FAMILY = "Inter"

PLACEHOLDER_MIN_FONT_SIZE = 12
PLACEHOLDER_MAX_FONT_SIZE = 18
PLACEHOLDER_FONT_WEIGHT = 600
PLACEHOLDER_TEXT_COLOR = "rgba(148, 163, 184, 0.85)"
DEFAULT_PLACEHOLDER_LABEL = "图片区域"

# ===================
# 导出
# ===================
POINTS_PER_INCH = 72.0
MM_PER_INCH = 25.4

DEFAULT_PNG_SCALE = 1.0
DEFAULT_PDF_SCALE = 2.0
DEFAULT_MARGIN_MM = 10.0
DEFAULT_PAGE_SIZE = "A4"

# 页面尺寸（单位：点）
PAGE_SIZES: dict[str, tuple[float, float]] = {
    "A4": (595.28, 841.89),
    "Letter": (612.0, 792.0),
}

DEFAULT_EXPORT_NAME = "export"
