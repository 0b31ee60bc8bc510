"""模板渲染引擎.

把模板按元素顺序栅格化为 Pillow 图像（绘图表面）。

Features:
    - 背景填充，按列表顺序绘制元素，跳过不可见元素
    - 每个元素在自身坐标框内绘制，再绕中心顺时针旋转后合成
    - 文字与图片占位裁剪到自身框内，矩形描边允许溢出
    - 文字按测量宽度贪心换行，块垂直居中
    - 整体缩放导出高分辨率图像
"""

from __future__ import annotations

import math
import os
import re
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Optional

from PIL import Image, ImageDraw, ImageFont

from cardforge.core.geometry import validate_template
from cardforge.models.template_config import (
    AnyElement,
    ImageElement,
    RectangleElement,
    Template,
    TextAlign,
    TextElement,
)
from cardforge.utils.color import parse_color, with_opacity
from cardforge.utils.constants import (
    DEFAULT_PLACEHOLDER_LABEL,
    LINE_HEIGHT_FACTOR,
    PLACEHOLDER_FONT_WEIGHT,
    PLACEHOLDER_MAX_FONT_SIZE,
    PLACEHOLDER_MIN_FONT_SIZE,
    PLACEHOLDER_TEXT_COLOR,
    TEXT_PADDING,
)
from cardforge.utils.exceptions import SurfaceUnavailableError
from cardforge.utils.helpers import round_half_up
from cardforge.utils.logger import setup_logger

logger = setup_logger(__name__)

FontType = ImageFont.FreeTypeFont | ImageFont.ImageFont
MeasureFunc = Callable[[str], float]


# ===================
# 常量定义
# ===================

# 绘图表面像素上限（约 1.4 亿像素）
MAX_SURFACE_PIXELS = 12_000 * 12_000

# 字重达到该值时优先使用粗体字体文件
BOLD_WEIGHT_THRESHOLD = 600

# 字体搜索路径
FONT_SEARCH_PATHS = [
    "/System/Library/Fonts/",
    "/System/Library/Fonts/Supplemental/",
    "/Library/Fonts/",
    "~/Library/Fonts/",
    "C:/Windows/Fonts/",
    "/usr/share/fonts/",
    "/usr/share/fonts/truetype/",
    "/usr/share/fonts/truetype/dejavu/",
    "~/.fonts/",
    "~/.local/share/fonts/",
]

# 中文字体回退列表（macOS/Windows/Linux 常见中文字体）
CJK_FONT_FALLBACKS = [
    "PingFang SC.ttc",
    "PingFang.ttc",
    "Hiragino Sans GB.ttc",
    "STHeiti Medium.ttc",
    "msyh.ttc",
    "simhei.ttf",
    "wqy-microhei.ttc",
    "wqy-zenhei.ttc",
    "NotoSansCJK-Regular.ttc",
    "NotoSansSC-Regular.otf",
]

# 通用回退字体（按顺序尝试）
GENERIC_FONT_FALLBACKS = ["Arial.ttf", "DejaVuSans.ttf", "LiberationSans-Regular.ttf"]
GENERIC_BOLD_FALLBACKS = ["Arial Bold.ttf", "DejaVuSans-Bold.ttf", "LiberationSans-Bold.ttf"]

_WORD_SPLIT = re.compile(r"\s+")
_LINE_SPLIT = re.compile(r"\r?\n")


# ===================
# 字体管理
# ===================


def _has_cjk_characters(text: str) -> bool:
    """检查文本是否包含中日韩统一表意文字."""
    for char in text:
        if "\u4e00" <= char <= "\u9fff" or "\u3400" <= char <= "\u4dbf":
            return True
    return False


def _search_dirs(extra_dirs: Iterable[Path | str] = ()) -> list[str]:
    dirs = [os.path.expanduser(str(d)) for d in extra_dirs]
    dirs.extend(os.path.expanduser(p) for p in FONT_SEARCH_PATHS)
    return [d for d in dirs if os.path.isdir(d)]


def _load_first(candidates: Iterable[str], size: float, dirs: list[str]) -> Optional[ImageFont.FreeTypeFont]:
    for search_path in dirs:
        for name in candidates:
            font_path = os.path.join(search_path, name)
            if os.path.exists(font_path):
                try:
                    return ImageFont.truetype(font_path, size)
                except OSError:
                    continue
    return None


def _family_variants(family: str, bold: bool) -> list[str]:
    compact = family.replace(" ", "")
    if bold:
        stems = [f"{family}-Bold", f"{compact}-Bold", f"{family} Bold", f"{family}-SemiBold", f"{compact}-SemiBold"]
    else:
        stems = [f"{family}-Regular", f"{compact}-Regular", family, compact]
    variants = []
    for stem in stems + [family]:
        for ext in (".ttf", ".otf", ".ttc"):
            variants.append(f"{stem}{ext}")
    return variants


def find_font(
    font_family: Optional[str],
    font_size: float,
    weight: int = 400,
    text_content: Optional[str] = None,
    extra_dirs: Iterable[Path | str] = (),
) -> FontType:
    """查找字体.

    依次尝试：字体名直接加载、在字体目录中查找族名变体、中文回退（文本含
    中文时）、通用回退字体，最后使用 Pillow 内置的可缩放默认字体。

    Args:
        font_family: 字体名称
        font_size: 字号（像素）
        weight: 字重，>= 600 时优先粗体
        text_content: 要渲染的文本（用于检测是否需要中文字体）
        extra_dirs: 额外字体目录

    Returns:
        字体对象
    """
    bold = weight >= BOLD_WEIGHT_THRESHOLD
    dirs = _search_dirs(extra_dirs)
    needs_cjk = bool(text_content) and _has_cjk_characters(text_content or "")

    family_font = None
    if font_family:
        family_font = _load_first(_family_variants(font_family, bold), font_size, dirs)
        if family_font is None and bold:
            family_font = _load_first(_family_variants(font_family, False), font_size, dirs)
        if family_font is None:
            try:
                family_font = ImageFont.truetype(font_family, font_size)
            except OSError:
                family_font = None
        if family_font is not None and not needs_cjk:
            return family_font

    if needs_cjk:
        cjk_font = _load_first(CJK_FONT_FALLBACKS, font_size, dirs)
        if cjk_font is not None:
            return cjk_font
        if family_font is not None:
            return family_font

    fallbacks = GENERIC_BOLD_FALLBACKS + GENERIC_FONT_FALLBACKS if bold else GENERIC_FONT_FALLBACKS
    font = _load_first(fallbacks, font_size, dirs)
    if font is not None:
        logger.warning(f"字体 '{font_family}' 未找到，使用回退字体 {font.getname()[0]}")
        return font

    logger.warning(f"字体 '{font_family}' 未找到，使用 Pillow 默认字体")
    return ImageFont.load_default(font_size)


class FontProvider:
    """线程安全的字体缓存.

    渲染前通过 ``ensure_ready`` 预先加载模板用到的全部字体，保证换行测量
    与实际绘制使用同一份字体度量。
    """

    def __init__(self, extra_dirs: Iterable[Path | str] = (), default_family: Optional[str] = None) -> None:
        self._extra_dirs = [Path(d) for d in extra_dirs]
        self._default_family = default_family
        self._cache: dict[tuple[str, float, bool, bool], FontType] = {}
        self._lock = threading.Lock()

    def get(self, family: Optional[str], size: float, weight: int = 400, text: Optional[str] = None) -> FontType:
        """获取字体（带缓存），未指定字体名时使用默认字体."""
        family = family or self._default_family
        key = (
            family or "",
            round(size, 2),
            weight >= BOLD_WEIGHT_THRESHOLD,
            bool(text) and _has_cjk_characters(text or ""),
        )
        with self._lock:
            font = self._cache.get(key)
            if font is None:
                font = find_font(family, size, weight, text, self._extra_dirs)
                self._cache[key] = font
            return font

    def ensure_ready(self, template: Template, scale: float = 1.0) -> int:
        """预加载模板需要的字体.

        Returns:
            模板涉及的字体请求数量
        """
        count = 0
        for element in template.elements:
            if not element.visible:
                continue
            if isinstance(element, TextElement) and element.text:
                self.get(element.font_family, element.font_size * scale, element.font_weight, element.text)
                count += 1
            elif isinstance(element, ImageElement):
                label = DEFAULT_PLACEHOLDER_LABEL if element.placeholder is None else element.placeholder
                if label:
                    self.get(None, placeholder_font_size(element.height) * scale, PLACEHOLDER_FONT_WEIGHT, label)
                    count += 1
        return count

    def clear(self) -> None:
        """清空缓存."""
        with self._lock:
            self._cache.clear()


# ===================
# 文字排版
# ===================


def wrap_text(text: str, max_width: float, measure: MeasureFunc) -> list[str]:
    """按测量宽度贪心换行.

    显式换行拆分为段落，段落内按空白拆词逐个装入当前行；一行至少包含
    一个词，即使该词本身超宽。空段落保留为空行。

    Args:
        text: 文本
        max_width: 行宽上限
        measure: 测量函数，返回字符串宽度

    Returns:
        行列表
    """
    if not text:
        return []
    paragraphs = _LINE_SPLIT.split(text)
    if max_width <= 0:
        return paragraphs

    lines: list[str] = []
    for paragraph in paragraphs:
        words = [w for w in _WORD_SPLIT.split(paragraph) if w]
        if not words:
            lines.append("")
            continue
        current = ""
        for word in words:
            candidate = f"{current} {word}" if current else word
            if not current or measure(candidate) <= max_width:
                current = candidate
            else:
                lines.append(current)
                current = word
        if current:
            lines.append(current)
    return lines


@dataclass(frozen=True)
class TextLayout:
    """文字块排版结果（元素局部坐标，未缩放）.

    Attributes:
        lines: 行列表
        line_height: 行高
        start_y: 第一行顶部位置
        anchor_x: 每行的水平锚点位置
        anchor: Pillow 文字锚点
    """

    lines: list[str]
    line_height: float
    start_y: float
    anchor_x: float
    anchor: str

    @property
    def content_height(self) -> float:
        """文字块总高度."""
        return len(self.lines) * self.line_height


_ALIGN_ANCHORS = {TextAlign.LEFT: "la", TextAlign.CENTER: "ma", TextAlign.RIGHT: "ra"}


def layout_text(element: TextElement, measure: MeasureFunc) -> TextLayout:
    """计算文字元素的行与位置.

    四周留 8 个单位内边距；文字块比内框矮时垂直居中，否则从顶部内边距开始。

    Args:
        element: 文字元素
        measure: 与绘制字体一致的测量函数（未缩放单位）

    Returns:
        排版结果
    """
    inner_width = max(element.width - TEXT_PADDING * 2, 0)
    inner_height = element.height - TEXT_PADDING * 2
    lines = wrap_text(element.text, inner_width, measure)
    line_height = element.font_size * LINE_HEIGHT_FACTOR
    content_height = len(lines) * line_height

    start_y = float(TEXT_PADDING)
    if content_height < inner_height:
        start_y += (inner_height - content_height) / 2

    align = TextAlign(element.align)
    if align == TextAlign.CENTER:
        anchor_x = element.width / 2
    elif align == TextAlign.RIGHT:
        anchor_x = element.width - TEXT_PADDING
    else:
        anchor_x = float(TEXT_PADDING)

    return TextLayout(lines, line_height, start_y, anchor_x, _ALIGN_ANCHORS[align])


def placeholder_font_size(height: float) -> float:
    """图片占位文字字号：高度的六分之一，限制在 12-18."""
    return min(PLACEHOLDER_MAX_FONT_SIZE, max(PLACEHOLDER_MIN_FONT_SIZE, height / 6))


def measure_text(font: FontType, text: str) -> float:
    """测量单行文字宽度（像素）."""
    return float(font.getlength(text))


# ===================
# 模板渲染器
# ===================


def _layer_size(width: float, height: float, scale: float, pad: int = 0) -> tuple[int, int]:
    return (max(math.ceil(width * scale), 1) + pad * 2, max(math.ceil(height * scale), 1) + pad * 2)


class TemplateRenderer:
    """模板渲染器.

    所有绘制坐标使用模板单位，缩放在每个元素图层上统一乘入。

    Example:
        >>> renderer = TemplateRenderer()
        >>> surface = renderer.render(template, scale=2)
        >>> surface.size
        (1200, 1600)
    """

    def __init__(self, fonts: Optional[FontProvider] = None) -> None:
        self._fonts = fonts or FontProvider()

    @property
    def fonts(self) -> FontProvider:
        """字体缓存."""
        return self._fonts

    def surface_size(self, template: Template, scale: float = 1.0) -> tuple[int, int]:
        """计算绘图表面尺寸."""
        scale = normalize_scale(scale)
        return (max(round_half_up(template.width * scale), 1), max(round_half_up(template.height * scale), 1))

    def render(self, template: Template, scale: float = 1.0) -> Image.Image:
        """渲染模板.

        Args:
            template: 模板（调用方应传入快照）
            scale: 整体缩放，小于 1 时按 1 处理

        Returns:
            RGBA 图像

        Raises:
            InvalidGeometryError: 模板违反几何不变量
            SurfaceUnavailableError: 无法创建绘图表面
        """
        validate_template(template)
        scale = normalize_scale(scale)
        width, height = self.surface_size(template, scale)
        self._fonts.ensure_ready(template, scale)

        background = parse_color(template.background)
        surface = self._create_surface(width, height, background)
        logger.debug(f"渲染模板 {template.id}: {width}x{height}, 缩放={scale}, 元素={template.element_count}")

        for element in template.elements:
            if not element.visible:
                continue
            self._render_element(surface, element, scale)

        return surface

    def _create_surface(self, width: int, height: int, color: tuple[int, int, int, int]) -> Image.Image:
        if width * height > MAX_SURFACE_PIXELS:
            raise SurfaceUnavailableError(width, height, f"超过像素上限 {MAX_SURFACE_PIXELS}")
        try:
            return Image.new("RGBA", (width, height), color)
        except (ValueError, MemoryError, OSError) as e:
            raise SurfaceUnavailableError(width, height, str(e)) from e

    def _render_element(self, surface: Image.Image, element: AnyElement, scale: float) -> None:
        if isinstance(element, RectangleElement):
            layer = self._draw_rectangle(element, scale)
        elif isinstance(element, TextElement):
            layer = self._draw_text(element, scale)
        elif isinstance(element, ImageElement):
            layer = self._draw_image_placeholder(element, scale)
        else:
            raise TypeError(f"未知元素类型: {type(element).__name__}")

        if layer is not None:
            self._composite(surface, layer, element, scale)

    def _composite(self, surface: Image.Image, layer: Image.Image, element: AnyElement, scale: float) -> None:
        """把元素图层绕中心旋转后合成到表面.

        图层中心与元素中心对齐，超出表面的部分被裁掉。
        """
        if element.rotation % 360:
            # Pillow 正角度为逆时针，元素旋转为顺时针
            layer = layer.rotate(-element.rotation, resample=Image.Resampling.BICUBIC, expand=True)

        cx, cy = element.center
        left = round(cx * scale - layer.width / 2)
        top = round(cy * scale - layer.height / 2)

        source_x = max(0, -left)
        source_y = max(0, -top)
        if source_x >= layer.width or source_y >= layer.height:
            return
        if left >= surface.width or top >= surface.height:
            return
        surface.alpha_composite(layer, dest=(max(left, 0), max(top, 0)), source=(source_x, source_y))

    # ===================
    # 矩形
    # ===================

    def _draw_rectangle(self, element: RectangleElement, scale: float) -> Optional[Image.Image]:
        """绘制矩形图层.

        描边以轮廓为中心线，图层四周预留半个描边宽度，溢出部分可见。
        """
        fill = with_opacity(parse_color(element.fill), element.opacity)
        stroke_px = element.border_width * scale
        stroke = parse_color(element.border_color) if stroke_px > 0 else None
        if fill[3] == 0 and (stroke is None or stroke[3] == 0):
            return None

        pad = math.ceil(stroke_px / 2) + 1 if stroke is not None else 0
        size = _layer_size(element.width, element.height, scale, pad)
        radius = element.effective_radius * scale
        box = (pad, pad, pad + element.width * scale - 1, pad + element.height * scale - 1)

        layer = Image.new("RGBA", size, (0, 0, 0, 0))
        if fill[3] > 0:
            ImageDraw.Draw(layer).rounded_rectangle(box, radius=round(radius), fill=fill)

        if stroke is not None and stroke[3] > 0:
            half = stroke_px / 2
            outer = (box[0] - half, box[1] - half, box[2] + half, box[3] + half)
            stroke_layer = Image.new("RGBA", size, (0, 0, 0, 0))
            ImageDraw.Draw(stroke_layer).rounded_rectangle(
                outer,
                radius=round(radius + half) if radius > 0 else 0,
                outline=stroke,
                width=max(1, round(stroke_px)),
            )
            layer = Image.alpha_composite(layer, stroke_layer)

        return layer

    # ===================
    # 文字
    # ===================

    def _draw_text(self, element: TextElement, scale: float) -> Optional[Image.Image]:
        """绘制文字图层（裁剪到元素框内）."""
        if not element.text:
            return None
        color = parse_color(element.color)
        if color[3] == 0:
            return None

        font = self._fonts.get(element.font_family, element.font_size * scale, element.font_weight, element.text)
        text_layout = layout_text(element, lambda s: measure_text(font, s) / scale)
        if not text_layout.lines:
            return None

        layer = Image.new("RGBA", _layer_size(element.width, element.height, scale), (0, 0, 0, 0))
        draw = ImageDraw.Draw(layer)
        x = text_layout.anchor_x * scale
        y = text_layout.start_y
        for line in text_layout.lines:
            if line:
                draw.text((x, y * scale), line, font=font, fill=color, anchor=text_layout.anchor)
            y += text_layout.line_height
        return layer

    # ===================
    # 图片占位
    # ===================

    def _draw_image_placeholder(self, element: ImageElement, scale: float) -> Image.Image:
        """绘制图片占位图层（背景、内描边、居中文字）."""
        size = _layer_size(element.width, element.height, scale)
        layer = Image.new("RGBA", size, parse_color(element.background))

        stroke_px = element.stroke_width * scale
        if stroke_px > 0:
            stroke_layer = Image.new("RGBA", size, (0, 0, 0, 0))
            ImageDraw.Draw(stroke_layer).rectangle(
                (0, 0, element.width * scale - 1, element.height * scale - 1),
                outline=parse_color(element.stroke_color),
                width=max(1, round(stroke_px)),
            )
            layer = Image.alpha_composite(layer, stroke_layer)

        label = DEFAULT_PLACEHOLDER_LABEL if element.placeholder is None else element.placeholder
        if not label:
            return layer
        font = self._fonts.get(None, placeholder_font_size(element.height) * scale, PLACEHOLDER_FONT_WEIGHT, label)
        text_layer = Image.new("RGBA", size, (0, 0, 0, 0))
        ImageDraw.Draw(text_layer).text(
            (element.width * scale / 2, element.height * scale / 2),
            label,
            font=font,
            fill=parse_color(PLACEHOLDER_TEXT_COLOR),
            anchor="mm",
        )
        return Image.alpha_composite(layer, text_layer)


def normalize_scale(scale: Optional[float]) -> float:
    """缩放系数：非有限值或小于 1 时取 1."""
    if scale is None or not math.isfinite(scale):
        return 1.0
    return max(float(scale), 1.0)


# ===================
# 便捷函数
# ===================

_default_renderer: Optional[TemplateRenderer] = None
_default_lock = threading.Lock()


def get_renderer() -> TemplateRenderer:
    """获取共享的渲染器实例（共享字体缓存）."""
    global _default_renderer
    with _default_lock:
        if _default_renderer is None:
            from cardforge.core.config_manager import get_settings

            settings = get_settings()
            fonts = FontProvider([settings.fonts_dir] if settings.fonts_dir else [], settings.default_font_family)
            _default_renderer = TemplateRenderer(fonts)
        return _default_renderer


def reset_renderer() -> None:
    """丢弃共享渲染器，下次使用时按当前设置重建."""
    global _default_renderer
    with _default_lock:
        _default_renderer = None


def render_template(template: Template, scale: float = 1.0) -> Image.Image:
    """渲染模板（便捷函数）.

    Args:
        template: 模板
        scale: 整体缩放

    Returns:
        RGBA 图像
    """
    return get_renderer().render(template, scale)
