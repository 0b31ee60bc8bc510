"""模板导出服务.

把模板快照导出为 PNG 图像、布局 JSON 或可打印的多份拼版 PDF。

所有导出函数只返回内存中的产物 ``ExportArtifact``，是否落盘由调用方决定；
``save_artifact`` 通过临时文件原子写入，失败时不会留下不完整的文件。
"""

from __future__ import annotations

import io
import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import reportlab.lib.utils
import reportlab.pdfgen.canvas
from PIL import Image
from pydantic import ValidationError

from cardforge.models.template_config import Template
from cardforge.services.template_renderer import normalize_scale, render_template
from cardforge.utils.constants import (
    APP_NAME,
    DEFAULT_MARGIN_MM,
    DEFAULT_PAGE_SIZE,
    DEFAULT_PDF_SCALE,
    PAGE_SIZES,
)
from cardforge.utils.exceptions import (
    AssetEncodingError,
    InvalidExportParametersError,
    LayoutParseError,
)
from cardforge.utils.file_utils import write_bytes_atomic
from cardforge.utils.helpers import ensure_extension, mm_to_points
from cardforge.utils.logger import setup_logger

logger = setup_logger(__name__)

PNG_MIME_TYPE = "image/png"
JSON_MIME_TYPE = "application/json"
PDF_MIME_TYPE = "application/pdf"


# ===================
# 数据结构
# ===================


@dataclass(frozen=True)
class ExportArtifact:
    """导出产物.

    Attributes:
        data: 文件内容
        file_name: 建议文件名（含扩展名）
        mime_type: MIME 类型
    """

    data: bytes
    file_name: str
    mime_type: str

    @property
    def size(self) -> int:
        """内容字节数."""
        return len(self.data)


@dataclass
class PrintOptions:
    """PDF 拼版选项.

    Attributes:
        copies: 总份数
        columns: 每页列数
        rows: 每页行数
        page_size: 纸张规格（A4 / Letter）
        margin_mm: 页边距（毫米），负数按 0 处理
        scale: 栅格化缩放
    """

    copies: int
    columns: int
    rows: int
    page_size: str = DEFAULT_PAGE_SIZE
    margin_mm: float = DEFAULT_MARGIN_MM
    scale: float = DEFAULT_PDF_SCALE

    @property
    def per_page(self) -> int:
        """每页份数."""
        return self.columns * self.rows


@dataclass(frozen=True)
class PlacedCopy:
    """页面上一份模板的位置（PDF 点，原点在左下角）."""

    index: int
    row: int
    column: int
    x: float
    y: float
    width: float
    height: float


@dataclass
class PrintLayout:
    """拼版计算结果.

    Attributes:
        page_width: 页面宽度（点）
        page_height: 页面高度（点）
        pages: 每页放置的副本
    """

    page_width: float
    page_height: float
    pages: list[list[PlacedCopy]] = field(default_factory=list)

    @property
    def page_count(self) -> int:
        """页数."""
        return len(self.pages)

    @property
    def copy_count(self) -> int:
        """放置的总份数."""
        return sum(len(page) for page in self.pages)


# ===================
# 拼版计算
# ===================


def _require_positive_int(value: int, message: str) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise InvalidExportParametersError(message)


def compute_print_layout(template_width: float, template_height: float, options: PrintOptions) -> PrintLayout:
    """计算多份模板在页面上的排布.

    每页按行优先排列 ``columns × rows`` 个单元格，每份在单元格内等比缩放
    到最大并居中。先按单元格宽度计算，高度超出时再按高度计算。

    Args:
        template_width: 模板宽度
        template_height: 模板高度
        options: 拼版选项

    Returns:
        拼版结果

    Raises:
        InvalidExportParametersError: 份数或行列不是正整数、纸张规格未知、
            或边距过大没有可用区域
    """
    _require_positive_int(options.copies, f"导出份数必须大于 0，实际: {options.copies}")
    if not isinstance(options.columns, int) or not isinstance(options.rows, int) or min(options.columns, options.rows) <= 0:
        raise InvalidExportParametersError(f"每页至少需要一行一列，实际: {options.columns} 列 x {options.rows} 行")
    if options.page_size not in PAGE_SIZES:
        raise InvalidExportParametersError(f"不支持的纸张规格: {options.page_size}，可选 {sorted(PAGE_SIZES)}")
    if template_width <= 0 or template_height <= 0:
        raise InvalidExportParametersError(f"模板尺寸必须为正数: {template_width}x{template_height}")

    page_width, page_height = PAGE_SIZES[options.page_size]
    margin = mm_to_points(max(options.margin_mm, 0.0))
    usable_width = page_width - margin * 2
    usable_height = page_height - margin * 2
    if usable_width <= 0 or usable_height <= 0:
        raise InvalidExportParametersError(f"页边距 {options.margin_mm}mm 过大，{options.page_size} 页面没有可用区域")

    cell_width = usable_width / options.columns
    cell_height = usable_height / options.rows
    aspect_ratio = template_width / template_height

    draw_width = cell_width
    draw_height = draw_width / aspect_ratio
    if draw_height > cell_height:
        draw_height = cell_height
        draw_width = draw_height * aspect_ratio

    per_page = options.per_page
    layout = PrintLayout(page_width, page_height)
    for page_index in range(math.ceil(options.copies / per_page)):
        page: list[PlacedCopy] = []
        for slot in range(per_page):
            index = page_index * per_page + slot
            if index >= options.copies:
                break
            row, column = divmod(slot, options.columns)
            x = margin + column * cell_width + (cell_width - draw_width) / 2
            y = margin + usable_height - row * cell_height - cell_height + (cell_height - draw_height) / 2
            page.append(PlacedCopy(index, row, column, x, y, draw_width, draw_height))
        layout.pages.append(page)
    return layout


# ===================
# 导出函数
# ===================


def _encode_png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    try:
        image.save(buffer, format="PNG", optimize=True)
    except (OSError, ValueError) as e:
        raise AssetEncodingError("PNG", str(e)) from e
    return buffer.getvalue()


def export_png(template: Template, file_name: str, scale: float = 1.0) -> ExportArtifact:
    """导出 PNG 图像.

    Args:
        template: 模板
        file_name: 文件名，缺少时补全 ``.png``
        scale: 缩放倍数，小于 1 时按 1 处理

    Returns:
        PNG 产物
    """
    snapshot = template.snapshot()
    image = render_template(snapshot, scale)
    data = _encode_png(image)
    logger.info(f"导出 PNG: {snapshot.name} {image.width}x{image.height}, {len(data)} 字节")
    return ExportArtifact(data, ensure_extension(file_name, "png"), PNG_MIME_TYPE)


def export_layout(template: Template, file_name: str) -> ExportArtifact:
    """导出布局 JSON.

    仅包含 id、name、width、height、background、showGrid、elements 字段，
    两空格缩进，保留非 ASCII 字符。

    Args:
        template: 模板
        file_name: 文件名，缺少时补全 ``.json``

    Returns:
        JSON 产物
    """
    data = template.snapshot().to_json(indent=2).encode("utf-8")
    logger.info(f"导出布局: {template.name}, {template.element_count} 个元素")
    return ExportArtifact(data, ensure_extension(file_name, "json"), JSON_MIME_TYPE)


def parse_layout(content: str | bytes) -> Template:
    """解析布局 JSON.

    Args:
        content: JSON 文本或字节

    Returns:
        模板

    Raises:
        LayoutParseError: JSON 格式错误或字段不合法
    """
    if isinstance(content, bytes):
        try:
            content = content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise LayoutParseError(f"布局文件不是有效的 UTF-8: {e}") from e
    try:
        payload = json.loads(content)
    except json.JSONDecodeError as e:
        raise LayoutParseError(f"JSON 格式错误: 第 {e.lineno} 行第 {e.colno} 列, {e.msg}") from e
    if not isinstance(payload, dict):
        raise LayoutParseError(f"布局根节点必须是对象，实际: {type(payload).__name__}")

    try:
        return Template.model_validate(payload)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise LayoutParseError(f"布局字段无效 ({location}): {first['msg']}") from e


def export_pdf(template: Template, file_name: str, options: PrintOptions) -> ExportArtifact:
    """导出拼版 PDF.

    参数先全部校验，模板只渲染一次、嵌入一次，再按拼版结果放置到各页。

    Args:
        template: 模板
        file_name: 文件名，缺少时补全 ``.pdf``
        options: 拼版选项

    Returns:
        PDF 产物

    Raises:
        InvalidExportParametersError: 拼版参数无效
        AssetEncodingError: PDF 生成失败
    """
    snapshot = template.snapshot()
    layout = compute_print_layout(snapshot.width, snapshot.height, options)

    image = render_template(snapshot, normalize_scale(options.scale))
    image_reader = reportlab.lib.utils.ImageReader(image)

    buffer = io.BytesIO()
    try:
        pdf = reportlab.pdfgen.canvas.Canvas(buffer, pagesize=(layout.page_width, layout.page_height))
        pdf.setTitle(snapshot.name)
        pdf.setCreator(APP_NAME)
        for page in layout.pages:
            for placed in page:
                pdf.drawImage(
                    image_reader,
                    placed.x,
                    placed.y,
                    width=placed.width,
                    height=placed.height,
                    mask="auto",
                    preserveAspectRatio=False,
                    anchor="sw",
                )
            pdf.showPage()
        pdf.save()
    except (OSError, ValueError) as e:
        raise AssetEncodingError("PDF", str(e)) from e

    data = buffer.getvalue()
    logger.info(
        f"导出 PDF: {snapshot.name}, {layout.copy_count} 份 / {layout.page_count} 页 "
        f"({options.page_size}), {len(data)} 字节"
    )
    return ExportArtifact(data, ensure_extension(file_name, "pdf"), PDF_MIME_TYPE)


def save_artifact(artifact: ExportArtifact, directory: Path | str, file_name: Optional[str] = None) -> Path:
    """把产物原子写入目录.

    Args:
        artifact: 导出产物
        directory: 目标目录
        file_name: 覆盖产物自带的文件名

    Returns:
        写入的文件路径
    """
    target = Path(directory) / (file_name or artifact.file_name)
    path = write_bytes_atomic(target, artifact.data)
    logger.info(f"已保存: {path}")
    return path
