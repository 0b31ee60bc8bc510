"""模板导出服务单元测试."""

import io
import json
import math
import re

import pytest
from PIL import Image

from cardforge.models.template_config import Template
from cardforge.services import template_exporter
from cardforge.services.template_exporter import (
    ExportArtifact,
    PrintOptions,
    compute_print_layout,
    export_layout,
    export_pdf,
    export_png,
    parse_layout,
    save_artifact,
)
from cardforge.utils.exceptions import InvalidExportParametersError, LayoutParseError
from cardforge.utils.helpers import mm_to_points

pytestmark = pytest.mark.usefixtures("isolated_config")


@pytest.fixture
def count_renders(monkeypatch):
    """记录导出过程中渲染调用次数."""
    calls = []
    original = template_exporter.render_template

    def _render(template, scale=1.0):
        calls.append(scale)
        return original(template, scale)

    monkeypatch.setattr(template_exporter, "render_template", _render)
    return calls


# ===================
# 拼版计算测试
# ===================


class TestComputePrintLayout:
    """测试拼版计算."""

    def test_five_copies_two_by_two(self):
        """5 份、2x2、A4：两页，第一页 4 份，第二页 1 份."""
        layout = compute_print_layout(600, 800, PrintOptions(copies=5, columns=2, rows=2))
        assert layout.page_count == 2
        assert [len(page) for page in layout.pages] == [4, 1]
        last = layout.pages[1][0]
        assert (last.index, last.row, last.column) == (4, 0, 0)
        assert (layout.page_width, layout.page_height) == (595.28, 841.89)

    @pytest.mark.parametrize(
        ("copies", "columns", "rows"),
        [(1, 1, 1), (9, 3, 3), (10, 3, 3), (7, 2, 5), (25, 4, 2)],
    )
    def test_page_and_copy_counts(self, copies, columns, rows):
        """页数为 ceil(份数/每页份数)，总放置数等于份数."""
        layout = compute_print_layout(630, 880, PrintOptions(copies=copies, columns=columns, rows=rows))
        assert layout.page_count == math.ceil(copies / (columns * rows))
        assert layout.copy_count == copies
        assert [c.index for page in layout.pages for c in page] == list(range(copies))

    @pytest.mark.parametrize(("width", "height"), [(600, 800), (1600, 200), (200, 1600), (500, 500)])
    def test_aspect_ratio_preserved(self, width, height):
        """等比缩放."""
        layout = compute_print_layout(width, height, PrintOptions(copies=4, columns=2, rows=2))
        for placed in layout.pages[0]:
            assert placed.width / placed.height == pytest.approx(width / height)

    def test_copies_fit_inside_cells(self):
        """每份都位于自己的单元格内."""
        options = PrintOptions(copies=6, columns=3, rows=2, page_size="Letter", margin_mm=5)
        layout = compute_print_layout(600, 800, options)
        margin = mm_to_points(5)
        cell_w = (612 - margin * 2) / 3
        cell_h = (792 - margin * 2) / 2
        for placed in layout.pages[0]:
            left = margin + placed.column * cell_w
            top = 792 - margin - placed.row * cell_h
            assert placed.x >= left - 1e-6
            assert placed.x + placed.width <= left + cell_w + 1e-6
            assert placed.y + placed.height <= top + 1e-6
            assert placed.y >= top - cell_h - 1e-6

    def test_first_row_at_top(self):
        """第一行在页面顶部（PDF 原点在左下角）."""
        layout = compute_print_layout(600, 800, PrintOptions(copies=4, columns=2, rows=2))
        first, _, third, _ = layout.pages[0]
        assert first.row == 0 and third.row == 1
        assert first.y > third.y

    def test_single_copy_centered(self):
        """单份居中放置."""
        layout = compute_print_layout(100, 100, PrintOptions(copies=1, columns=1, rows=1, margin_mm=0))
        placed = layout.pages[0][0]
        assert placed.width == pytest.approx(595.28)
        assert placed.x == pytest.approx(0)
        assert placed.y == pytest.approx((841.89 - 595.28) / 2)

    def test_negative_margin_treated_as_zero(self):
        """负边距按 0 处理."""
        negative = compute_print_layout(100, 100, PrintOptions(copies=1, columns=1, rows=1, margin_mm=-5))
        zero = compute_print_layout(100, 100, PrintOptions(copies=1, columns=1, rows=1, margin_mm=0))
        assert negative.pages == zero.pages

    @pytest.mark.parametrize(
        "options",
        [
            PrintOptions(copies=0, columns=2, rows=2),
            PrintOptions(copies=3, columns=0, rows=2),
            PrintOptions(copies=3, columns=2, rows=-1),
            PrintOptions(copies=3, columns=2, rows=2, page_size="A3"),
            PrintOptions(copies=3, columns=2, rows=2, margin_mm=150),
        ],
    )
    def test_invalid_options(self, options):
        """无效参数."""
        with pytest.raises(InvalidExportParametersError):
            compute_print_layout(600, 800, options)


# ===================
# PDF 导出测试
# ===================


class TestExportPdf:
    """测试 PDF 导出."""

    def test_export(self, full_template, count_renders):
        """生成 PDF，模板只渲染一次."""
        artifact = export_pdf(full_template, "cards", PrintOptions(copies=5, columns=2, rows=2, scale=1))
        assert artifact.data.startswith(b"%PDF")
        assert artifact.file_name == "cards.pdf"
        assert artifact.mime_type == "application/pdf"
        assert count_renders == [1]
        assert len(re.findall(rb"/Type /Page\b", artifact.data)) == 2

    def test_invalid_columns_renders_nothing(self, full_template, count_renders):
        """列数为 0 时直接报错，不渲染."""
        with pytest.raises(InvalidExportParametersError):
            export_pdf(full_template, "cards", PrintOptions(copies=5, columns=0, rows=2))
        assert count_renders == []

    def test_keeps_existing_extension(self, full_template):
        """已有扩展名不重复添加."""
        artifact = export_pdf(full_template, "cards.pdf", PrintOptions(copies=1, columns=1, rows=1, scale=1))
        assert artifact.file_name == "cards.pdf"


# ===================
# PNG 与布局导出测试
# ===================


class TestExportPng:
    """测试 PNG 导出."""

    def test_export(self, full_template):
        """导出 PNG，缩放小于 1 按 1 处理."""
        artifact = export_png(full_template, "card", scale=0.5)
        assert artifact.file_name == "card.png"
        assert artifact.mime_type == "image/png"
        image = Image.open(io.BytesIO(artifact.data))
        assert image.format == "PNG"
        assert image.size == (600, 800)

    def test_scale(self, canvas_template):
        """缩放 2 倍."""
        image = Image.open(io.BytesIO(export_png(canvas_template, "x", scale=2).data))
        assert image.size == (200, 100)


@pytest.fixture
def canvas_template():
    """100x50 的空模板."""
    return Template(width=100, height=50, background="#336699")


class TestExportLayout:
    """测试布局导出与解析."""

    def test_fields(self, full_template):
        """只包含布局字段."""
        artifact = export_layout(full_template, "layout")
        assert artifact.file_name == "layout.json"
        payload = json.loads(artifact.data.decode("utf-8"))
        assert set(payload) == {"id", "name", "width", "height", "background", "showGrid", "elements"}
        assert [e["type"] for e in payload["elements"]] == ["rectangle", "text", "image"]

    def test_formatting(self, full_template):
        """两空格缩进，保留中文."""
        text = export_layout(full_template, "layout").data.decode("utf-8")
        assert '\n  "id": "tpl-full"' in text
        assert "法术卡" in text

    def test_round_trip(self, full_template):
        """导出再解析得到相同模板."""
        assert parse_layout(export_layout(full_template, "layout").data) == full_template

    def test_parse_accepts_text(self, full_template):
        """接受字符串输入."""
        assert parse_layout(full_template.to_json()).id == "tpl-full"

    @pytest.mark.parametrize(
        "content",
        [
            b"{not json",
            b"[]",
            b"\xff\xfe",
            '{"width": -1}',
            '{"elements": [{"type": "circle"}]}',
            '{"elements": [{"type": "text", "id": "a"}, {"type": "text", "id": "a"}]}',
            '{"background": "bogus"}',
        ],
    )
    def test_parse_errors(self, content):
        """无效布局."""
        with pytest.raises(LayoutParseError) as exc_info:
            parse_layout(content)
        assert exc_info.value.code == "LAYOUT_PARSE_ERROR"


# ===================
# 保存测试
# ===================


class TestSaveArtifact:
    """测试产物落盘."""

    def test_save(self, tmp_path):
        """写入目标目录."""
        artifact = ExportArtifact(b"hello", "a.json", "application/json")
        path = save_artifact(artifact, tmp_path / "out")
        assert path == tmp_path / "out" / "a.json"
        assert path.read_bytes() == b"hello"
        assert [p.name for p in path.parent.iterdir()] == ["a.json"]

    def test_save_with_name_override(self, tmp_path):
        """覆盖文件名."""
        artifact = ExportArtifact(b"x", "a.json", "application/json")
        assert save_artifact(artifact, tmp_path, "b.json").name == "b.json"

    def test_overwrite(self, tmp_path):
        """覆盖已有文件."""
        save_artifact(ExportArtifact(b"old", "a.png", "image/png"), tmp_path)
        path = save_artifact(ExportArtifact(b"new", "a.png", "image/png"), tmp_path)
        assert path.read_bytes() == b"new"
