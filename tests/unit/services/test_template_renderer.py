"""模板渲染器单元测试."""

import pytest
from PIL import Image

from cardforge.models.template_config import (
    ImageElement,
    RectangleElement,
    Template,
    TextAlign,
    TextElement,
)
from cardforge.services.template_renderer import (
    FontProvider,
    TemplateRenderer,
    find_font,
    layout_text,
    measure_text,
    normalize_scale,
    placeholder_font_size,
    wrap_text,
)
from cardforge.utils.exceptions import InvalidGeometryError, SurfaceUnavailableError

BLACK = (0, 0, 0, 255)
GREEN = (0, 255, 0, 255)
RED = (255, 0, 0, 255)


# ===================
# Fixtures
# ===================


@pytest.fixture
def renderer():
    """创建渲染器实例."""
    return TemplateRenderer(FontProvider())


@pytest.fixture
def canvas():
    """100x100 黑色画布模板."""
    return Template(width=100, height=100, background="#000000")


def solid_rect(**kwargs) -> RectangleElement:
    """不带圆角与描边的纯绿矩形."""
    values = {"fill": "#00ff00", "opacity": 1, "border_radius": 0, "border_width": 0}
    values.update(kwargs)
    return RectangleElement(**values)


# ===================
# 文字换行测试
# ===================


class TestWrapText:
    """测试贪心换行."""

    def test_lines_fit_width(self, char_measure):
        """每行都不超过行宽，除非该行只有一个词."""
        lines = wrap_text("Hello world this is a test", 84, char_measure)
        assert len(lines) > 1
        for line in lines:
            assert char_measure(line) <= 84 or " " not in line
        assert lines == ["Hello", "world", "this is", "a test"]

    def test_long_word_gets_own_line(self, char_measure):
        """超长单词独占一行."""
        assert wrap_text("a extraordinarily b", 60, char_measure) == ["a", "extraordinarily", "b"]

    def test_empty_text(self, char_measure):
        """空文本没有行."""
        assert wrap_text("", 100, char_measure) == []

    def test_explicit_newlines_and_blank_paragraph(self, char_measure):
        """显式换行保留空行."""
        assert wrap_text("one\n\ntwo\r\nthree", 200, char_measure) == ["one", "", "two", "three"]

    def test_non_positive_width_returns_paragraphs(self, char_measure):
        """行宽非正时按段落返回，不再拆分."""
        assert wrap_text("a b c\nd e", 0, char_measure) == ["a b c", "d e"]

    def test_collapses_whitespace(self, char_measure):
        """多个空白视为一个分隔."""
        assert wrap_text("a    b\tc", 1000, char_measure) == ["a b c"]


class TestLayoutText:
    """测试文字块排版."""

    def test_vertically_centered(self, char_measure):
        """内容较矮时垂直居中."""
        element = TextElement(width=200, height=100, text="Hi", font_size=20)
        result = layout_text(element, char_measure)
        assert result.lines == ["Hi"]
        assert result.line_height == pytest.approx(24)
        assert result.start_y == pytest.approx(8 + (84 - 24) / 2)
        assert result.anchor_x == 100
        assert result.anchor == "ma"

    def test_overflow_starts_at_padding(self, char_measure):
        """内容超高时从顶部内边距开始."""
        element = TextElement(width=100, height=40, text="aa bb cc dd", font_size=20)
        result = layout_text(element, char_measure)
        assert result.content_height > 24
        assert result.start_y == 8

    @pytest.mark.parametrize(
        ("align", "anchor_x", "anchor"),
        [(TextAlign.LEFT, 8, "la"), (TextAlign.RIGHT, 192, "ra")],
    )
    def test_alignment(self, char_measure, align, anchor_x, anchor):
        """水平对齐锚点."""
        element = TextElement(width=200, height=100, text="x", align=align)
        result = layout_text(element, char_measure)
        assert (result.anchor_x, result.anchor) == (anchor_x, anchor)

    def test_wrap_width_excludes_padding(self, char_measure):
        """换行宽度为元素宽度减去两侧内边距."""
        element = TextElement(width=100, height=300, text="Hello world this is a test")
        result = layout_text(element, char_measure)
        assert result.lines == ["Hello", "world", "this is", "a test"]


class TestHelpers:
    """测试辅助函数."""

    @pytest.mark.parametrize(("height", "expected"), [(30, 12), (90, 15), (600, 18)])
    def test_placeholder_font_size(self, height, expected):
        """占位文字字号为高度六分之一并限制在 12-18."""
        assert placeholder_font_size(height) == expected

    @pytest.mark.parametrize(("scale", "expected"), [(0.5, 1), (2, 2), (float("nan"), 1), (None, 1)])
    def test_normalize_scale(self, scale, expected):
        """缩放小于 1 时取 1."""
        assert normalize_scale(scale) == expected


# ===================
# 字体测试
# ===================


class TestFonts:
    """测试字体查找与缓存."""

    def test_find_font_falls_back(self):
        """找不到字体时回退到可用字体."""
        font = find_font("No Such Font Family", 24)
        assert measure_text(font, "abc") > 0

    def test_provider_caches(self):
        """相同参数返回同一字体对象."""
        provider = FontProvider()
        first = provider.get("Inter", 20, 600, "abc")
        assert provider.get("Inter", 20, 600, "xyz") is first

    def test_ensure_ready_counts_visible(self, full_template):
        """预加载可见的文字与图片元素字体."""
        provider = FontProvider()
        assert provider.ensure_ready(full_template) == 2
        full_template.elements[1].visible = False
        assert provider.ensure_ready(full_template) == 1


# ===================
# 渲染测试
# ===================


class TestRenderSurface:
    """测试绘图表面."""

    def test_background(self, renderer):
        """背景色填满画布."""
        result = renderer.render(Template(width=100, height=50, background="#ff0000"))
        assert result.size == (100, 50)
        assert result.mode == "RGBA"
        assert result.getpixel((10, 10)) == RED

    def test_scale(self, renderer, canvas):
        """缩放倍数决定输出尺寸，小于 1 按 1 处理."""
        assert renderer.render(canvas, scale=2).size == (200, 200)
        assert renderer.render(canvas, scale=0.5).size == (100, 100)

    def test_surface_size_rounding(self, renderer):
        """尺寸四舍五入."""
        assert renderer.surface_size(Template(width=100.4, height=50.6), 1) == (100, 51)

    def test_surface_size_rounds_half_up(self, renderer):
        """.5 向上进位."""
        assert renderer.surface_size(Template(width=100.5, height=50.5), 1) == (101, 51)

    def test_transparent_background(self, renderer):
        """透明背景."""
        result = renderer.render(Template(width=50, height=50, background="transparent"))
        assert result.getpixel((5, 5))[3] == 0

    def test_invalid_geometry(self, renderer, canvas):
        """越界元素拒绝渲染."""
        canvas.elements = [solid_rect(x=90, width=50, height=50)]
        with pytest.raises(InvalidGeometryError):
            renderer.render(canvas)

    def test_surface_too_large(self, renderer):
        """超大画布无法分配."""
        with pytest.raises(SurfaceUnavailableError) as exc_info:
            renderer.render(Template(width=20000, height=20000))
        assert exc_info.value.code == "SURFACE_UNAVAILABLE"


class TestRenderRectangle:
    """测试矩形渲染."""

    def test_fill(self, renderer, canvas):
        """矩形填充."""
        canvas.elements = [solid_rect(x=20, y=10, width=40, height=20)]
        result = renderer.render(canvas)
        assert result.getpixel((40, 20)) == GREEN
        assert result.getpixel((5, 5)) == BLACK
        assert result.getpixel((40, 50)) == BLACK

    def test_scaled_fill(self, renderer, canvas):
        """缩放后位置按比例放大."""
        canvas.elements = [solid_rect(x=20, y=10, width=40, height=20)]
        result = renderer.render(canvas, scale=2)
        assert result.getpixel((80, 40)) == GREEN
        assert result.getpixel((30, 30)) == BLACK

    def test_opacity(self, renderer, canvas):
        """不透明度作用于填充."""
        canvas.elements = [solid_rect(x=20, y=20, width=40, height=40, opacity=0.5)]
        r, g, b, a = renderer.render(canvas).getpixel((40, 40))
        assert r == 0 and b == 0
        assert 120 <= g <= 135
        assert a == 255

    def test_hidden_element_skipped(self, renderer, canvas):
        """不可见元素不绘制."""
        canvas.elements = [solid_rect(x=20, y=20, width=40, height=40, visible=False)]
        assert renderer.render(canvas).getpixel((40, 40)) == BLACK

    def test_draw_order(self, renderer, canvas):
        """后面的元素覆盖前面的元素."""
        canvas.elements = [
            solid_rect(x=20, y=20, width=40, height=40),
            solid_rect(x=30, y=30, width=40, height=40, fill="#ff0000"),
        ]
        result = renderer.render(canvas)
        assert result.getpixel((50, 50)) == RED
        assert result.getpixel((25, 25)) == GREEN

    def test_rotation(self, renderer, canvas):
        """绕中心旋转 90 度."""
        canvas.elements = [solid_rect(x=20, y=40, width=60, height=20, rotation=90)]
        result = renderer.render(canvas)
        assert result.getpixel((50, 25)) == GREEN
        assert result.getpixel((50, 75)) == GREEN
        assert result.getpixel((25, 50)) == BLACK
        assert result.getpixel((75, 50)) == BLACK

    def test_border_bleeds_outside(self, renderer, canvas):
        """描边以轮廓为中心，外半部分超出元素框."""
        canvas.elements = [
            solid_rect(x=20, y=20, width=40, height=40, fill="transparent", border_color="#ff0000", border_width=10)
        ]
        result = renderer.render(canvas)
        assert result.getpixel((16, 40)) == RED
        assert result.getpixel((23, 40)) == RED
        assert result.getpixel((40, 40)) == BLACK

    def test_fully_transparent_is_noop(self, renderer, canvas):
        """完全透明的矩形不改变画面."""
        canvas.elements = [solid_rect(x=20, y=20, width=40, height=40, fill="transparent")]
        result = renderer.render(canvas)
        assert result.getcolors() == [(100 * 100, BLACK)]


class TestRenderText:
    """测试文字渲染."""

    def test_text_is_drawn(self, renderer, canvas):
        """文字在元素框内绘制."""
        canvas.elements = [
            TextElement(x=10, y=10, width=80, height=80, text="WW", font_size=40, color="#ffffff")
        ]
        result = renderer.render(canvas)
        inside = result.crop((10, 10, 90, 90))
        assert any(pixel != BLACK for pixel in inside.getdata())

    def test_text_clipped_to_box(self, renderer, canvas):
        """溢出的文字被裁剪在元素框内."""
        canvas.elements = [
            TextElement(x=30, y=30, width=40, height=40, text="WWWW", font_size=80, color="#ffffff")
        ]
        result = renderer.render(canvas)
        for box in [(0, 0, 100, 30), (0, 70, 100, 100), (0, 0, 30, 100), (70, 0, 100, 100)]:
            assert result.crop(box).getcolors() == [((box[2] - box[0]) * (box[3] - box[1]), BLACK)]

    def test_empty_text_is_noop(self, renderer, canvas):
        """空文本不绘制."""
        canvas.elements = [TextElement(x=10, y=10, width=80, height=80, text="")]
        assert renderer.render(canvas).getcolors() == [(100 * 100, BLACK)]


class TestRenderImagePlaceholder:
    """测试图片占位渲染."""

    def test_background_and_stroke(self, renderer, canvas):
        """背景与内描边."""
        canvas.elements = [
            ImageElement(
                x=10, y=10, width=80, height=80,
                background="#112233", stroke_color="#ff0000", stroke_width=4,
            )
        ]
        result = renderer.render(canvas)
        assert result.getpixel((11, 11)) == RED
        assert result.getpixel((16, 16)) == (0x11, 0x22, 0x33, 255)
        assert result.getpixel((5, 5)) == BLACK

    def test_without_stroke(self, renderer, canvas):
        """描边宽度为 0 时不画描边."""
        canvas.elements = [
            ImageElement(x=10, y=10, width=80, height=80, background="#112233", stroke_width=0)
        ]
        assert renderer.render(canvas).getpixel((10, 10)) == (0x11, 0x22, 0x33, 255)

    def test_label_is_drawn(self, renderer, canvas):
        """占位文字绘制在中心区域."""
        canvas.elements = [
            ImageElement(x=0, y=0, width=100, height=100, background="#000000", stroke_width=0, placeholder="IMG")
        ]
        center = renderer.render(canvas).crop((20, 35, 80, 65))
        assert any(pixel != BLACK for pixel in center.getdata())

    def test_empty_label_not_replaced(self, renderer, canvas):
        """显式空文字不回退为默认文字."""
        canvas.elements = [
            ImageElement(x=0, y=0, width=100, height=100, background="#000000", stroke_width=0, placeholder="")
        ]
        assert renderer.render(canvas).getcolors() == [(100 * 100, BLACK)]
        assert renderer.fonts.ensure_ready(canvas) == 0


class TestRenderFullTemplate:
    """测试完整模板渲染."""

    def test_render_does_not_modify_template(self, renderer, full_template):
        """渲染不修改模板."""
        before = full_template.snapshot()
        result = renderer.render(full_template, scale=1.5)
        assert full_template == before
        assert result.size == (900, 1200)
        assert isinstance(result, Image.Image)
