"""Pytest 配置和共享 fixtures."""

from pathlib import Path
from typing import Callable, Generator

import pytest

from cardforge.core.config_manager import config_manager
from cardforge.models.template_config import (
    ImageElement,
    RectangleElement,
    Template,
    TextElement,
)
from cardforge.services.template_renderer import reset_renderer


@pytest.fixture
def template() -> Template:
    """返回 600x800 的空模板."""
    return Template(id="tpl-1", name="测试模板", width=600, height=800, background="#000000")


@pytest.fixture
def rect() -> RectangleElement:
    """返回位于 (50, 50) 的 200x100 矩形."""
    return RectangleElement(id="rect-1", name="矩形 1", x=50, y=50, width=200, height=100)


@pytest.fixture
def full_template(rect: RectangleElement) -> Template:
    """返回包含三种元素的模板."""
    return Template(
        id="tpl-full",
        name="法术卡",
        width=600,
        height=800,
        background="rgba(15, 23, 42, 1)",
        show_grid=False,
        elements=[
            rect,
            TextElement(
                id="text-1",
                name="标题",
                x=40,
                y=200,
                width=300,
                height=120,
                text="火球术\n造成 3 点伤害",
                font_size=28,
                rotation=12.5,
            ),
            ImageElement(id="image-1", name="插画", x=100, y=400, width=240, height=200, placeholder=None),
        ],
    )


@pytest.fixture
def char_measure() -> Callable[[str], float]:
    """每个字符宽 12 个单位的测量函数."""
    return lambda text: len(text) * 12.0


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[Path, None, None]:
    """隔离全局配置：导出与模板库目录指向临时目录."""
    for name in ("CARDFORGE_OUTPUT_DIR", "CARDFORGE_TEMPLATES_DIR", "CARDFORGE_FONTS_DIR", "CARDFORGE_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    config_manager.reload()
    config_manager.override(output_dir=tmp_path / "exports", templates_dir=tmp_path / "templates")
    reset_renderer()
    yield tmp_path
    config_manager.reload()
    reset_renderer()
