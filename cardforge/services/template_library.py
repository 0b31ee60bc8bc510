"""本地模板库服务.

把模板保存为布局 JSON 文件，提供列表、加载、复制、重命名、导入导出
和预设模板。

Features:
    - 保存模板到本地文件（.template.json，原子写入）
    - 按 ID 加载模板
    - 模板列表（元数据，按修改时间倒序）
    - 模板复制、重命名、删除
    - 导入导出布局文件
    - 预设卡牌模板（只读）
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from cardforge.core.geometry import normalize_template
from cardforge.models.template_config import (
    ImageElement,
    RectangleElement,
    Template,
    TextAlign,
    TextElement,
    generate_element_id,
)
from cardforge.services.template_exporter import parse_layout
from cardforge.utils.exceptions import LayoutParseError
from cardforge.utils.file_utils import ensure_directory, write_bytes_atomic
from cardforge.utils.logger import setup_logger

logger = setup_logger(__name__)


# ===================
# 常量定义
# ===================

# 模板文件扩展名
TEMPLATE_EXTENSION = ".template.json"

# 预设模板目录名
PRESET_TEMPLATES_DIR = "presets"


# ===================
# 模板元数据
# ===================


@dataclass
class TemplateMetadata:
    """模板元数据.

    用于模板列表显示，不包含元素数据。
    """

    id: str
    name: str
    width: float
    height: float
    element_count: int = 0
    is_preset: bool = False
    file_path: str = ""
    modified_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_template(cls, template: Template, file_path: Path, is_preset: bool = False) -> "TemplateMetadata":
        """从模板创建元数据."""
        return cls(
            id=template.id,
            name=template.name,
            width=template.width,
            height=template.height,
            element_count=template.element_count,
            is_preset=is_preset,
            file_path=str(file_path),
            modified_at=datetime.fromtimestamp(file_path.stat().st_mtime),
        )


# ===================
# 模板库
# ===================


class TemplateLibrary:
    """本地模板库.

    Example:
        >>> library = TemplateLibrary(tmp_path)
        >>> library.save_template(template)
        >>> loaded = library.load_template(template.id)
    """

    def __init__(self, templates_dir: Optional[Path | str] = None) -> None:
        """初始化模板库.

        Args:
            templates_dir: 模板存储目录，默认取设置中的模板库目录
        """
        if templates_dir is None:
            from cardforge.core.config_manager import get_settings

            templates_dir = get_settings().library_dir
        self._templates_dir = Path(templates_dir)
        self._presets_dir = self._templates_dir / PRESET_TEMPLATES_DIR

        ensure_directory(self._templates_dir)
        ensure_directory(self._presets_dir)
        self._init_presets()

    @property
    def templates_dir(self) -> Path:
        """模板目录."""
        return self._templates_dir

    @property
    def presets_dir(self) -> Path:
        """预设模板目录."""
        return self._presets_dir

    def _init_presets(self) -> None:
        """首次使用时写入预设模板."""
        if any(self._presets_dir.glob(f"*{TEMPLATE_EXTENSION}")):
            return
        for preset in create_preset_templates():
            self._save_to_file(preset, self._presets_dir)
            logger.info(f"创建预设模板: {preset.name}")

    def _get_template_path(self, template_id: str, is_preset: bool = False) -> Path:
        directory = self._presets_dir if is_preset else self._templates_dir
        return directory / f"{template_id}{TEMPLATE_EXTENSION}"

    def _save_to_file(self, template: Template, directory: Path) -> Path:
        file_path = directory / f"{template.id}{TEMPLATE_EXTENSION}"
        return write_bytes_atomic(file_path, template.to_json().encode("utf-8"))

    def _load_from_file(self, file_path: Path) -> Optional[Template]:
        try:
            return normalize_template(parse_layout(file_path.read_bytes()))
        except (OSError, LayoutParseError) as e:
            logger.error(f"加载模板失败: {file_path}, 错误: {e}")
            return None

    def is_preset(self, template_id: str) -> bool:
        """是否为预设模板."""
        return self._get_template_path(template_id, is_preset=True).exists()

    # ===================
    # 公共方法
    # ===================

    def save_template(self, template: Template) -> bool:
        """保存模板.

        Args:
            template: 模板

        Returns:
            是否保存成功，预设模板不能被覆盖
        """
        if self.is_preset(template.id):
            logger.warning(f"预设模板不能被覆盖: {template.name}")
            return False
        self._save_to_file(template.snapshot(), self._templates_dir)
        logger.info(f"模板已保存: {template.name}")
        return True

    def save_template_as(self, template: Template, new_name: str) -> Template:
        """另存为新模板（新 ID）.

        Args:
            template: 原模板
            new_name: 新名称

        Returns:
            新模板
        """
        new_template = template.model_copy(
            update={"id": generate_element_id(), "name": new_name},
            deep=True,
        )
        self._save_to_file(new_template, self._templates_dir)
        logger.info(f"模板另存为: {new_name}")
        return new_template

    def load_template(self, template_id: str) -> Optional[Template]:
        """加载模板，先查用户模板再查预设.

        Args:
            template_id: 模板 ID

        Returns:
            模板，不存在返回 None
        """
        for is_preset in (False, True):
            path = self._get_template_path(template_id, is_preset)
            if path.exists():
                return self._load_from_file(path)

        logger.warning(f"模板不存在: {template_id}")
        return None

    def delete_template(self, template_id: str) -> bool:
        """删除用户模板.

        Returns:
            是否删除成功，预设模板不能删除
        """
        if self.is_preset(template_id):
            logger.warning("不能删除预设模板")
            return False

        path = self._get_template_path(template_id)
        if not path.exists():
            return False
        path.unlink()
        logger.info(f"模板已删除: {template_id}")
        return True

    def rename_template(self, template_id: str, new_name: str) -> bool:
        """重命名用户模板."""
        if self.is_preset(template_id):
            logger.warning("不能重命名预设模板")
            return False
        template = self.load_template(template_id)
        if template is None:
            return False
        return self.save_template(template.model_copy(update={"name": new_name}))

    def duplicate_template(self, template_id: str) -> Optional[Template]:
        """复制模板（预设模板也可复制）."""
        template = self.load_template(template_id)
        if template is None:
            return None
        return self.save_template_as(template, f"{template.name} - 副本")

    def list_templates(self, include_presets: bool = True) -> list[TemplateMetadata]:
        """获取模板列表.

        损坏的文件会被跳过并记录错误日志。

        Args:
            include_presets: 是否包含预设模板

        Returns:
            模板元数据列表（按修改时间倒序，预设排在最后）
        """
        result: list[TemplateMetadata] = []
        for file_path in self._templates_dir.glob(f"*{TEMPLATE_EXTENSION}"):
            template = self._load_from_file(file_path)
            if template:
                result.append(TemplateMetadata.from_template(template, file_path))
        result.sort(key=lambda m: m.modified_at, reverse=True)

        if include_presets:
            presets = []
            for file_path in self._presets_dir.glob(f"*{TEMPLATE_EXTENSION}"):
                template = self._load_from_file(file_path)
                if template:
                    presets.append(TemplateMetadata.from_template(template, file_path, is_preset=True))
            result.extend(sorted(presets, key=lambda m: m.name))
        return result

    def export_template(self, template_id: str, export_path: Path | str) -> bool:
        """导出模板布局到指定路径."""
        template = self.load_template(template_id)
        if template is None:
            return False
        write_bytes_atomic(Path(export_path), template.to_json().encode("utf-8"))
        logger.info(f"模板已导出: {export_path}")
        return True

    def import_template(self, import_path: Path | str) -> Template:
        """从布局文件导入模板，分配新 ID 避免冲突.

        Raises:
            LayoutParseError: 文件内容不是有效布局
            OSError: 文件无法读取
        """
        template = normalize_template(parse_layout(Path(import_path).read_bytes()))
        template = template.model_copy(update={"id": generate_element_id()})
        self._save_to_file(template, self._templates_dir)
        logger.info(f"模板已导入: {template.name}")
        return template


# ===================
# 预设模板
# ===================


def create_preset_templates() -> list[Template]:
    """创建预设卡牌模板集合（10 像素/毫米）."""
    presets = []

    # 1. 扑克牌 63x88mm
    poker = Template(id="preset-poker", name="扑克牌", width=630, height=880, background="#0f172a")
    poker.elements = [
        RectangleElement(
            name="边框", x=20, y=20, width=590, height=840,
            fill="transparent", border_color="#f59e0b", border_width=6, border_radius=28, opacity=1,
        ),
        TextElement(name="标题", x=60, y=50, width=510, height=90, text="卡牌名称", font_size=44),
        ImageElement(name="插画", x=60, y=160, width=510, height=380),
        RectangleElement(
            name="描述底板", x=60, y=570, width=510, height=250,
            fill="#1e293b", border_width=0, border_radius=16, opacity=0.9,
        ),
        TextElement(
            name="描述", x=80, y=590, width=470, height=210,
            text="在这里填写卡牌效果描述", font_size=24, font_weight=400, align=TextAlign.LEFT,
        ),
    ]
    presets.append(poker)

    # 2. 塔罗牌 69x119mm
    tarot = Template(id="preset-tarot", name="塔罗牌", width=690, height=1190, background="#1e1b4b")
    tarot.elements = [
        ImageElement(name="主图", x=45, y=45, width=600, height=950, stroke_color="#c4b5fd"),
        RectangleElement(
            name="名牌", x=95, y=1020, width=500, height=120,
            fill="#312e81", border_color="#c4b5fd", border_width=3, border_radius=60, opacity=1,
        ),
        TextElement(name="名称", x=95, y=1020, width=500, height=120, text="星辰", font_size=48),
    ]
    presets.append(tarot)

    # 3. 迷你卡 44x67mm
    mini = Template(id="preset-mini", name="迷你卡", width=440, height=670, background="#f8fafc", show_grid=False)
    mini.elements = [
        RectangleElement(name="顶栏", x=0, y=0, width=440, height=110, fill="#dc2626", border_radius=0, opacity=1),
        TextElement(name="标题", x=20, y=10, width=400, height=90, text="资源", font_size=36, color="#ffffff"),
        TextElement(
            name="数值", x=20, y=200, width=400, height=260,
            text="3", font_size=160, font_weight=800, color="#0f172a",
        ),
    ]
    presets.append(mini)

    return [normalize_template(p) for p in presets]
