"""模板编辑会话.

持有当前模板、选中元素和版本号。每次修改都生成新的模板值并经过几何
归一化，导出时取快照即可，不会读到半更新的场景。

Features:
    - 添加/更新/删除/重排元素
    - 修改模板属性（画布尺寸变化会级联归一化）
    - 拖拽和缩放手势
    - 批量执行编辑指令
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional

from pydantic import ValidationError

from cardforge.core.geometry import (
    GestureMode,
    apply_element_changes,
    apply_gesture,
    normalize_element,
    normalize_template,
    resize_canvas,
)
from cardforge.models.template_config import (
    AnyElement,
    ElementType,
    ImageElement,
    RectangleElement,
    Template,
    create_element,
    parse_element,
)
from cardforge.utils.constants import MAX_CANVAS_SIZE, MIN_CANVAS_SIZE
from cardforge.utils.exceptions import ElementNotFoundError, InvalidGeometryError
from cardforge.utils.helpers import clamp
from cardforge.utils.logger import setup_logger

logger = setup_logger(__name__)


# ===================
# 属性面板输入限制
# ===================

RECT_OPACITY_RANGE = (0.05, 1.0)
RECT_BORDER_RANGE = (0.0, 200.0)
IMAGE_STROKE_RANGE = (0.0, 12.0)

# set_template 可修改的模板字段
TEMPLATE_FIELDS = {"name", "background", "show_grid", "showGrid", "width", "height"}


def clamp_property_changes(element: AnyElement, changes: Mapping[str, Any]) -> dict[str, Any]:
    """按属性面板的输入范围限制数值字段.

    Args:
        element: 目标元素
        changes: 原始修改

    Returns:
        限制后的修改
    """
    result = dict(changes)
    if isinstance(element, RectangleElement):
        for key in ("opacity",):
            if key in result:
                result[key] = clamp(float(result[key]), *RECT_OPACITY_RANGE)
        for key in ("border_width", "borderWidth", "border_radius", "borderRadius"):
            if key in result:
                result[key] = clamp(float(result[key]), *RECT_BORDER_RANGE)
    elif isinstance(element, ImageElement):
        for key in ("stroke_width", "strokeWidth"):
            if key in result:
                result[key] = clamp(float(result[key]), *IMAGE_STROKE_RANGE)
    return result


class TemplateEditor:
    """模板编辑会话.

    Attributes:
        template: 当前模板（只读视图，修改请通过编辑方法）
        selected_id: 当前选中的元素ID
        version: 修改计数，每次有效修改加一
        dirty: 是否有未保存的修改

    Example:
        >>> editor = TemplateEditor(Template(width=600, height=800))
        >>> element = editor.add_element("rectangle")
        >>> editor.move_element(element.id, (40, 0))
        >>> editor.version
        2
    """

    def __init__(self, template: Template) -> None:
        self._template = normalize_template(template)
        self._selected_id: Optional[str] = None
        self._version = 0
        self._dirty = False

    @property
    def template(self) -> Template:
        """当前模板."""
        return self._template

    @property
    def selected_id(self) -> Optional[str]:
        """选中的元素ID."""
        return self._selected_id

    @property
    def selected_element(self) -> Optional[AnyElement]:
        """选中的元素."""
        if self._selected_id is None:
            return None
        return self._template.get_element(self._selected_id)

    @property
    def version(self) -> int:
        """修改版本号."""
        return self._version

    @property
    def dirty(self) -> bool:
        """是否有未保存修改."""
        return self._dirty

    def snapshot(self) -> Template:
        """获取当前模板的独立快照."""
        return self._template.snapshot()

    def mark_saved(self) -> None:
        """标记为已保存."""
        self._dirty = False

    # ===================
    # 内部工具
    # ===================

    def _commit(self, template: Template) -> None:
        self._template = template
        self._version += 1
        self._dirty = True
        if self._selected_id is not None and template.get_element(self._selected_id) is None:
            self._selected_id = None

    def _require(self, element_id: str) -> AnyElement:
        element = self._template.get_element(element_id)
        if element is None:
            raise ElementNotFoundError(element_id)
        return element

    def _replace(self, updated: AnyElement) -> None:
        elements = [updated if e.id == updated.id else e for e in self._template.elements]
        self._commit(self._template.model_copy(update={"elements": elements}))

    # ===================
    # 选择
    # ===================

    def select(self, element_id: Optional[str]) -> None:
        """选中元素，传入 None 取消选择.

        Raises:
            ElementNotFoundError: 元素不存在
        """
        if element_id is not None:
            self._require(element_id)
        self._selected_id = element_id

    # ===================
    # 元素操作
    # ===================

    def add_element(self, kind: ElementType | str) -> AnyElement:
        """按类型添加默认元素并选中.

        Args:
            kind: 元素类型

        Returns:
            新元素
        """
        template = self._template
        element = normalize_element(create_element(kind, template), template.width, template.height)
        return self.insert_element(element)

    def insert_element(self, element: AnyElement, index: Optional[int] = None) -> AnyElement:
        """插入现有元素（归一化后）并选中.

        Args:
            element: 元素
            index: 插入位置，默认追加到最上层

        Returns:
            实际插入的元素
        """
        template = self._template
        if template.get_element(element.id) is not None:
            raise ValueError(f"元素ID已存在: {element.id}")
        element = normalize_element(element, template.width, template.height)
        elements = list(template.elements)
        position = len(elements) if index is None else int(clamp(index, 0, len(elements)))
        elements.insert(position, element)
        self._commit(template.model_copy(update={"elements": elements}))
        self._selected_id = element.id
        logger.debug(f"添加元素: {element.id} ({element.type})")
        return element

    def update_element(self, element_id: str, changes: Mapping[str, Any]) -> AnyElement:
        """修改元素属性.

        锁定只阻止拖拽和缩放手势，属性面板的修改仍然生效。

        Args:
            element_id: 元素ID
            changes: 部分字段

        Returns:
            更新后的元素
        """
        element = self._require(element_id)
        changes = clamp_property_changes(element, changes)
        updated = apply_element_changes(element, changes, self._template.width, self._template.height)
        if updated != element:
            self._replace(updated)
        return updated

    def delete_element(self, element_id: str) -> bool:
        """删除元素.

        Returns:
            是否删除成功
        """
        elements = [e for e in self._template.elements if e.id != element_id]
        if len(elements) == len(self._template.elements):
            return False
        self._commit(self._template.model_copy(update={"elements": elements}))
        logger.debug(f"删除元素: {element_id}")
        return True

    def reorder_element(self, element_id: str, index: int) -> None:
        """调整元素绘制顺序.

        Args:
            element_id: 元素ID
            index: 目标位置，超出范围时限制到首尾
        """
        current = self._template.index_of(element_id)
        if current < 0:
            raise ElementNotFoundError(element_id)
        elements = list(self._template.elements)
        element = elements.pop(current)
        target = int(clamp(index, 0, len(elements)))
        if target == current:
            return
        elements.insert(target, element)
        self._commit(self._template.model_copy(update={"elements": elements}))

    # ===================
    # 手势
    # ===================

    def move_element(self, element_id: str, delta: tuple[float, float], zoom: float = 1.0) -> AnyElement:
        """拖拽元素（以当前状态作为手势起点）."""
        return self.apply_gesture(element_id, self._require(element_id), delta, GestureMode.MOVE, zoom)

    def resize_element(self, element_id: str, delta: tuple[float, float], zoom: float = 1.0) -> AnyElement:
        """通过右下角手柄缩放元素（以当前状态作为手势起点）."""
        return self.apply_gesture(element_id, self._require(element_id), delta, GestureMode.RESIZE, zoom)

    def apply_gesture(
        self,
        element_id: str,
        start: AnyElement,
        delta: tuple[float, float],
        mode: GestureMode | str,
        zoom: float = 1.0,
    ) -> AnyElement:
        """应用一次手势步进.

        Args:
            element_id: 元素ID
            start: 手势开始时保存的元素快照
            delta: 相对手势起点的累计指针位移
            mode: 手势类型
            zoom: 编辑器缩放倍数

        Returns:
            更新后的元素
        """
        current = self._require(element_id)
        if current.locked:
            return current
        template = self._template
        updated = apply_gesture(start, delta, mode, template.width, template.height, zoom)
        if updated != current:
            self._replace(updated)
        return updated

    # ===================
    # 模板属性
    # ===================

    def set_template_fields(self, **changes: Any) -> Template:
        """修改模板属性.

        传入的画布宽高会限制在 [200, 1600]，未传入的保持原值；尺寸变化后
        所有元素重新归一化。

        Returns:
            新模板
        """
        unknown = set(changes) - TEMPLATE_FIELDS
        if unknown:
            raise ValueError(f"不支持的模板字段: {sorted(unknown)}")

        template = self._template
        if "showGrid" in changes:
            changes["show_grid"] = changes.pop("showGrid")

        width, height = template.width, template.height
        if "width" in changes:
            width = clamp(float(changes.pop("width")), MIN_CANVAS_SIZE, MAX_CANVAS_SIZE)
        if "height" in changes:
            height = clamp(float(changes.pop("height")), MIN_CANVAS_SIZE, MAX_CANVAS_SIZE)

        updated = template
        if (width, height) != (template.width, template.height):
            updated = resize_canvas(updated, width, height)
        if changes:
            data = updated.model_dump()
            data.update(changes)
            updated = Template.model_validate(data)

        if updated != template:
            self._commit(updated)
        return self._template

    # ===================
    # 编辑指令
    # ===================

    def apply_operations(self, operations: Iterable[Mapping[str, Any]]) -> int:
        """按顺序执行编辑指令.

        支持的指令类型：``add_element``、``update_element``、``delete_element``、
        ``reorder_element``、``set_template``、``focus_element``。

        Args:
            operations: 指令列表

        Returns:
            执行的指令数量

        Raises:
            ValueError: 未知指令类型
        """
        count = 0
        for operation in operations:
            op_type = operation.get("type")
            if op_type == "add_element":
                element = self._parse_element(operation["element"])
                self.insert_element(element)
            elif op_type == "update_element":
                self.update_element(operation["elementId"], operation.get("changes", {}))
            elif op_type == "delete_element":
                self.delete_element(operation["elementId"])
            elif op_type == "reorder_element":
                self.reorder_element(operation["elementId"], int(operation["index"]))
            elif op_type == "set_template":
                self.set_template_fields(**dict(operation.get("changes", {})))
            elif op_type == "focus_element":
                self.select(operation["elementId"])
            else:
                raise ValueError(f"未知的编辑指令: {op_type}")
            count += 1
        logger.info(f"执行了 {count} 条编辑指令")
        return count

    @staticmethod
    def _parse_element(data: Mapping[str, Any]) -> AnyElement:
        try:
            return parse_element(data)
        except ValidationError as e:
            raise InvalidGeometryError(f"元素数据无效: {e.errors()[0]['msg']}") from e
