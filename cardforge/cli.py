"""CardForge 命令行入口.

Usage:
    cardforge new -o layouts/ --name "Hero Card" --add text rectangle
    cardforge png layouts/hero-card.json --scale 2
    cardforge pdf layouts/hero-card.json --copies 9 --columns 3 --rows 3
    cardforge layout layouts/hero-card.json
    cardforge edit layouts/hero-card.json ops.json
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Optional, Sequence

from cardforge.core.config_manager import get_settings
from cardforge.core.geometry import normalize_template
from cardforge.core.template_editor import TemplateEditor
from cardforge.models.template_config import (
    DEFAULT_CANVAS_SIZE,
    DEFAULT_TEMPLATE_NAME,
    ElementType,
    Template,
)
from cardforge.services.template_exporter import (
    ExportArtifact,
    PrintOptions,
    export_layout,
    export_pdf,
    export_png,
    parse_layout,
    save_artifact,
)
from cardforge.utils.constants import APP_NAME, APP_VERSION, MAX_CANVAS_SIZE, MIN_CANVAS_SIZE, PAGE_SIZES
from cardforge.utils.error_handler import get_user_friendly_message, handle_exception
from cardforge.utils.exceptions import AppException
from cardforge.utils.helpers import build_export_file_name, clamp, sanitize_output_file_name
from cardforge.utils.logger import set_log_level, setup_logger

logger = setup_logger(__name__)


# ===================
# 参数解析
# ===================


def build_parser() -> argparse.ArgumentParser:
    """构建命令行解析器."""
    parser = argparse.ArgumentParser(prog="cardforge", description="卡牌模板渲染与打印导出工具")
    parser.add_argument("--version", action="version", version=f"{APP_NAME} {APP_VERSION}")
    parser.add_argument("-v", "--verbose", action="store_true", help="输出调试日志")
    subparsers = parser.add_subparsers(dest="command", required=True)

    png = subparsers.add_parser("png", help="导出 PNG 图像")
    png.add_argument("layout", type=Path, help="布局 JSON 文件")
    png.add_argument("-s", "--scale", type=float, default=None, help="缩放倍数（默认取设置）")
    _add_output_arguments(png)

    pdf = subparsers.add_parser("pdf", help="导出拼版打印 PDF")
    pdf.add_argument("layout", type=Path, help="布局 JSON 文件")
    pdf.add_argument("--copies", type=int, required=True, help="总份数")
    pdf.add_argument("--columns", type=int, required=True, help="每页列数")
    pdf.add_argument("--rows", type=int, required=True, help="每页行数")
    pdf.add_argument("--page-size", choices=sorted(PAGE_SIZES), default=None, help="纸张规格")
    pdf.add_argument("--margin-mm", type=float, default=None, help="页边距（毫米）")
    pdf.add_argument("-s", "--scale", type=float, default=None, help="栅格化缩放倍数")
    _add_output_arguments(pdf)

    layout = subparsers.add_parser("layout", help="归一化并重新导出布局 JSON")
    layout.add_argument("layout", type=Path, help="布局 JSON 文件")
    _add_output_arguments(layout)

    new = subparsers.add_parser("new", help="创建新模板布局")
    new.add_argument("--name", default=DEFAULT_TEMPLATE_NAME, help="模板名称")
    new.add_argument("--width", type=float, default=DEFAULT_CANVAS_SIZE[0], help="画布宽度")
    new.add_argument("--height", type=float, default=DEFAULT_CANVAS_SIZE[1], help="画布高度")
    new.add_argument("--background", default=None, help="背景色")
    new.add_argument(
        "--add",
        nargs="*",
        choices=[t.value for t in ElementType],
        default=[],
        help="依次添加的默认元素",
    )
    _add_output_arguments(new)

    edit = subparsers.add_parser("edit", help="对布局执行编辑指令")
    edit.add_argument("layout", type=Path, help="布局 JSON 文件")
    edit.add_argument("operations", type=Path, help="编辑指令 JSON 文件（指令数组）")
    _add_output_arguments(edit)

    return parser


def _add_output_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-o", "--output-dir", type=Path, default=None, help="输出目录（默认取设置）")
    parser.add_argument("--file-name", default=None, help="输出文件名（默认由模板名称生成）")


# ===================
# 子命令
# ===================


def _read_layout(path: Path) -> Template:
    return normalize_template(parse_layout(path.read_bytes()))


def _output_name(args: argparse.Namespace, template: Template, extension: str, suffix: Optional[str] = None) -> str:
    if args.file_name:
        return sanitize_output_file_name(args.file_name, extension)
    return build_export_file_name(template.name, extension, suffix)


def _save(args: argparse.Namespace, artifact: ExportArtifact) -> Path:
    directory = args.output_dir or get_settings().export_dir
    path = save_artifact(artifact, directory)
    print(path)
    return path


def cmd_png(args: argparse.Namespace) -> int:
    """导出 PNG."""
    template = _read_layout(args.layout)
    scale = args.scale if args.scale is not None else get_settings().default_png_scale
    _save(args, export_png(template, _output_name(args, template, "png"), scale))
    return 0


def cmd_pdf(args: argparse.Namespace) -> int:
    """导出 PDF."""
    settings = get_settings()
    template = _read_layout(args.layout)
    options = PrintOptions(
        copies=args.copies,
        columns=args.columns,
        rows=args.rows,
        page_size=args.page_size or settings.default_page_size,
        margin_mm=args.margin_mm if args.margin_mm is not None else settings.default_margin_mm,
        scale=args.scale if args.scale is not None else settings.default_pdf_scale,
    )
    _save(args, export_pdf(template, _output_name(args, template, "pdf", "print"), options))
    return 0


def cmd_layout(args: argparse.Namespace) -> int:
    """归一化布局并重新导出."""
    template = _read_layout(args.layout)
    _save(args, export_layout(template, _output_name(args, template, "json")))
    return 0


def cmd_new(args: argparse.Namespace) -> int:
    """创建新模板."""
    values: dict = {
        "name": args.name,
        "width": clamp(args.width, MIN_CANVAS_SIZE, MAX_CANVAS_SIZE),
        "height": clamp(args.height, MIN_CANVAS_SIZE, MAX_CANVAS_SIZE),
    }
    if args.background:
        values["background"] = args.background
    editor = TemplateEditor(Template(**values))
    for kind in args.add:
        editor.add_element(kind)
    template = editor.snapshot()
    _save(args, export_layout(template, _output_name(args, template, "json")))
    return 0


def cmd_edit(args: argparse.Namespace) -> int:
    """执行编辑指令并保存布局."""
    editor = TemplateEditor(_read_layout(args.layout))
    operations = json.loads(args.operations.read_text(encoding="utf-8"))
    if isinstance(operations, dict):
        operations = operations.get("operations", [])
    editor.apply_operations(operations)
    template = editor.snapshot()
    _save(args, export_layout(template, _output_name(args, template, "json")))
    return 0


COMMANDS = {
    "png": cmd_png,
    "pdf": cmd_pdf,
    "layout": cmd_layout,
    "new": cmd_new,
    "edit": cmd_edit,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    """命令行主入口函数.

    Args:
        argv: 命令行参数，默认取 ``sys.argv``

    Returns:
        退出码，0 表示成功
    """
    args = build_parser().parse_args(argv)

    try:
        get_settings()
        if args.verbose:
            set_log_level("DEBUG")
        return COMMANDS[args.command](args)
    except (AppException, OSError, ValueError) as e:
        handle_exception(e, context=f"执行 {args.command}", reraise=False, log_traceback=args.verbose)
        print(f"错误: {get_user_friendly_message(e)}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
