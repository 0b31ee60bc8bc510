"""服务层模块."""

from cardforge.services.template_exporter import (
    ExportArtifact,
    PlacedCopy,
    PrintLayout,
    PrintOptions,
    compute_print_layout,
    export_layout,
    export_pdf,
    export_png,
    parse_layout,
    save_artifact,
)
from cardforge.services.template_library import (
    TemplateLibrary,
    TemplateMetadata,
)
from cardforge.services.template_renderer import (
    FontProvider,
    TemplateRenderer,
    get_renderer,
    render_template,
    reset_renderer,
    wrap_text,
)

__all__ = [
    # 渲染
    "FontProvider",
    "TemplateRenderer",
    "get_renderer",
    "render_template",
    "reset_renderer",
    "wrap_text",
    # 导出
    "ExportArtifact",
    "PlacedCopy",
    "PrintLayout",
    "PrintOptions",
    "compute_print_layout",
    "export_layout",
    "export_pdf",
    "export_png",
    "parse_layout",
    "save_artifact",
    # 模板库
    "TemplateLibrary",
    "TemplateMetadata",
]
