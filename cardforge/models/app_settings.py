"""应用设置模型."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cardforge.utils.constants import (
    DEFAULT_FONT_FAMILY,
    DEFAULT_MARGIN_MM,
    DEFAULT_PAGE_SIZE,
    DEFAULT_PDF_SCALE,
    DEFAULT_PNG_SCALE,
    EXPORT_DIR,
    TEMPLATES_DIR,
    PAGE_SIZES,
)


class Settings(BaseSettings):
    """应用设置.

    支持从 ``CARDFORGE_`` 前缀的环境变量和 .env 文件加载配置。

    Attributes:
        log_level: 日志级别
        log_to_file: 是否写入轮转日志文件
        fonts_dir: 额外的字体搜索目录
        output_dir: 导出目录
        templates_dir: 本地模板库目录
        default_png_scale: PNG 导出默认缩放
        default_pdf_scale: PDF 导出默认渲染缩放
        default_page_size: PDF 默认纸张
        default_margin_mm: PDF 默认页边距（毫米）
        default_font_family: 未指定字体时使用的字体
    """

    model_config = SettingsConfigDict(
        env_prefix="CARDFORGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = Field(default="INFO", description="日志级别")
    log_to_file: bool = Field(default=False, description="写入日志文件")

    fonts_dir: Optional[Path] = Field(default=None, description="额外字体目录")
    output_dir: Optional[Path] = Field(default=None, description="导出目录")
    templates_dir: Optional[Path] = Field(default=None, description="模板库目录")

    default_png_scale: float = Field(
        default=DEFAULT_PNG_SCALE,
        ge=1,
        le=8,
        description="PNG 导出默认缩放",
    )
    default_pdf_scale: float = Field(
        default=DEFAULT_PDF_SCALE,
        ge=1,
        le=8,
        description="PDF 导出默认渲染缩放",
    )
    default_page_size: str = Field(
        default=DEFAULT_PAGE_SIZE,
        description="PDF 默认纸张",
    )
    default_margin_mm: float = Field(
        default=DEFAULT_MARGIN_MM,
        ge=0,
        le=100,
        description="PDF 默认页边距",
    )
    default_font_family: str = Field(
        default=DEFAULT_FONT_FAMILY,
        min_length=1,
        description="默认字体",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """验证日志级别."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"无效的日志级别: {v}，有效值: {valid_levels}")
        return upper_v

    @field_validator("default_page_size")
    @classmethod
    def validate_page_size(cls, v: str) -> str:
        """验证纸张尺寸."""
        if v not in PAGE_SIZES:
            raise ValueError(f"不支持的纸张尺寸: {v}，有效值: {sorted(PAGE_SIZES)}")
        return v

    @property
    def export_dir(self) -> Path:
        """获取导出目录."""
        return self.output_dir or EXPORT_DIR

    @property
    def library_dir(self) -> Path:
        """获取模板库目录."""
        return self.templates_dir or TEMPLATES_DIR
