"""自定义异常类."""

from __future__ import annotations


class AppException(Exception):
    """应用基础异常类.

    所有自定义异常都应继承此类。

    Attributes:
        message: 错误消息
        code: 错误代码
    """

    def __init__(self, message: str, code: str = "UNKNOWN") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)

    def __str__(self) -> str:
        """返回异常字符串表示."""
        return f"[{self.code}] {self.message}"


# ===================
# 配置相关异常
# ===================
class ConfigError(AppException):
    """配置错误异常."""

    def __init__(self, message: str) -> None:
        super().__init__(message, "CONFIG_ERROR")


# ===================
# 场景模型相关异常
# ===================
class InvalidGeometryError(AppException):
    """元素或模板违反几何不变量.

    渲染器收到此类错误说明调用方绕过了几何维护，属于程序缺陷。
    """

    def __init__(self, message: str, element_id: str | None = None) -> None:
        self.element_id = element_id
        if element_id:
            message = f"元素 '{element_id}': {message}"
        super().__init__(message, "INVALID_GEOMETRY")


class ElementNotFoundError(AppException):
    """元素未找到异常."""

    def __init__(self, element_id: str) -> None:
        self.element_id = element_id
        super().__init__(f"元素未找到: {element_id}", "ELEMENT_NOT_FOUND")


class LayoutParseError(AppException):
    """布局文件解析失败."""

    def __init__(self, message: str) -> None:
        super().__init__(message, "LAYOUT_PARSE_ERROR")


# ===================
# 渲染与导出相关异常
# ===================
class InvalidExportParametersError(AppException):
    """导出参数无效（份数/行列为零或边距过大）."""

    def __init__(self, message: str) -> None:
        super().__init__(message, "INVALID_EXPORT_PARAMETERS")


class SurfaceUnavailableError(AppException):
    """无法创建绘图表面."""

    def __init__(self, width: int, height: int, reason: str = "") -> None:
        self.size = (width, height)
        msg = f"无法创建 {width}x{height} 的绘图表面"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, "SURFACE_UNAVAILABLE")


class AssetEncodingError(AppException):
    """图片或文档编码失败."""

    def __init__(self, asset_format: str, reason: str = "") -> None:
        self.asset_format = asset_format
        msg = f"{asset_format} 编码失败"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, "ASSET_ENCODING_FAILURE")
