"""错误处理工具模块.

提供统一的错误处理机制和用户友好的错误消息。
"""

from __future__ import annotations

from typing import Any

from cardforge.utils.exceptions import (
    AppException,
    AssetEncodingError,
    ConfigError,
    ElementNotFoundError,
    InvalidExportParametersError,
    InvalidGeometryError,
    LayoutParseError,
    SurfaceUnavailableError,
)
from cardforge.utils.logger import setup_logger

logger = setup_logger(__name__)


# 错误消息映射
ERROR_MESSAGES = {
    InvalidExportParametersError: "导出参数无效，请检查份数、行列数和页边距",
    SurfaceUnavailableError: "图像尺寸过大，请降低导出缩放倍数",
    AssetEncodingError: "文件生成失败，请稍后重试",
    LayoutParseError: "布局文件格式错误，无法读取",
    InvalidGeometryError: "模板数据异常，元素超出画布或尺寸无效",
    ElementNotFoundError: "元素不存在，可能已被删除",
    ConfigError: "配置错误，请检查配置文件",
}

# 需要附带原始消息的错误（具体原因对用户有帮助）
DETAILED_ERRORS = (InvalidExportParametersError, LayoutParseError)


def get_user_friendly_message(exception: Exception) -> str:
    """获取用户友好的错误消息.

    Args:
        exception: 异常对象

    Returns:
        用户友好的错误消息
    """
    for exc_type, message in ERROR_MESSAGES.items():
        if isinstance(exception, exc_type):
            if isinstance(exception, DETAILED_ERRORS):
                return f"{message}：{exception.message}"
            return message

    if isinstance(exception, AppException):
        return exception.message

    if isinstance(exception, FileNotFoundError):
        return f"文件不存在: {exception.filename}"

    return "操作失败，请稍后重试"


def get_error_details(exception: Exception) -> dict[str, Any]:
    """获取错误详细信息.

    Args:
        exception: 异常对象

    Returns:
        包含错误详情的字典
    """
    details: dict[str, Any] = {
        "type": type(exception).__name__,
        "message": str(exception),
        "user_message": get_user_friendly_message(exception),
    }

    if isinstance(exception, AppException):
        details["code"] = exception.code

    element_id = getattr(exception, "element_id", None)
    if element_id:
        details["element_id"] = element_id

    if isinstance(exception, SurfaceUnavailableError):
        details["size"] = exception.size

    return details


def handle_exception(
    exception: Exception,
    context: str = "",
    reraise: bool = True,
    log_traceback: bool = True,
) -> None:
    """统一异常处理.

    Args:
        exception: 异常对象
        context: 上下文描述
        reraise: 是否重新抛出异常
        log_traceback: 是否记录堆栈跟踪
    """
    msg = "异常发生"
    if context:
        msg = f"{context}: {msg}"

    if log_traceback:
        logger.exception(f"{msg}: {exception}")
    else:
        logger.error(f"{msg}: {exception}")

    if reraise:
        raise exception
