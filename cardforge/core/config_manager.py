"""配置管理器模块."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import ValidationError

from cardforge.models.app_settings import Settings
from cardforge.utils.exceptions import ConfigError
from cardforge.utils.logger import enable_file_logging, set_log_level, setup_logger

logger = setup_logger(__name__)


class ConfigManager:
    """配置管理器.

    负责应用设置的懒加载、覆盖和重载。

    Attributes:
        settings: 应用设置
    """

    _instance: Optional["ConfigManager"] = None

    def __new__(cls) -> "ConfigManager":
        """单例模式."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        """初始化配置管理器."""
        if self._initialized:
            return

        self._settings: Optional[Settings] = None
        self._overrides: dict[str, Any] = {}
        self._initialized = True

    @property
    def settings(self) -> Settings:
        """获取应用设置."""
        if self._settings is None:
            self._settings = self._load_settings()
        return self._settings

    def _load_settings(self) -> Settings:
        """加载应用设置.

        环境变量优先，其次 .env 文件，最后是通过 ``override`` 设置的值。

        Returns:
            Settings 实例
        """
        try:
            settings = Settings(**self._overrides)
        except ValidationError as e:
            logger.error(f"加载应用设置失败: {e}")
            raise ConfigError(f"加载应用设置失败: {e}") from e

        set_log_level(settings.log_level)
        if settings.log_to_file:
            enable_file_logging()
        logger.debug(f"应用设置加载完成: log_level={settings.log_level}")
        return settings

    def override(self, **values: Any) -> Settings:
        """覆盖部分设置并重新加载.

        Args:
            **values: 设置字段及其值

        Returns:
            新的 Settings 实例
        """
        self._overrides.update(values)
        self._settings = None
        return self.settings

    def reload(self) -> None:
        """清除覆盖并重新加载所有配置."""
        self._overrides.clear()
        self._settings = None
        logger.info("配置已重新加载")


# 全局配置管理器实例
config_manager = ConfigManager()


def get_config() -> ConfigManager:
    """获取配置管理器实例.

    Returns:
        ConfigManager 单例实例
    """
    return config_manager


def get_settings() -> Settings:
    """获取当前应用设置."""
    return config_manager.settings
