"""配置验证工具"""

from datetime import datetime
from typing import Dict, Any

from .exceptions import ConfigError

SUPPORTED_PROBE_TYPES = ['http', 'tcp']
SUPPORTED_STORAGE_TYPES = ['memory', 'json', 'redis']
SUPPORTED_NOTIFICATION_TYPES = ['http', 'telegram']
SUPPORTED_POWER_STATES = ['on', 'off']
VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def normalize_power_state(value: Any) -> Any:
    """YAML 1.1 会把未加引号的 on/off 解析成布尔值"""
    if isinstance(value, bool):
        return 'on' if value else 'off'
    return value


class ConfigValidator:
    """配置验证器"""

    @staticmethod
    def validate_global_config(global_config: Dict[str, Any]) -> None:
        """
        验证全局配置

        Args:
            global_config: 全局配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(global_config, dict):
            raise ConfigError("全局配置必须是字典类型")

        log_level = global_config.get('log_level')
        if log_level is not None and str(log_level).upper() not in VALID_LOG_LEVELS:
            raise ConfigError(f"log_level 必须是以下值之一: {VALID_LOG_LEVELS}")

        for key in ('max_log_size', 'log_backup_count'):
            value = global_config.get(key)
            if value is not None and (not isinstance(value, int) or value <= 0):
                raise ConfigError(f"{key} 必须是正整数")

    @staticmethod
    def validate_monitor_config(monitor_config: Dict[str, Any]) -> None:
        """
        验证monitor配置段

        Args:
            monitor_config: monitor配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(monitor_config, dict):
            raise ConfigError("monitor配置必须是字典类型")

        # 允许为0的项：0分别表示动态间隔、最小稳定窗口、不冷却
        for key in ('check_interval', 'debounce_minutes', 'notification_cooldown'):
            value = monitor_config.get(key)
            if value is not None and (not _is_number(value) or value < 0):
                raise ConfigError(f"{key} 必须是非负数")

        for key in ('probe_timeout', 'save_interval', 'shutdown_save_timeout',
                    'state_freshness', 'confirm_check_interval'):
            value = monitor_config.get(key)
            if value is not None and (not _is_number(value) or value <= 0):
                raise ConfigError(f"{key} 必须是正数")

        for key in ('max_concurrent_probes', 'history_size'):
            value = monitor_config.get(key)
            if value is not None and (not isinstance(value, int) or isinstance(value, bool)
                                      or value <= 0):
                raise ConfigError(f"{key} 必须是正整数")

        probe_type = monitor_config.get('probe_type')
        if probe_type is not None and probe_type not in SUPPORTED_PROBE_TYPES:
            raise ConfigError(
                f"探测类型 '{probe_type}' 不受支持。支持的类型: {SUPPORTED_PROBE_TYPES}")

        templates = monitor_config.get('templates')
        if templates is not None:
            if not isinstance(templates, dict):
                raise ConfigError("templates配置必须是字典类型")
            for name, template in templates.items():
                if name not in ('power_on', 'power_off'):
                    raise ConfigError(f"未知的消息模板: {name}")
                if not isinstance(template, str) or not template.strip():
                    raise ConfigError(f"消息模板 '{name}' 不能为空")

    @staticmethod
    def validate_storage_config(storage_config: Dict[str, Any]) -> None:
        """
        验证存储配置

        Args:
            storage_config: 存储配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(storage_config, dict):
            raise ConfigError("storage配置必须是字典类型")

        storage_type = storage_config.get('type', 'memory')
        if storage_type not in SUPPORTED_STORAGE_TYPES:
            raise ConfigError(
                f"存储类型 '{storage_type}' 不受支持。支持的类型: {SUPPORTED_STORAGE_TYPES}")

        port = storage_config.get('port')
        if port is not None and (not isinstance(port, int) or not 1 <= port <= 65535):
            raise ConfigError("storage.port 必须是1-65535之间的整数")

    @staticmethod
    def validate_endpoint_config(entity_id: str, config: Dict[str, Any]) -> None:
        """
        验证端点配置

        Args:
            entity_id: 实体ID
            config: 端点配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(config, dict):
            raise ConfigError(f"端点 '{entity_id}' 的配置必须是字典类型")

        host = config.get('host')
        if host is not None and not isinstance(host, str):
            raise ConfigError(f"端点 '{entity_id}' 的host必须是字符串")

        port = config.get('port')
        if port is not None and (not isinstance(port, int) or not 1 <= port <= 65535):
            raise ConfigError(f"端点 '{entity_id}' 的port必须是1-65535之间的整数")

        enabled = config.get('enabled')
        if enabled is not None and not isinstance(enabled, bool):
            raise ConfigError(f"端点 '{entity_id}' 的enabled必须是布尔值")

        last_known_state = normalize_power_state(config.get('last_known_state'))
        if last_known_state is not None and last_known_state not in SUPPORTED_POWER_STATES:
            raise ConfigError(
                f"端点 '{entity_id}' 的last_known_state必须是以下值之一: {SUPPORTED_POWER_STATES}")

        last_changed_at = config.get('last_changed_at')
        if last_changed_at is not None and not isinstance(last_changed_at, datetime):
            try:
                datetime.fromisoformat(str(last_changed_at))
            except ValueError:
                raise ConfigError(f"端点 '{entity_id}' 的last_changed_at不是有效的ISO时间")

    @staticmethod
    def validate_notification_config(notification_config: Dict[str, Any]) -> None:
        """
        验证通知渠道配置

        Args:
            notification_config: 通知渠道配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(notification_config, dict):
            raise ConfigError("通知渠道配置必须是字典类型")

        for field in ('name', 'type'):
            if field not in notification_config:
                raise ConfigError(f"通知渠道配置缺少必需的配置项: {field}")

        notification_type = notification_config['type']
        if notification_type not in SUPPORTED_NOTIFICATION_TYPES:
            raise ConfigError(
                f"通知渠道类型 '{notification_type}' 不受支持。"
                f"支持的类型: {SUPPORTED_NOTIFICATION_TYPES}")

        required = {'http': ['url'], 'telegram': ['bot_token']}[notification_type]
        for field in required:
            if not notification_config.get(field):
                raise ConfigError(
                    f"通知渠道 '{notification_config['name']}' 缺少必需的配置项: {field}")
