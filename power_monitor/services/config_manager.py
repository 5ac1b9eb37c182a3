"""配置管理器"""

import os
from datetime import datetime
from typing import Dict, Any, List, Optional

import yaml

from ..models.monitor_state import MonitoredEndpoint, PowerState
from ..models.settings import MonitorSettings
from ..utils.exceptions import ConfigError, ErrorCode
from ..utils.config_validator import ConfigValidator, normalize_power_state
from ..utils.log_manager import get_logger


class ConfigManager:
    """配置管理器，负责YAML配置文件的加载、解析和验证

    加载或重载失败时保留上一次有效的配置。
    """

    def __init__(self, config_path: str):
        """
        初始化配置管理器

        Args:
            config_path: 配置文件路径
        """
        self.config_path = config_path
        self.config: Dict[str, Any] = {}
        self.last_modified: Optional[float] = None
        self.logger = get_logger('config_manager')

    def load_config(self) -> Dict[str, Any]:
        """
        加载YAML配置文件

        Returns:
            Dict[str, Any]: 配置字典

        Raises:
            ConfigError: 配置加载或验证失败
        """
        self.logger.info(f"开始加载配置文件: {self.config_path}")

        if not os.path.exists(self.config_path):
            self.logger.error(f"配置文件不存在: {self.config_path}")
            raise ConfigError(f"配置文件不存在: {self.config_path}",
                              ErrorCode.CONFIG_FILE_NOT_FOUND, config_path=self.config_path)

        try:
            with open(self.config_path, 'r', encoding='utf-8') as file:
                config = yaml.safe_load(file)
        except yaml.YAMLError as e:
            self.logger.error(f"YAML格式错误: {e}")
            raise ConfigError(f"YAML格式错误: {e}", ErrorCode.CONFIG_PARSE_ERROR,
                              config_path=self.config_path, cause=e)
        except PermissionError as e:
            self.logger.error(f"没有权限读取配置文件: {self.config_path}")
            raise ConfigError(f"没有权限读取配置文件: {self.config_path}",
                              ErrorCode.CONFIG_FILE_NOT_FOUND, config_path=self.config_path,
                              cause=e)
        except OSError as e:
            self.logger.error(f"读取配置文件失败: {e}")
            raise ConfigError(f"读取配置文件失败: {e}", config_path=self.config_path, cause=e)

        if config is None:
            self.logger.error("配置文件为空")
            raise ConfigError("配置文件为空", config_path=self.config_path)

        self._validate_config(config)

        endpoints_count = len(config.get('endpoints') or {})
        notifications_count = len(config.get('notifications') or [])
        self.logger.info(
            f"配置验证成功，包含 {endpoints_count} 个端点和 {notifications_count} 个通知渠道")

        old_config = self.config
        self.config = config
        self.last_modified = os.path.getmtime(self.config_path)

        if old_config:
            self._log_config_changes(old_config, config)
        else:
            self.logger.info("首次加载配置文件")

        return self.config

    def _validate_config(self, config: Dict[str, Any]) -> None:
        """
        验证配置文件内容

        Args:
            config: 配置字典

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(config, dict):
            raise ConfigError("配置文件根节点必须是字典类型")

        if config.get('global') is not None:
            ConfigValidator.validate_global_config(config['global'])

        if config.get('monitor') is not None:
            ConfigValidator.validate_monitor_config(config['monitor'])

        if config.get('storage') is not None:
            ConfigValidator.validate_storage_config(config['storage'])

        if config.get('endpoints') is not None:
            if not isinstance(config['endpoints'], dict):
                raise ConfigError("endpoints配置必须是字典类型")
            for entity_id, endpoint_config in config['endpoints'].items():
                ConfigValidator.validate_endpoint_config(str(entity_id), endpoint_config)

        if config.get('notifications') is not None:
            if not isinstance(config['notifications'], list):
                raise ConfigError("notifications配置必须是列表类型")
            names = set()
            for notification_config in config['notifications']:
                ConfigValidator.validate_notification_config(notification_config)
                if notification_config['name'] in names:
                    raise ConfigError(f"通知渠道名称重复: {notification_config['name']}")
                names.add(notification_config['name'])

    def get_global_config(self) -> Dict[str, Any]:
        return self.config.get('global') or {}

    def get_monitor_settings(self) -> MonitorSettings:
        """
        获取monitor配置的快照

        每次调用都根据当前配置重新构建，热更新后立即生效。

        Returns:
            MonitorSettings: 配置快照
        """
        return MonitorSettings.from_dict(self.config.get('monitor'))

    def get_storage_config(self) -> Dict[str, Any]:
        return self.config.get('storage') or {'type': 'memory'}

    def get_notifications_config(self) -> List[Dict[str, Any]]:
        return self.config.get('notifications') or []

    def get_endpoint_ids(self) -> List[str]:
        return [str(entity_id) for entity_id in (self.config.get('endpoints') or {})]

    def get_endpoints(self) -> List[MonitoredEndpoint]:
        """
        获取当前配置的端点列表

        Returns:
            List[MonitoredEndpoint]: 端点列表，按配置文件中的顺序
        """
        endpoints = []
        for entity_id, endpoint_config in (self.config.get('endpoints') or {}).items():
            endpoint_config = endpoint_config or {}

            last_known_state = normalize_power_state(endpoint_config.get('last_known_state'))
            last_changed_at = endpoint_config.get('last_changed_at')
            if last_changed_at is not None and not isinstance(last_changed_at, datetime):
                last_changed_at = datetime.fromisoformat(str(last_changed_at))

            endpoints.append(MonitoredEndpoint(
                entity_id=str(entity_id),
                host=endpoint_config.get('host'),
                port=endpoint_config.get('port', 80),
                enabled=endpoint_config.get('enabled', True),
                last_known_state=PowerState(last_known_state) if last_known_state else None,
                last_changed_at=last_changed_at,
            ))
        return endpoints

    def is_config_changed(self) -> bool:
        """
        检查配置文件是否已修改

        Returns:
            bool: 配置文件是否已修改
        """
        try:
            current_modified = os.path.getmtime(self.config_path)
        except OSError:
            return False
        return self.last_modified is None or current_modified > self.last_modified

    def reload_config(self) -> Dict[str, Any]:
        """
        重新加载配置文件

        Returns:
            Dict[str, Any]: 新的配置字典

        Raises:
            ConfigError: 配置重新加载失败，此时仍使用旧配置
        """
        self.logger.info("重新加载配置文件")
        return self.load_config()

    def _log_config_changes(self, old_config: Dict[str, Any], new_config: Dict[str, Any]) -> None:
        old_endpoints = old_config.get('endpoints') or {}
        new_endpoints = new_config.get('endpoints') or {}

        added = set(new_endpoints) - set(old_endpoints)
        if added:
            self.logger.info(f"新增端点: {', '.join(sorted(map(str, added)))}")

        removed = set(old_endpoints) - set(new_endpoints)
        if removed:
            self.logger.info(f"删除端点: {', '.join(sorted(map(str, removed)))}")

        for entity_id in set(old_endpoints) & set(new_endpoints):
            if old_endpoints[entity_id] != new_endpoints[entity_id]:
                self.logger.debug(f"端点配置已修改: {entity_id}")

        for section in ('global', 'monitor', 'storage', 'notifications'):
            if old_config.get(section) != new_config.get(section):
                self.logger.info(f"{section} 配置已修改")
