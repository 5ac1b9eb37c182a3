"""通知渠道注册和创建"""

from typing import Dict, Type, Any, List

from .base import BaseNotifier
from ..utils.exceptions import NotificationConfigError
from ..utils.log_manager import get_logger

_notifiers: Dict[str, Type[BaseNotifier]] = {}
logger = get_logger('notifier.factory')


def register_notifier(notifier_type: str):
    """
    装饰器：注册通知渠道类

    Args:
        notifier_type: 渠道类型名称

    Returns:
        装饰器函数
    """
    def decorator(notifier_class: Type[BaseNotifier]):
        if notifier_type in _notifiers:
            raise NotificationConfigError(f"通知类型 '{notifier_type}' 已经注册")
        _notifiers[notifier_type] = notifier_class
        return notifier_class

    return decorator


def create_notifier(config: Dict[str, Any]) -> BaseNotifier:
    """
    根据配置创建单个通知渠道

    Args:
        config: 渠道配置，必须包含type

    Returns:
        BaseNotifier: 渠道实例

    Raises:
        NotificationConfigError: 类型不支持或配置无效
    """
    notifier_type = str(config.get('type', '')).lower()
    name = config.get('name', notifier_type)
    if notifier_type not in _notifiers:
        raise NotificationConfigError(f"不支持的通知类型: '{notifier_type}'", notifier_name=name)
    return _notifiers[notifier_type](name, config)


def create_notifiers(configs: List[Dict[str, Any]]) -> List[BaseNotifier]:
    """
    创建所有通知渠道，单个渠道配置错误只记录日志

    Args:
        configs: 渠道配置列表

    Returns:
        List[BaseNotifier]: 创建成功的渠道
    """
    notifiers = []
    for config in configs or []:
        try:
            notifier = create_notifier(config)
            notifiers.append(notifier)
            logger.info(f"已初始化通知渠道: {notifier.name} ({notifier.notifier_type})")
        except NotificationConfigError as e:
            logger.error(f"初始化通知渠道失败 {config.get('name', 'unknown')}: {e.format_error()}")
    return notifiers


def get_supported_notifier_types() -> list:
    return sorted(_notifiers)
