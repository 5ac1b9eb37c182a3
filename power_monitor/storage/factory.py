"""状态存储工厂"""

from typing import Dict, Type, Any, Optional

from .base import BaseStateStore
from ..utils.exceptions import ConfigError

_stores: Dict[str, Type[BaseStateStore]] = {}


def register_store(store_type: str):
    """
    装饰器：注册状态存储类

    Args:
        store_type: 存储类型名称

    Returns:
        装饰器函数
    """
    def decorator(store_class: Type[BaseStateStore]):
        if store_type in _stores:
            raise ConfigError(f"存储类型 '{store_type}' 已经注册")
        _stores[store_type] = store_class
        return store_class

    return decorator


def create_state_store(config: Optional[Dict[str, Any]] = None) -> BaseStateStore:
    """
    根据storage配置创建状态存储

    Args:
        config: storage配置，type缺省为memory

    Returns:
        BaseStateStore: 存储实例

    Raises:
        ConfigError: 存储类型不支持
    """
    config = config or {}
    store_type = config.get('type', 'memory')
    if store_type not in _stores:
        raise ConfigError(f"不支持的存储类型: '{store_type}'，支持的类型: {sorted(_stores)}")
    return _stores[store_type](config)


def get_supported_store_types() -> list:
    return sorted(_stores)
