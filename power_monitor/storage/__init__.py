"""状态存储模块"""

from .base import BaseStateStore
from .factory import create_state_store, register_store, get_supported_store_types
from .memory_store import MemoryStateStore
from .json_store import JsonFileStateStore
from .redis_store import RedisStateStore

__all__ = ['BaseStateStore', 'create_state_store', 'register_store',
           'get_supported_store_types', 'MemoryStateStore', 'JsonFileStateStore',
           'RedisStateStore']
