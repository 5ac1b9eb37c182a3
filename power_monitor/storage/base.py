"""状态存储适配器基类"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Dict, Any, Iterable, List, Optional

from ..models.monitor_state import EntityMonitorState
from ..utils.exceptions import StoreError
from ..utils.log_manager import get_logger


class BaseStateStore(ABC):
    """状态存储抽象基类

    以entity_id为键做upsert，不同实体的写入互不阻塞。
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        初始化存储

        Args:
            config: 存储配置参数
        """
        self.config = config or {}
        self.store_type = self.__class__.__name__.replace('StateStore', '').lower()
        self.logger = get_logger(f'store.{self.store_type}')

    @abstractmethod
    async def load(self, entity_id: str) -> Optional[EntityMonitorState]:
        """
        读取单个实体的状态

        Args:
            entity_id: 实体ID

        Returns:
            Optional[EntityMonitorState]: 状态，不存在返回None

        Raises:
            StoreError: 读取失败
        """
        pass

    @abstractmethod
    async def load_all_fresher_than(self, window: timedelta,
                                    now: Optional[datetime] = None) -> List[EntityMonitorState]:
        """
        读取所有在新鲜度窗口内更新过的状态

        单条记录损坏不影响其他记录的读取。

        Args:
            window: 新鲜度窗口
            now: 当前时间，默认datetime.now()

        Returns:
            List[EntityMonitorState]: 状态列表

        Raises:
            StoreError: 整体读取失败
        """
        pass

    @abstractmethod
    async def save(self, entity_id: str, state: EntityMonitorState) -> None:
        """
        写入（upsert）单个实体的状态

        Args:
            entity_id: 实体ID
            state: 状态

        Raises:
            StoreError: 写入失败
        """
        pass

    @abstractmethod
    async def delete(self, entity_id: str) -> None:
        """
        删除单个实体的状态

        Raises:
            StoreError: 删除失败
        """
        pass

    async def save_all(self, states: Iterable[EntityMonitorState]) -> int:
        """
        批量写入状态，单个实体失败只记录日志

        Args:
            states: 状态列表

        Returns:
            int: 成功写入的数量
        """
        saved_count = 0
        for state in states:
            try:
                await self.save(state.entity_id, state)
                saved_count += 1
            except StoreError as e:
                self.logger.error(f"保存实体 {state.entity_id} 状态失败: {e.format_error()}")
        return saved_count

    async def close(self):
        """释放存储连接"""
        pass

    @staticmethod
    def is_fresh(state: EntityMonitorState, window: timedelta, now: datetime) -> bool:
        """记录的更新时间是否在新鲜度窗口内"""
        return state.updated_at is not None and now - state.updated_at <= window
