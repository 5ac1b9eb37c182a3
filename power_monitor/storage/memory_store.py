"""内存状态存储，进程退出即丢失"""

from datetime import datetime, timedelta
from typing import Dict, Any, List, Optional

from .base import BaseStateStore
from .factory import register_store
from ..models.monitor_state import EntityMonitorState


@register_store('memory')
class MemoryStateStore(BaseStateStore):
    """内存状态存储，保存序列化后的字典以避免与运行中的状态共享对象"""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self._records: Dict[str, Dict[str, Any]] = {}

    async def load(self, entity_id: str) -> Optional[EntityMonitorState]:
        record = self._records.get(entity_id)
        return EntityMonitorState.from_dict(record) if record else None

    async def load_all_fresher_than(self, window: timedelta,
                                    now: Optional[datetime] = None) -> List[EntityMonitorState]:
        now = now or datetime.now()
        states = [EntityMonitorState.from_dict(r) for r in self._records.values()]
        return [s for s in states if self.is_fresh(s, window, now)]

    async def save(self, entity_id: str, state: EntityMonitorState) -> None:
        self._records[entity_id] = state.to_dict()

    async def delete(self, entity_id: str) -> None:
        self._records.pop(entity_id, None)

    def __len__(self) -> int:
        return len(self._records)
