"""状态管理器模块

持有所有实体的监控状态，负责懒创建、按实体加锁、启动恢复、持久化和
显式驱逐，并保留最近的已确认转换历史。
"""

import asyncio
import copy
from collections import deque
from datetime import datetime, timedelta
from typing import Callable, Deque, Dict, List, Optional, Set, Any

from ..models.monitor_state import EntityMonitorState, PowerState, StateTransition
from ..storage.base import BaseStateStore
from ..utils.exceptions import StoreError
from ..utils.log_manager import get_logger


class StateManager:
    """状态管理器

    每个实体的状态在任一时刻只属于该实体的处理路径，通过per-entity锁保证；
    不同实体之间没有全局锁。
    """

    def __init__(self, store: Optional[BaseStateStore] = None, history_size: int = 1000,
                 clock: Callable[[], datetime] = datetime.now):
        """初始化状态管理器

        Args:
            store: 状态存储，None时只在内存中运行
            history_size: 保留的已确认转换数量
            clock: 时间来源
        """
        self.store = store
        self.clock = clock
        self.states: Dict[str, EntityMonitorState] = {}
        self.state_changes: Deque[StateTransition] = deque(maxlen=history_size)
        self._locks: Dict[str, asyncio.Lock] = {}
        self._deconfigured: Set[str] = set()
        self.logger = get_logger('state_manager')

    def get_state(self, entity_id: str) -> Optional[EntityMonitorState]:
        """获取实体状态，不存在返回None"""
        return self.states.get(entity_id)

    def get_or_create(self, entity_id: str) -> EntityMonitorState:
        """获取实体状态，不存在时创建UNKNOWN状态"""
        state = self.states.get(entity_id)
        if state is None:
            state = EntityMonitorState(entity_id=entity_id)
            self.states[entity_id] = state
        return state

    def lock_for(self, entity_id: str) -> asyncio.Lock:
        """获取实体的处理锁"""
        lock = self._locks.get(entity_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[entity_id] = lock
        return lock

    def is_deconfigured(self, entity_id: str) -> bool:
        """实体是否已被驱逐且尚未重新配置"""
        return entity_id in self._deconfigured

    def reactivate(self, entity_id: str):
        """端点重新加入配置后允许再次创建状态"""
        self._deconfigured.discard(entity_id)

    def pending_entity_ids(self) -> List[str]:
        """所有处于待定状态的实体"""
        return [eid for eid, state in self.states.items() if state.pending_state is not None]

    def record_transition(self, transition: StateTransition):
        """记录已确认的转换"""
        self.state_changes.append(transition)

    def get_state_changes(self, since: Optional[datetime] = None,
                          entity_id: Optional[str] = None) -> List[StateTransition]:
        """获取已确认的转换历史

        Args:
            since: 只返回此时间之后确认的转换
            entity_id: 只返回该实体的转换

        Returns:
            转换事件列表，按确认时间先后排列
        """
        return [
            change for change in self.state_changes
            if (since is None or change.confirmed_at >= since)
            and (entity_id is None or change.entity_id == entity_id)
        ]

    def get_all_states(self) -> Dict[str, str]:
        """所有实体当前已确认的状态"""
        return {eid: state.current_state.value for eid, state in self.states.items()}

    async def restore(self, freshness_window: timedelta) -> int:
        """从存储恢复新鲜度窗口内的状态

        比窗口更旧的记录不会被恢复，对应实体从UNKNOWN重新开始。

        Args:
            freshness_window: 新鲜度窗口

        Returns:
            恢复的实体数量
        """
        if self.store is None:
            return 0

        try:
            states = await self.store.load_all_fresher_than(freshness_window, self.clock())
        except StoreError as e:
            self.logger.error(f"恢复状态失败，所有实体从未知状态开始: {e.format_error()}")
            return 0

        for state in states:
            self.states[state.entity_id] = state

        self.logger.info(f"从存储恢复了 {len(states)} 个实体的状态")
        return len(states)

    def _snapshot(self, state: EntityMonitorState) -> EntityMonitorState:
        state.updated_at = self.clock()
        return copy.copy(state)

    async def save(self, entity_id: str) -> bool:
        """立即持久化单个实体的状态

        Args:
            entity_id: 实体ID

        Returns:
            是否保存成功，失败时状态仍保留在内存中等待下次批量保存
        """
        state = self.states.get(entity_id)
        if self.store is None or state is None:
            return False

        try:
            await self.store.save(entity_id, self._snapshot(state))
            return True
        except StoreError as e:
            self.logger.error(f"保存实体 {entity_id} 状态失败: {e.format_error()}")
            return False

    async def save_all(self) -> int:
        """批量持久化所有实体的状态

        Returns:
            成功保存的数量
        """
        if self.store is None or not self.states:
            return 0

        snapshots = [self._snapshot(state) for state in list(self.states.values())]
        try:
            saved_count = await self.store.save_all(snapshots)
        except StoreError as e:
            self.logger.error(f"批量保存状态失败: {e.format_error()}")
            return 0

        self.logger.info(f"已保存 {saved_count}/{len(snapshots)} 个实体的状态")
        return saved_count

    async def flush(self, timeout: float) -> int:
        """关闭前的最终保存，超时后放弃

        Args:
            timeout: 整体超时时间（秒）

        Returns:
            成功保存的数量，超时返回0
        """
        try:
            return await asyncio.wait_for(self.save_all(), timeout=timeout)
        except asyncio.TimeoutError:
            self.logger.error(f"最终保存状态超时 ({timeout}s)，放弃保存")
            return 0

    async def evict(self, entity_id: str, delete_from_store: bool = True) -> bool:
        """端点取消配置后驱逐实体状态

        Args:
            entity_id: 实体ID
            delete_from_store: 是否同时删除持久化记录

        Returns:
            内存中是否存在该实体
        """
        async with self.lock_for(entity_id):
            self._deconfigured.add(entity_id)
            existed = self.states.pop(entity_id, None) is not None
        self._locks.pop(entity_id, None)

        if delete_from_store and self.store is not None:
            try:
                await self.store.delete(entity_id)
            except StoreError as e:
                self.logger.error(f"删除实体 {entity_id} 的持久化状态失败: {e.format_error()}")

        if existed:
            self.logger.info(f"已驱逐实体 {entity_id} 的监控状态")
        return existed

    def get_entity_status(self, entity_id: str, now: Optional[datetime] = None,
                          debounce: Optional[timedelta] = None) -> Dict[str, Any]:
        """获取实体的诊断信息

        Args:
            entity_id: 实体ID
            now: 当前时间
            debounce: 当前确认窗口，用于计算剩余等待时间

        Returns:
            诊断信息字典，label取值 unknown / on / off / pending-on / pending-off
        """
        state = self.states.get(entity_id)
        if state is None:
            return {
                'entity_id': entity_id,
                'label': PowerState.UNKNOWN.value,
                'last_probe_at': None,
                'last_probe_ok': None,
            }

        now = now or self.clock()
        if state.pending_state is not None:
            label = f"pending-{state.pending_state.value}"
        else:
            label = state.current_state.value

        remaining = None
        if state.pending_state is not None and debounce is not None:
            remaining = max(timedelta(0), debounce - (now - state.pending_since))

        return {
            'entity_id': entity_id,
            'label': label,
            'current_state': state.current_state.value,
            'pending_state': state.pending_state.value if state.pending_state else None,
            'debounce_remaining': remaining.total_seconds() if remaining is not None else None,
            'last_probe_at': state.last_probe_at.isoformat() if state.last_probe_at else None,
            'last_probe_ok': state.last_probe_ok,
            'last_stable_at': state.last_stable_at.isoformat() if state.last_stable_at else None,
            'switch_count': state.switch_count,
        }

    def get_entity_stats(self, entity_id: str) -> Dict[str, Any]:
        """获取实体的探测统计

        Args:
            entity_id: 实体ID

        Returns:
            统计字典，没有探测记录时返回空字典
        """
        state = self.states.get(entity_id)
        if state is None or state.probe_count == 0:
            return {}

        return {
            'entity_id': entity_id,
            'current_state': state.current_state.value,
            'total_probes': state.probe_count,
            'reachable_probes': state.reachable_count,
            'unreachable_probes': state.probe_count - state.reachable_count,
            'reachable_percent': round(100.0 * state.reachable_count / state.probe_count, 2),
            'transitions_count': len(self.get_state_changes(entity_id=entity_id)),
        }
