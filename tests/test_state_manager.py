"""状态管理器测试模块"""

import asyncio
import pytest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

from power_monitor.models.monitor_state import (
    EntityMonitorState, PowerState, StateTransition
)
from power_monitor.services.state_manager import StateManager
from power_monitor.storage import MemoryStateStore
from power_monitor.utils.exceptions import StoreError

NOW = datetime(2024, 5, 1, 12, 0, 0)


def make_transition(entity_id, confirmed_at, new_state=PowerState.OFF):
    return StateTransition(
        entity_id=entity_id,
        old_state=PowerState.ON if new_state == PowerState.OFF else PowerState.OFF,
        new_state=new_state,
        confirmed_at=confirmed_at,
        pending_since=confirmed_at - timedelta(minutes=5),
        duration_in_previous_state=timedelta(hours=1),
        switch_count=1,
    )


class TestStateManager:
    """状态管理器测试类"""

    def setup_method(self):
        """测试前准备"""
        self.store = MemoryStateStore()
        self.manager = StateManager(self.store, history_size=3, clock=lambda: NOW)

    def test_get_or_create(self):
        state = self.manager.get_or_create('a')

        assert state.current_state == PowerState.UNKNOWN
        assert self.manager.get_or_create('a') is state
        assert self.manager.get_state('b') is None

    def test_lock_per_entity(self):
        lock_a = self.manager.lock_for('a')

        assert isinstance(lock_a, asyncio.Lock)
        assert self.manager.lock_for('a') is lock_a
        assert self.manager.lock_for('b') is not lock_a

    def test_pending_entity_ids(self):
        self.manager.get_or_create('a')
        pending = self.manager.get_or_create('b')
        pending.current_state = PowerState.ON
        pending.pending_state = PowerState.OFF
        pending.pending_since = NOW

        assert self.manager.pending_entity_ids() == ['b']

    def test_history_is_bounded(self):
        for i in range(5):
            self.manager.record_transition(make_transition('a', NOW + timedelta(minutes=i)))

        changes = self.manager.get_state_changes()
        assert len(changes) == 3
        assert changes[0].confirmed_at == NOW + timedelta(minutes=2)

    def test_get_state_changes_filters(self):
        self.manager.record_transition(make_transition('a', NOW))
        self.manager.record_transition(make_transition('b', NOW + timedelta(minutes=1)))
        self.manager.record_transition(make_transition('a', NOW + timedelta(minutes=2)))

        assert len(self.manager.get_state_changes(since=NOW + timedelta(minutes=1))) == 2
        assert len(self.manager.get_state_changes(entity_id='a')) == 2
        assert len(self.manager.get_state_changes(
            since=NOW + timedelta(minutes=1), entity_id='a')) == 1

    @pytest.mark.asyncio
    async def test_restore_fresh_only(self):
        """比新鲜度窗口旧的记录等同于没有记录"""
        await self.store.save('fresh', EntityMonitorState(
            'fresh', current_state=PowerState.OFF, updated_at=NOW - timedelta(minutes=30)))
        await self.store.save('stale', EntityMonitorState(
            'stale', current_state=PowerState.OFF, updated_at=NOW - timedelta(hours=2)))

        restored = await self.manager.restore(timedelta(hours=1))

        assert restored == 1
        assert self.manager.get_state('fresh').current_state == PowerState.OFF
        assert self.manager.get_state('stale') is None
        assert self.manager.get_or_create('stale').current_state == PowerState.UNKNOWN

    @pytest.mark.asyncio
    async def test_restore_failure_is_logged(self):
        self.store.load_all_fresher_than = AsyncMock(side_effect=StoreError("数据库不可用"))

        assert await self.manager.restore(timedelta(hours=1)) == 0
        assert self.manager.states == {}

    @pytest.mark.asyncio
    async def test_restore_without_store(self):
        manager = StateManager()
        assert await manager.restore(timedelta(hours=1)) == 0

    @pytest.mark.asyncio
    async def test_save_sets_updated_at(self):
        state = self.manager.get_or_create('a')
        state.current_state = PowerState.ON

        assert await self.manager.save('a') is True

        assert state.updated_at == NOW
        stored = await self.store.load('a')
        assert stored.current_state == PowerState.ON
        assert stored.updated_at == NOW

    @pytest.mark.asyncio
    async def test_save_failure_keeps_memory_state(self):
        state = self.manager.get_or_create('a')
        state.current_state = PowerState.ON
        self.store.save = AsyncMock(side_effect=StoreError("写入失败", entity_id='a'))

        assert await self.manager.save('a') is False
        assert self.manager.get_state('a').current_state == PowerState.ON

    @pytest.mark.asyncio
    async def test_save_unknown_entity(self):
        assert await self.manager.save('missing') is False

    @pytest.mark.asyncio
    async def test_save_all(self):
        self.manager.get_or_create('a')
        self.manager.get_or_create('b')

        assert await self.manager.save_all() == 2
        assert len(self.store) == 2

    @pytest.mark.asyncio
    async def test_flush_timeout(self):
        """最终保存超时后放弃，不会无限等待"""
        self.manager.get_or_create('a')

        async def hang(states):
            await asyncio.sleep(10)

        self.store.save_all = hang

        assert await self.manager.flush(0.05) == 0

    @pytest.mark.asyncio
    async def test_flush_success(self):
        self.manager.get_or_create('a')
        assert await self.manager.flush(1) == 1

    @pytest.mark.asyncio
    async def test_evict(self):
        self.manager.get_or_create('a')
        self.manager.lock_for('a')
        await self.manager.save('a')

        assert await self.manager.evict('a') is True

        assert self.manager.get_state('a') is None
        assert 'a' not in self.manager._locks
        assert await self.store.load('a') is None
        assert await self.manager.evict('a') is False

    @pytest.mark.asyncio
    async def test_save_to_empty_memory_store(self):
        """空的内存存储也要接收写入"""
        assert len(self.store) == 0
        self.manager.get_or_create('a').current_state = PowerState.ON

        assert await self.manager.save('a') is True
        assert len(self.store) == 1

    @pytest.mark.asyncio
    async def test_evict_waits_for_entity_lock(self):
        self.manager.get_or_create('a')
        lock = self.manager.lock_for('a')
        await lock.acquire()

        evict_task = asyncio.create_task(self.manager.evict('a'))
        await asyncio.sleep(0.01)
        assert not evict_task.done()
        assert self.manager.get_state('a') is not None

        lock.release()
        assert await evict_task is True
        assert self.manager.get_state('a') is None
        assert self.manager.is_deconfigured('a')

        self.manager.reactivate('a')
        assert not self.manager.is_deconfigured('a')

    @pytest.mark.asyncio
    async def test_evict_store_error(self):
        self.manager.get_or_create('a')
        self.store.delete = AsyncMock(side_effect=StoreError("删除失败"))

        assert await self.manager.evict('a') is True
        assert self.manager.get_state('a') is None

    def test_entity_status_unknown(self):
        status = self.manager.get_entity_status('missing')

        assert status['label'] == 'unknown'
        assert status['last_probe_at'] is None

    def test_entity_status_pending(self):
        state = self.manager.get_or_create('a')
        state.current_state = PowerState.ON
        state.pending_state = PowerState.OFF
        state.pending_since = NOW - timedelta(minutes=2)
        state.instability_started_at = NOW - timedelta(minutes=2)
        state.switch_count = 1
        state.last_probe_at = NOW
        state.last_probe_ok = False

        status = self.manager.get_entity_status('a', NOW, timedelta(minutes=5))

        assert status['label'] == 'pending-off'
        assert status['debounce_remaining'] == 180
        assert status['last_probe_ok'] is False
        assert status['switch_count'] == 1

    def test_entity_status_stable(self):
        state = self.manager.get_or_create('a')
        state.current_state = PowerState.OFF

        status = self.manager.get_entity_status('a', NOW, timedelta(minutes=5))

        assert status['label'] == 'off'
        assert status['debounce_remaining'] is None

    def test_entity_stats(self):
        state = self.manager.get_or_create('a')
        state.current_state = PowerState.ON
        state.probe_count = 3
        state.reachable_count = 2
        self.manager.record_transition(make_transition('a', NOW))

        stats = self.manager.get_entity_stats('a')

        assert stats['total_probes'] == 3
        assert stats['unreachable_probes'] == 1
        assert stats['reachable_percent'] == 66.67
        assert stats['transitions_count'] == 1

    def test_entity_stats_without_probes(self):
        self.manager.get_or_create('a')
        assert self.manager.get_entity_stats('a') == {}
        assert self.manager.get_entity_stats('missing') == {}

    def test_get_all_states(self):
        self.manager.get_or_create('a').current_state = PowerState.ON
        self.manager.get_or_create('b')

        assert self.manager.get_all_states() == {'a': 'on', 'b': 'unknown'}
