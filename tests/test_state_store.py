"""状态存储测试模块"""

import json
import pytest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

from redis.exceptions import RedisError

from power_monitor.models.monitor_state import EntityMonitorState, PowerState
from power_monitor.storage import (
    create_state_store, get_supported_store_types,
    MemoryStateStore, JsonFileStateStore, RedisStateStore
)
from power_monitor.utils.exceptions import ConfigError, StoreError

NOW = datetime(2024, 5, 1, 12, 0, 0)
WINDOW = timedelta(hours=1)


def make_state(entity_id, age=timedelta(minutes=5), **kwargs):
    return EntityMonitorState(
        entity_id=entity_id,
        current_state=kwargs.pop('current_state', PowerState.ON),
        last_stable_at=NOW - timedelta(hours=2),
        updated_at=NOW - age,
        **kwargs
    )


class TestStoreFactory:
    """存储工厂测试"""

    def test_supported_types(self):
        assert get_supported_store_types() == ['json', 'memory', 'redis']

    def test_default_is_memory(self):
        assert isinstance(create_state_store(), MemoryStateStore)
        assert isinstance(create_state_store({}), MemoryStateStore)

    def test_create_json(self, tmp_path):
        store = create_state_store({'type': 'json', 'path': str(tmp_path)})
        assert isinstance(store, JsonFileStateStore)
        assert store.store_type == 'jsonfile'

    def test_unknown_type(self):
        with pytest.raises(ConfigError, match="不支持的存储类型"):
            create_state_store({'type': 'cassandra'})


class TestMemoryStateStore:
    """内存存储测试类"""

    def setup_method(self):
        self.store = MemoryStateStore()

    @pytest.mark.asyncio
    async def test_save_and_load(self):
        state = make_state('a', pending_state=PowerState.OFF, pending_since=NOW,
                           instability_started_at=NOW, switch_count=1)

        await self.store.save('a', state)
        loaded = await self.store.load('a')

        assert loaded == state
        assert loaded is not state
        assert len(self.store) == 1

    @pytest.mark.asyncio
    async def test_load_missing(self):
        assert await self.store.load('missing') is None

    @pytest.mark.asyncio
    async def test_saved_copy_is_isolated(self):
        state = make_state('a')
        await self.store.save('a', state)
        state.current_state = PowerState.OFF

        loaded = await self.store.load('a')
        assert loaded.current_state == PowerState.ON

    @pytest.mark.asyncio
    async def test_load_all_fresher_than(self):
        await self.store.save('fresh', make_state('fresh', age=timedelta(minutes=59)))
        await self.store.save('edge', make_state('edge', age=timedelta(hours=1)))
        await self.store.save('stale', make_state('stale', age=timedelta(hours=2)))
        no_time = make_state('no_time')
        no_time.updated_at = None
        await self.store.save('no_time', no_time)

        states = await self.store.load_all_fresher_than(WINDOW, NOW)

        assert sorted(s.entity_id for s in states) == ['edge', 'fresh']

    @pytest.mark.asyncio
    async def test_delete(self):
        await self.store.save('a', make_state('a'))
        await self.store.delete('a')
        await self.store.delete('a')

        assert await self.store.load('a') is None

    @pytest.mark.asyncio
    async def test_save_all(self):
        count = await self.store.save_all([make_state('a'), make_state('b')])

        assert count == 2
        assert len(self.store) == 2


class TestJsonFileStateStore:
    """JSON文件存储测试类"""

    @pytest.mark.asyncio
    async def test_save_and_load(self, tmp_path):
        store = JsonFileStateStore({'path': str(tmp_path / 'states')})
        state = make_state('10001', last_notified_at=NOW - timedelta(minutes=1))

        await store.save('10001', state)

        assert (tmp_path / 'states' / '10001.json').exists()
        assert await store.load('10001') == state
        assert list((tmp_path / 'states').glob('*.tmp')) == []

    @pytest.mark.asyncio
    async def test_entity_id_with_special_characters(self, tmp_path):
        store = JsonFileStateStore({'path': str(tmp_path)})
        state = make_state('user/42:home')

        await store.save('user/42:home', state)
        states = await store.load_all_fresher_than(WINDOW, NOW)

        assert [s.entity_id for s in states] == ['user/42:home']

    @pytest.mark.asyncio
    async def test_load_missing_directory(self, tmp_path):
        store = JsonFileStateStore({'path': str(tmp_path / 'nope')})

        assert await store.load('a') is None
        assert await store.load_all_fresher_than(WINDOW, NOW) == []

    @pytest.mark.asyncio
    async def test_corrupt_file_does_not_block_others(self, tmp_path):
        """单个实体恢复失败不影响其他实体"""
        store = JsonFileStateStore({'path': str(tmp_path)})
        await store.save('good', make_state('good'))
        (tmp_path / 'bad.json').write_text('{not json', encoding='utf-8')

        states = await store.load_all_fresher_than(WINDOW, NOW)

        assert [s.entity_id for s in states] == ['good']
        with pytest.raises(StoreError):
            await store.load('bad')

    @pytest.mark.asyncio
    async def test_stale_records_skipped(self, tmp_path):
        store = JsonFileStateStore({'path': str(tmp_path)})
        await store.save('fresh', make_state('fresh'))
        await store.save('stale', make_state('stale', age=timedelta(hours=3)))

        states = await store.load_all_fresher_than(WINDOW, NOW)

        assert [s.entity_id for s in states] == ['fresh']

    @pytest.mark.asyncio
    async def test_delete(self, tmp_path):
        store = JsonFileStateStore({'path': str(tmp_path)})
        await store.save('a', make_state('a'))

        await store.delete('a')
        await store.delete('a')

        assert not (tmp_path / 'a.json').exists()


class TestRedisStateStore:
    """Redis存储测试类"""

    def setup_method(self):
        self.client = MagicMock()
        self.pipe = MagicMock()
        self.pipe.__aenter__.return_value = self.pipe
        self.pipe.execute = AsyncMock(return_value=[True, 1])
        self.client.pipeline.return_value = self.pipe
        self.client.aclose = AsyncMock()
        self.store = RedisStateStore({'key_prefix': 'pm:test'}, client=self.client)

    @pytest.mark.asyncio
    async def test_save(self):
        state = make_state('a')

        await self.store.save('a', state)

        self.client.pipeline.assert_called_once_with(transaction=True)
        key, payload = self.pipe.set.call_args[0]
        assert key == 'pm:test:a'
        assert json.loads(payload)['current_state'] == 'on'
        self.pipe.zadd.assert_called_once_with(
            'pm:test:index', {'a': state.updated_at.timestamp()})
        self.pipe.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_save_error(self):
        self.pipe.execute = AsyncMock(side_effect=RedisError("connection lost"))

        with pytest.raises(StoreError, match="写入Redis状态失败") as exc_info:
            await self.store.save('a', make_state('a'))
        assert exc_info.value.details['entity_id'] == 'a'

    @pytest.mark.asyncio
    async def test_load(self):
        state = make_state('a')
        self.client.get = AsyncMock(return_value=json.dumps(state.to_dict()))

        assert await self.store.load('a') == state
        self.client.get.assert_awaited_once_with('pm:test:a')

    @pytest.mark.asyncio
    async def test_load_missing(self):
        self.client.get = AsyncMock(return_value=None)
        assert await self.store.load('a') is None

    @pytest.mark.asyncio
    async def test_load_error(self):
        self.client.get = AsyncMock(side_effect=RedisError("down"))
        with pytest.raises(StoreError):
            await self.store.load('a')

    @pytest.mark.asyncio
    async def test_load_all_fresher_than(self):
        fresh = make_state('fresh')
        self.client.zrangebyscore = AsyncMock(return_value=['fresh', 'gone', 'broken'])
        self.client.mget = AsyncMock(
            return_value=[json.dumps(fresh.to_dict()), None, 'not-json'])

        states = await self.store.load_all_fresher_than(WINDOW, NOW)

        assert states == [fresh]
        self.client.zrangebyscore.assert_awaited_once_with(
            'pm:test:index', (NOW - WINDOW).timestamp(), '+inf')
        self.client.mget.assert_awaited_once_with(
            ['pm:test:fresh', 'pm:test:gone', 'pm:test:broken'])

    @pytest.mark.asyncio
    async def test_load_all_empty_index(self):
        self.client.zrangebyscore = AsyncMock(return_value=[])
        self.client.mget = AsyncMock()

        assert await self.store.load_all_fresher_than(WINDOW, NOW) == []
        self.client.mget.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_save_all_uses_single_pipeline(self):
        count = await self.store.save_all([make_state('a'), make_state('b')])

        assert count == 2
        self.client.pipeline.assert_called_once_with(transaction=False)
        assert self.pipe.set.call_count == 2
        assert self.pipe.zadd.call_count == 2

    @pytest.mark.asyncio
    async def test_save_all_error(self):
        self.pipe.execute = AsyncMock(side_effect=RedisError("down"))

        assert await self.store.save_all([make_state('a')]) == 0

    @pytest.mark.asyncio
    async def test_delete(self):
        await self.store.delete('a')

        self.pipe.delete.assert_called_once_with('pm:test:a')
        self.pipe.zrem.assert_called_once_with('pm:test:index', 'a')

    @pytest.mark.asyncio
    async def test_close(self):
        await self.store.close()
        self.client.aclose.assert_awaited_once()
