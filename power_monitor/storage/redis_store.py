"""Redis状态存储

每个实体一个字符串键保存JSON，另用一个有序集合按更新时间索引，
启动时按新鲜度窗口做范围查询。
"""

import json
from datetime import datetime, timedelta
from typing import Dict, Any, Iterable, List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from .base import BaseStateStore
from .factory import register_store
from ..models.monitor_state import EntityMonitorState
from ..utils.exceptions import StoreError


@register_store('redis')
class RedisStateStore(BaseStateStore):
    """Redis状态存储"""

    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 client: Optional[redis.Redis] = None):
        """
        初始化Redis存储

        Args:
            config: 存储配置 (host, port, database, password, key_prefix, timeout)
            client: 预先创建的Redis客户端，测试时注入
        """
        super().__init__(config)
        self.key_prefix = self.config.get('key_prefix', 'power_monitor:state')
        self._client = client

    @property
    def index_key(self) -> str:
        return f"{self.key_prefix}:index"

    def _key_for(self, entity_id: str) -> str:
        return f"{self.key_prefix}:{entity_id}"

    def _get_client(self) -> redis.Redis:
        if self._client is None:
            timeout = self.config.get('timeout', 5)
            self._client = redis.Redis(
                host=self.config.get('host', 'localhost'),
                port=self.config.get('port', 6379),
                db=self.config.get('database', 0),
                password=self.config.get('password'),
                socket_timeout=timeout,
                socket_connect_timeout=timeout,
                max_connections=self.config.get('max_connections', 20),
                decode_responses=True
            )
        return self._client

    async def load(self, entity_id: str) -> Optional[EntityMonitorState]:
        try:
            raw = await self._get_client().get(self._key_for(entity_id))
        except RedisError as e:
            raise StoreError(f"读取Redis状态失败: {e}", entity_id=entity_id, cause=e)

        if raw is None:
            return None
        return self._decode(entity_id, raw)

    async def load_all_fresher_than(self, window: timedelta,
                                    now: Optional[datetime] = None) -> List[EntityMonitorState]:
        now = now or datetime.now()
        min_score = (now - window).timestamp()
        client = self._get_client()

        try:
            entity_ids = await client.zrangebyscore(self.index_key, min_score, '+inf')
            if not entity_ids:
                return []
            raws = await client.mget([self._key_for(eid) for eid in entity_ids])
        except RedisError as e:
            raise StoreError(f"批量读取Redis状态失败: {e}", cause=e)

        states = []
        for entity_id, raw in zip(entity_ids, raws):
            if raw is None:
                continue
            try:
                state = self._decode(entity_id, raw)
            except StoreError as e:
                self.logger.error(f"跳过无法恢复的实体 {entity_id}: {e.format_error()}")
                continue
            if self.is_fresh(state, window, now):
                states.append(state)
        return states

    async def save(self, entity_id: str, state: EntityMonitorState) -> None:
        try:
            async with self._get_client().pipeline(transaction=True) as pipe:
                self._queue_save(pipe, entity_id, state)
                await pipe.execute()
        except RedisError as e:
            raise StoreError(f"写入Redis状态失败: {e}", entity_id=entity_id, cause=e)

    async def save_all(self, states: Iterable[EntityMonitorState]) -> int:
        states = list(states)
        if not states:
            return 0
        try:
            async with self._get_client().pipeline(transaction=False) as pipe:
                for state in states:
                    self._queue_save(pipe, state.entity_id, state)
                await pipe.execute()
        except RedisError as e:
            self.logger.error(f"批量写入Redis状态失败: {e}")
            return 0
        return len(states)

    async def delete(self, entity_id: str) -> None:
        try:
            async with self._get_client().pipeline(transaction=True) as pipe:
                pipe.delete(self._key_for(entity_id))
                pipe.zrem(self.index_key, entity_id)
                await pipe.execute()
        except RedisError as e:
            raise StoreError(f"删除Redis状态失败: {e}", entity_id=entity_id, cause=e)

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _queue_save(self, pipe, entity_id: str, state: EntityMonitorState):
        updated_at = state.updated_at or datetime.now()
        pipe.set(self._key_for(entity_id), json.dumps(state.to_dict(), ensure_ascii=False))
        pipe.zadd(self.index_key, {entity_id: updated_at.timestamp()})

    def _decode(self, entity_id: str, raw: str) -> EntityMonitorState:
        try:
            return EntityMonitorState.from_dict(json.loads(raw))
        except (KeyError, ValueError, TypeError) as e:
            raise StoreError(f"Redis状态内容无效: {e}", entity_id=entity_id, cause=e)
