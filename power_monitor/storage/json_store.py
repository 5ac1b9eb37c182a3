"""JSON文件状态存储

每个实体一个JSON文件，写入先落到临时文件再原子替换，
不同实体的写入不需要全局锁。
"""

import asyncio
import json
import os
import tempfile
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, Any, List, Optional
from urllib.parse import quote, unquote

from .base import BaseStateStore
from .factory import register_store
from ..models.monitor_state import EntityMonitorState
from ..utils.exceptions import StoreError

_SUFFIX = '.json'


@register_store('json')
class JsonFileStateStore(BaseStateStore):
    """JSON文件状态存储"""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        初始化JSON文件存储

        Args:
            config: 存储配置，path为状态目录，默认 data/states
        """
        super().__init__(config)
        self.directory = Path(self.config.get('path', 'data/states'))

    def _path_for(self, entity_id: str) -> Path:
        return self.directory / f"{quote(str(entity_id), safe='')}{_SUFFIX}"

    async def load(self, entity_id: str) -> Optional[EntityMonitorState]:
        path = self._path_for(entity_id)
        try:
            data = await asyncio.to_thread(self._read_file, path)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            raise StoreError(f"读取状态文件失败: {path}", entity_id=entity_id, cause=e)

        try:
            return EntityMonitorState.from_dict(data)
        except (KeyError, ValueError, TypeError) as e:
            raise StoreError(f"状态文件内容无效: {path}", entity_id=entity_id, cause=e)

    async def load_all_fresher_than(self, window: timedelta,
                                    now: Optional[datetime] = None) -> List[EntityMonitorState]:
        now = now or datetime.now()
        if not self.directory.exists():
            return []

        try:
            paths = await asyncio.to_thread(
                lambda: sorted(self.directory.glob(f'*{_SUFFIX}')))
        except OSError as e:
            raise StoreError(f"列出状态目录失败: {self.directory}", cause=e)

        states = []
        for path in paths:
            entity_id = unquote(path.name[:-len(_SUFFIX)])
            try:
                state = await self.load(entity_id)
            except StoreError as e:
                self.logger.error(f"跳过无法恢复的实体 {entity_id}: {e.format_error()}")
                continue

            if state and self.is_fresh(state, window, now):
                states.append(state)

        return states

    async def save(self, entity_id: str, state: EntityMonitorState) -> None:
        path = self._path_for(entity_id)
        try:
            await asyncio.to_thread(self._write_file, path, state.to_dict())
        except (OSError, TypeError, ValueError) as e:
            raise StoreError(f"写入状态文件失败: {path}", entity_id=entity_id, cause=e)

    async def delete(self, entity_id: str) -> None:
        path = self._path_for(entity_id)
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as e:
            raise StoreError(f"删除状态文件失败: {path}", entity_id=entity_id, cause=e)

    @staticmethod
    def _read_file(path: Path) -> Dict[str, Any]:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)

    def _write_file(self, path: Path, data: Dict[str, Any]):
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
