"""供电监控相关的数据模型"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Any, Optional


class PowerState(Enum):
    """已确认的供电状态"""
    UNKNOWN = 'unknown'
    ON = 'on'
    OFF = 'off'

    @classmethod
    def from_reachable(cls, reachable: bool) -> 'PowerState':
        return cls.ON if reachable else cls.OFF


@dataclass
class MonitoredEndpoint:
    """被监控的端点（通常是用户家里的路由器）

    last_known_state / last_changed_at 是所有者记录中保存的最后供电状态，
    实体首次检查时优先采用它，避免重启后误报。
    """
    entity_id: str
    host: Optional[str]
    port: int = 80
    enabled: bool = True
    last_known_state: Optional[PowerState] = None
    last_changed_at: Optional[datetime] = None


@dataclass
class ProbeSample:
    """一次可达性探测的结果，不持久化

    reachable为None表示探测没有执行（未配置或已禁用）。
    """
    entity_id: str
    observed_at: datetime
    reachable: Optional[bool]

    @property
    def state(self) -> Optional[PowerState]:
        if self.reachable is None:
            return None
        return PowerState.from_reachable(self.reachable)


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass
class EntityMonitorState:
    """单个实体的持久化监控状态"""
    entity_id: str
    current_state: PowerState = PowerState.UNKNOWN
    pending_state: Optional[PowerState] = None
    pending_since: Optional[datetime] = None
    last_stable_at: Optional[datetime] = None
    instability_started_at: Optional[datetime] = None
    switch_count: int = 0
    last_notified_at: Optional[datetime] = None
    last_probe_at: Optional[datetime] = None
    last_probe_ok: Optional[bool] = None
    updated_at: Optional[datetime] = None

    # 仅用于诊断的计数器，不持久化
    probe_count: int = field(default=0, compare=False)
    reachable_count: int = field(default=0, compare=False)

    @property
    def is_pending(self) -> bool:
        return self.pending_state is not None

    def to_dict(self) -> Dict[str, Any]:
        """序列化为可写入存储的字典"""
        return {
            'entity_id': self.entity_id,
            'current_state': self.current_state.value,
            'pending_state': self.pending_state.value if self.pending_state else None,
            'pending_since': _to_iso(self.pending_since),
            'last_stable_at': _to_iso(self.last_stable_at),
            'instability_started_at': _to_iso(self.instability_started_at),
            'switch_count': self.switch_count,
            'last_notified_at': _to_iso(self.last_notified_at),
            'last_probe_at': _to_iso(self.last_probe_at),
            'last_probe_ok': self.last_probe_ok,
            'updated_at': _to_iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EntityMonitorState':
        """从存储记录恢复状态

        Raises:
            KeyError: 缺少entity_id
            ValueError: 状态值或时间格式无效
        """
        pending = data.get('pending_state')
        return cls(
            entity_id=str(data['entity_id']),
            current_state=PowerState(data.get('current_state') or 'unknown'),
            pending_state=PowerState(pending) if pending else None,
            pending_since=_from_iso(data.get('pending_since')),
            last_stable_at=_from_iso(data.get('last_stable_at')),
            instability_started_at=_from_iso(data.get('instability_started_at')),
            switch_count=int(data.get('switch_count') or 0),
            last_notified_at=_from_iso(data.get('last_notified_at')),
            last_probe_at=_from_iso(data.get('last_probe_at')),
            last_probe_ok=data.get('last_probe_ok'),
            updated_at=_from_iso(data.get('updated_at')),
        )


@dataclass
class StateTransition:
    """已确认的状态转换事件

    switch_count和instability_started_at是确认前的值，确认后状态中的这两个字段会被清空。
    """
    entity_id: str
    old_state: PowerState
    new_state: PowerState
    confirmed_at: datetime
    pending_since: Optional[datetime]
    duration_in_previous_state: Optional[timedelta]
    switch_count: int = 0
    instability_started_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> Optional[int]:
        if self.duration_in_previous_state is None:
            return None
        return max(0, int(self.duration_in_previous_state.total_seconds()))


@dataclass
class AlertMessage:
    """渲染后的通知消息"""
    entity_id: str
    old_state: PowerState
    new_state: PowerState
    text: str
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: Dict[str, Any] = field(default_factory=dict)
