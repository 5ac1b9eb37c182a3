"""监控运行参数快照"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, Any, Optional


@dataclass(frozen=True)
class MonitorSettings:
    """monitor配置段的不可变快照

    每个决策点都重新获取快照，运维修改的配置无需重启即可生效。
    """
    check_interval: int = 0               # 运维指定的探测间隔（秒），0表示动态计算
    debounce_minutes: float = 5
    notification_cooldown: float = 60     # 秒
    max_concurrent_probes: int = 50
    probe_type: str = 'http'
    probe_timeout: float = 5
    save_interval: float = 300
    shutdown_save_timeout: float = 10
    state_freshness: float = 3600
    confirm_check_interval: float = 1
    history_size: int = 1000
    templates: Dict[str, str] = field(default_factory=dict)

    @property
    def cooldown(self) -> timedelta:
        return timedelta(seconds=self.notification_cooldown)

    @property
    def freshness_window(self) -> timedelta:
        return timedelta(seconds=self.state_freshness)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'MonitorSettings':
        """从monitor配置段创建快照，缺省项使用默认值"""
        data = data or {}
        known = {name: data[name] for name in cls.__dataclass_fields__ if data.get(name) is not None}
        if 'templates' in known:
            known['templates'] = dict(known['templates'])
        return cls(**known)
