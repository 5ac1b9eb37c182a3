"""数据模型模块"""

from .monitor_state import (
    PowerState, MonitoredEndpoint, ProbeSample, EntityMonitorState,
    StateTransition, AlertMessage
)
from .settings import MonitorSettings

__all__ = ['PowerState', 'MonitoredEndpoint', 'ProbeSample', 'EntityMonitorState',
           'StateTransition', 'AlertMessage', 'MonitorSettings']
