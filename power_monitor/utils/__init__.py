"""工具模块"""

from .exceptions import (
    ErrorCode, PowerMonitorError, ConfigError, ProbeError, NotificationError,
    NotificationConfigError, NotificationSendError, SchedulerError, StateMachineError, StoreError
)
from .log_manager import LogManager, LogLevel, get_logger, configure_logging, log_manager
from .duration import format_duration

__all__ = [
    'ErrorCode', 'PowerMonitorError', 'ConfigError', 'ProbeError', 'NotificationError',
    'NotificationConfigError', 'NotificationSendError', 'SchedulerError', 'StateMachineError',
    'StoreError', 'LogManager', 'LogLevel', 'get_logger', 'configure_logging', 'log_manager',
    'format_duration'
]
