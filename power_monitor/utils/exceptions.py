"""自定义异常类和错误代码"""

import traceback
from enum import Enum
from typing import Optional, Dict, Any
from datetime import datetime


class ErrorCode(Enum):
    """错误代码枚举"""
    # 通用错误 (1000-1999)
    UNKNOWN_ERROR = 1000
    INITIALIZATION_ERROR = 1001
    VALIDATION_ERROR = 1002

    # 配置错误 (2000-2999)
    CONFIG_FILE_NOT_FOUND = 2000
    CONFIG_PARSE_ERROR = 2001
    CONFIG_VALIDATION_ERROR = 2002
    CONFIG_RELOAD_ERROR = 2003

    # 探测错误 (3000-3999)
    PROBER_INITIALIZATION_ERROR = 3000
    PROBE_INTERNAL_ERROR = 3001

    # 通知错误 (4000-4999)
    NOTIFICATION_CONFIG_ERROR = 4000
    NOTIFICATION_SEND_ERROR = 4001
    NOTIFICATION_TEMPLATE_ERROR = 4002

    # 调度错误 (5000-5999)
    SCHEDULER_ERROR = 5000
    TICK_EXECUTION_ERROR = 5001

    # 状态错误 (6000-6999)
    STATE_MACHINE_ERROR = 6000
    STATE_STORE_ERROR = 6001
    STATE_STORE_TIMEOUT = 6002


class PowerMonitorError(Exception):
    """供电监控系统基础异常类"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = True
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.cause = cause
        self.recoverable = recoverable
        self.timestamp = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        """将异常转换为字典格式"""
        return {
            'error_code': self.error_code.value,
            'error_name': self.error_code.name,
            'message': self.message,
            'details': self.details,
            'recoverable': self.recoverable,
            'timestamp': self.timestamp.isoformat(),
            'cause': str(self.cause) if self.cause else None,
            'traceback': traceback.format_exc() if self.cause else None
        }

    def format_error(self) -> str:
        """格式化错误信息"""
        error_msg = f"[{self.error_code.name}] {self.message}"
        if self.details:
            details_str = ", ".join([f"{k}={v}" for k, v in self.details.items()])
            error_msg += f" (详情: {details_str})"
        if self.cause:
            error_msg += f" (原因: {str(self.cause)})"
        return error_msg


class ConfigError(PowerMonitorError):
    """配置相关异常"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.CONFIG_VALIDATION_ERROR,
        config_path: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop('details', {})
        if config_path:
            details['config_path'] = config_path
        super().__init__(message, error_code, details, **kwargs)


class ProbeError(PowerMonitorError):
    """探测器内部故障

    超时、拒绝连接、DNS失败都不是ProbeError，它们是正常的"不可达"结果。
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.PROBE_INTERNAL_ERROR,
        entity_id: Optional[str] = None,
        host: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop('details', {})
        if entity_id:
            details['entity_id'] = entity_id
        if host:
            details['host'] = host
        super().__init__(message, error_code, details, **kwargs)


class NotificationError(PowerMonitorError):
    """通知相关异常"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.NOTIFICATION_SEND_ERROR,
        notifier_name: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop('details', {})
        if notifier_name:
            details['notifier_name'] = notifier_name
        super().__init__(message, error_code, details, **kwargs)


class NotificationConfigError(NotificationError):
    """通知渠道配置异常"""

    def __init__(self, message: str, notifier_name: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            ErrorCode.NOTIFICATION_CONFIG_ERROR,
            notifier_name=notifier_name,
            recoverable=False,
            **kwargs
        )


class NotificationSendError(NotificationError):
    """通知发送异常"""

    def __init__(self, message: str, notifier_name: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            ErrorCode.NOTIFICATION_SEND_ERROR,
            notifier_name=notifier_name,
            recoverable=True,
            **kwargs
        )


class SchedulerError(PowerMonitorError):
    """调度器相关异常"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.SCHEDULER_ERROR,
        **kwargs
    ):
        super().__init__(message, error_code, **kwargs)


class StateMachineError(PowerMonitorError):
    """状态机不变量被破坏，只影响单个实体的处理"""

    def __init__(self, message: str, entity_id: Optional[str] = None, **kwargs):
        details = kwargs.pop('details', {})
        if entity_id:
            details['entity_id'] = entity_id
        super().__init__(
            message,
            ErrorCode.STATE_MACHINE_ERROR,
            details,
            recoverable=False,
            **kwargs
        )


class StoreError(PowerMonitorError):
    """状态存储相关异常"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.STATE_STORE_ERROR,
        entity_id: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop('details', {})
        if entity_id:
            details['entity_id'] = entity_id
        super().__init__(message, error_code, details, **kwargs)
