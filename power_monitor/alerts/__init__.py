"""通知模块"""

from .base import BaseNotifier
from .factory import (
    create_notifier, create_notifiers, register_notifier, get_supported_notifier_types
)
from .http_notifier import HttpNotifier
from .telegram_notifier import TelegramNotifier
from .gate import NotificationGate
from .templates import render_transition, DEFAULT_TEMPLATES

__all__ = [
    'BaseNotifier',
    'create_notifier',
    'create_notifiers',
    'register_notifier',
    'get_supported_notifier_types',
    'HttpNotifier',
    'TelegramNotifier',
    'NotificationGate',
    'render_transition',
    'DEFAULT_TEMPLATES',
]
