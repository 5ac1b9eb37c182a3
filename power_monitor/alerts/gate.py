"""通知闸门

按实体做冷却去重：同一实体在冷却时间内只发送一次通知。被抑制或发送
失败都不会回滚已经确认的状态转换。
"""

import asyncio
from datetime import datetime
from typing import Callable, Dict, List, Any, Optional

from .base import BaseNotifier
from .templates import render_transition
from ..models.monitor_state import AlertMessage, EntityMonitorState, StateTransition
from ..models.settings import MonitorSettings
from ..utils.exceptions import NotificationConfigError, NotificationError
from ..utils.log_manager import get_logger


class NotificationGate:
    """通知闸门，负责冷却判断、消息渲染和多渠道投递"""

    def __init__(self, notifiers: Optional[List[BaseNotifier]] = None,
                 settings_provider: Optional[Callable[[], MonitorSettings]] = None):
        """
        初始化通知闸门

        Args:
            notifiers: 通知渠道列表
            settings_provider: 返回当前配置快照的函数，每次通知前调用
        """
        self.notifiers: List[BaseNotifier] = []
        self.settings_provider = settings_provider or MonitorSettings
        self.logger = get_logger('notification_gate')

        self.sent_count = 0
        self.suppressed_count = 0
        self.failed_count = 0

        for notifier in notifiers or []:
            self.add_notifier(notifier)

    def add_notifier(self, notifier: BaseNotifier):
        """
        添加通知渠道

        Args:
            notifier: 通知渠道实例
        """
        if not isinstance(notifier, BaseNotifier):
            raise NotificationConfigError(f"通知渠道必须继承自BaseNotifier: {type(notifier)}")

        self.notifiers.append(notifier)
        self.logger.info(f"已添加通知渠道: {notifier.name} ({notifier.notifier_type})")

    def replace_notifiers(self, notifiers: List[BaseNotifier]):
        """配置重载后整体替换通知渠道"""
        self.notifiers = []
        for notifier in notifiers:
            self.add_notifier(notifier)

    def get_notifier_names(self) -> List[str]:
        return [notifier.name for notifier in self.notifiers]

    def in_cooldown(self, state: EntityMonitorState, now: datetime,
                    settings: Optional[MonitorSettings] = None) -> bool:
        """
        判断实体是否处于通知冷却期

        Args:
            state: 实体状态
            now: 当前时间
            settings: 配置快照，None时重新获取

        Returns:
            bool: 是否应抑制本次通知
        """
        if state.last_notified_at is None:
            return False
        settings = settings or self.settings_provider()
        return now - state.last_notified_at < settings.cooldown

    async def notify(self, state: EntityMonitorState, transition: StateTransition,
                     now: Optional[datetime] = None) -> bool:
        """
        为已确认的转换发送通知

        成功投递到至少一个渠道时更新state.last_notified_at。

        Args:
            state: 实体状态（原地修改last_notified_at）
            transition: 已确认的状态转换
            now: 当前时间

        Returns:
            bool: 是否有渠道投递成功
        """
        now = now or datetime.now()
        settings = self.settings_provider()

        if self.in_cooldown(state, now, settings):
            remaining = settings.cooldown - (now - state.last_notified_at)
            self.suppressed_count += 1
            self.logger.info(
                f"实体 {state.entity_id} 处于通知冷却期，跳过通知 "
                f"(剩余 {remaining.total_seconds():.0f}s)")
            return False

        if not self.notifiers:
            self.logger.warning("没有配置通知渠道，跳过通知发送")
            return False

        try:
            text = render_transition(transition, settings.templates)
        except NotificationError as e:
            self.logger.error(f"渲染实体 {state.entity_id} 的通知失败: {e.format_error()}")
            return False

        message = AlertMessage(
            entity_id=state.entity_id,
            old_state=transition.old_state,
            new_state=transition.new_state,
            text=text,
            timestamp=transition.confirmed_at,
            metadata={
                'duration_seconds': transition.duration_seconds,
                'switch_count': transition.switch_count,
            }
        )

        results = await asyncio.gather(
            *(self._send_to_notifier(notifier, message) for notifier in self.notifiers))
        delivered = self._log_send_results(results, message)

        if delivered:
            state.last_notified_at = now
            self.sent_count += 1
        else:
            self.failed_count += 1
        return delivered

    async def _send_to_notifier(self, notifier: BaseNotifier,
                                message: AlertMessage) -> Dict[str, Any]:
        """
        向单个渠道发送消息，异常转换为失败结果

        Args:
            notifier: 通知渠道
            message: 通知消息

        Returns:
            Dict[str, Any]: 发送结果
        """
        try:
            success = await notifier.send(message.entity_id, message)
            return {'notifier': notifier.name, 'success': bool(success), 'error': None}
        except NotificationError as e:
            self.logger.error(f"通知渠道 {notifier.name} 发送失败: {e.format_error()}")
            return {'notifier': notifier.name, 'success': False, 'error': str(e)}
        except Exception as e:
            self.logger.error(f"通知渠道 {notifier.name} 发送异常: {e}", exc_info=True)
            return {'notifier': notifier.name, 'success': False, 'error': str(e)}

    def _log_send_results(self, results: List[Dict[str, Any]], message: AlertMessage) -> bool:
        success_count = sum(1 for result in results if result['success'])
        failed = [result['notifier'] for result in results if not result['success']]

        if success_count:
            self.logger.info(
                f"通知发送成功 {success_count}/{len(results)} 个渠道 "
                f"(实体: {message.entity_id}, 状态: {message.new_state.value})")
        if failed:
            self.logger.warning(
                f"以下通知渠道发送失败: {', '.join(failed)} (实体: {message.entity_id})")
        return success_count > 0

    def get_stats(self) -> Dict[str, Any]:
        return {
            'notifiers': self.get_notifier_names(),
            'sent': self.sent_count,
            'suppressed': self.suppressed_count,
            'failed': self.failed_count,
        }
