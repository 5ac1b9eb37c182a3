"""Telegram Bot 通知渠道"""

import asyncio
from typing import Dict, Any, Optional

import aiohttp

from .base import BaseNotifier
from .factory import register_notifier
from ..models.monitor_state import AlertMessage
from ..utils.exceptions import NotificationConfigError, NotificationSendError


@register_notifier('telegram')
class TelegramNotifier(BaseNotifier):
    """Telegram通知渠道

    未配置chat_id时把实体ID当作聊天ID（实体ID就是订阅者的Telegram ID），
    chat_ids映射可以为个别实体指定其他聊天（例如频道）。
    """

    BASE_URL = 'https://api.telegram.org'

    def __init__(self, name: str, config: Dict[str, Any]):
        super().__init__(name, config)
        self.bot_token = config.get('bot_token', '')
        self.chat_id = config.get('chat_id')
        self.chat_ids: Dict[str, Any] = {str(k): v for k, v in (config.get('chat_ids') or {}).items()}
        self.parse_mode = config.get('parse_mode', 'HTML')
        self.api_base = config.get('api_base', self.BASE_URL).rstrip('/')

        if not self.validate_config():
            raise NotificationConfigError(f"Telegram通知渠道配置无效: {name}", notifier_name=name)

    def validate_config(self) -> bool:
        if not self.bot_token or ':' not in str(self.bot_token):
            self.logger.error(f"Telegram通知渠道 {self.name} 的bot_token无效")
            return False
        return True

    def resolve_chat_id(self, entity_id: str) -> Optional[Any]:
        """确定实体的通知目标聊天"""
        return self.chat_ids.get(str(entity_id), self.chat_id or entity_id)

    async def send(self, entity_id: str, message: AlertMessage) -> bool:
        chat_id = self.resolve_chat_id(entity_id)
        url = f"{self.api_base}/bot{self.bot_token}/sendMessage"
        payload = {
            'chat_id': chat_id,
            'text': message.text,
            'parse_mode': self.parse_mode,
            'disable_web_page_preview': True,
        }
        timeout = aiohttp.ClientTimeout(total=self.get_timeout())

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(url, json=payload) as response:
                    if response.status == 200:
                        self.logger.debug(f"Telegram通知已发送 (实体: {entity_id}, 聊天: {chat_id})")
                        return True

                    body = await response.text()
                    raise NotificationSendError(
                        f"Telegram API错误 {response.status}: {body[:200]}",
                        notifier_name=self.name)

        except aiohttp.ClientError as e:
            raise NotificationSendError(f"Telegram请求失败: {e}", notifier_name=self.name, cause=e)
        except asyncio.TimeoutError as e:
            raise NotificationSendError("Telegram请求超时", notifier_name=self.name, cause=e)
