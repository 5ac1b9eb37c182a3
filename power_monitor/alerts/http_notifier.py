"""HTTP Webhook 通知渠道"""

import asyncio
import json
from typing import Dict, Any
from urllib.parse import urlparse

import aiohttp

from .base import BaseNotifier
from .factory import register_notifier
from .templates import render_template
from ..models.monitor_state import AlertMessage
from ..utils.exceptions import NotificationConfigError, NotificationSendError


@register_notifier('http')
class HttpNotifier(BaseNotifier):
    """HTTP通知渠道，通过Webhook投递通知"""

    def __init__(self, name: str, config: Dict[str, Any]):
        """
        初始化HTTP通知渠道

        Args:
            name: 渠道名称
            config: 渠道配置 (url, method, headers, template, timeout)
        """
        super().__init__(name, config)
        self.url = config.get('url', '')
        self.method = config.get('method', 'POST').upper()
        self.headers = config.get('headers', {})
        self.template = config.get('template', '')

        if not self.validate_config():
            raise NotificationConfigError(f"HTTP通知渠道配置无效: {name}", notifier_name=name)

    def validate_config(self) -> bool:
        """
        验证配置参数是否有效

        Returns:
            bool: 配置是否有效
        """
        if not self.url:
            self.logger.error(f"HTTP通知渠道 {self.name} 缺少URL配置")
            return False

        parsed_url = urlparse(self.url)
        if parsed_url.scheme not in ('http', 'https') or not parsed_url.netloc:
            self.logger.error(f"HTTP通知渠道 {self.name} URL格式无效: {self.url}")
            return False

        valid_methods = ['POST', 'PUT', 'PATCH']
        if self.method not in valid_methods:
            self.logger.error(
                f"HTTP通知渠道 {self.name} 不支持的HTTP方法: {self.method}, "
                f"支持的方法: {valid_methods}"
            )
            return False

        if self.template is not None and not isinstance(self.template, str):
            self.logger.error(f"HTTP通知渠道 {self.name} 模板必须是字符串")
            return False

        return True

    async def send(self, entity_id: str, message: AlertMessage) -> bool:
        request_data = self._prepare_request_data(entity_id, message)
        timeout = aiohttp.ClientTimeout(total=self.get_timeout())

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.request(
                        method=self.method,
                        url=self.url,
                        headers=self.headers,
                        **request_data
                ) as response:
                    if 200 <= response.status < 300:
                        self.logger.debug(
                            f"HTTP通知渠道 {self.name} 发送成功 (实体: {entity_id}, "
                            f"状态码: {response.status})")
                        return True

                    response_text = await response.text()
                    raise NotificationSendError(
                        f"HTTP通知返回错误状态码 {response.status}: {response_text[:200]}",
                        notifier_name=self.name)

        except aiohttp.ClientError as e:
            raise NotificationSendError(f"HTTP请求失败: {e}", notifier_name=self.name, cause=e)
        except asyncio.TimeoutError as e:
            raise NotificationSendError("HTTP请求超时", notifier_name=self.name, cause=e)

    def _prepare_request_data(self, entity_id: str, message: AlertMessage) -> Dict[str, Any]:
        """
        准备HTTP请求数据

        配置了模板时按模板渲染，渲染结果是JSON则以JSON发送，否则作为文本发送。

        Args:
            entity_id: 实体ID
            message: 通知消息

        Returns:
            Dict[str, Any]: 请求参数
        """
        if not self.template:
            return {'json': self._create_default_payload(entity_id, message)}

        template_vars = {
            'entity_id': entity_id,
            'text': message.text,
            'old_state': message.old_state.value,
            'new_state': message.new_state.value,
            'timestamp': message.timestamp.strftime('%Y-%m-%d %H:%M:%S'),
        }
        is_json_template = self.template.strip().startswith('{')
        rendered = render_template(self.template, template_vars, escape_json=is_json_template)

        if is_json_template:
            try:
                return {'json': json.loads(rendered)}
            except json.JSONDecodeError as e:
                self.logger.warning(f"渲染后的JSON格式无效，按文本发送: {e}")
        return {'data': rendered.encode('utf-8')}

    @staticmethod
    def _create_default_payload(entity_id: str, message: AlertMessage) -> Dict[str, Any]:
        return {
            'entity_id': entity_id,
            'old_state': message.old_state.value,
            'new_state': message.new_state.value,
            'text': message.text,
            'timestamp': message.timestamp.isoformat(),
            'metadata': message.metadata,
        }
