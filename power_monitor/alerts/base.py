"""通知渠道基类"""

from abc import ABC, abstractmethod
from typing import Dict, Any

from ..models.monitor_state import AlertMessage
from ..utils.log_manager import get_logger


class BaseNotifier(ABC):
    """通知渠道抽象基类

    渠道只负责投递一次，不做重试；失败通过NotificationSendError报告。
    """

    def __init__(self, name: str, config: Dict[str, Any]):
        """
        初始化通知渠道

        Args:
            name: 渠道名称
            config: 渠道配置参数
        """
        self.name = name
        self.config = config
        self.notifier_type = self.__class__.__name__.replace('Notifier', '').lower()
        self.logger = get_logger(f'notifier.{self.notifier_type}.{self.name}')

    @abstractmethod
    async def send(self, entity_id: str, message: AlertMessage) -> bool:
        """
        发送通知

        Args:
            entity_id: 实体ID
            message: 渲染好的通知消息

        Returns:
            bool: 发送是否成功

        Raises:
            NotificationSendError: 投递失败
        """
        pass

    @abstractmethod
    def validate_config(self) -> bool:
        """
        验证配置参数是否有效

        Returns:
            bool: 配置是否有效
        """
        pass

    def get_timeout(self) -> int:
        """
        获取超时时间配置

        Returns:
            int: 超时时间（秒）
        """
        return self.config.get('timeout', 10)
