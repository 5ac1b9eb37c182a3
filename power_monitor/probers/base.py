"""端点探测器基类"""

import re
from abc import ABC, abstractmethod
from typing import Dict, Any, Optional, Tuple

from ..utils.exceptions import ProbeError
from ..utils.log_manager import get_logger

_ADDRESS_WITH_PORT = re.compile(r'^(.+):(\d+)$')


def parse_address(address: str, default_port: int = 80) -> Tuple[str, int]:
    """
    拆分 "host:port" 形式的地址

    Args:
        address: 主机名或IP，可带端口
        default_port: 地址中没有端口时使用的端口

    Returns:
        Tuple[str, int]: (主机, 端口)
    """
    address = address.strip()
    match = _ADDRESS_WITH_PORT.match(address)
    if match and not match.group(1).endswith(':'):
        return match.group(1), int(match.group(2))
    return address, default_port


class BaseProber(ABC):
    """端点探测器抽象基类

    一次探测只发起一次轻量连接检查，不重试。超时、拒绝连接、DNS失败都
    返回False，不区分原因；主机未配置时返回None。
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        初始化探测器

        Args:
            config: 探测器配置参数
        """
        self.config = config or {}
        self.prober_type = self.__class__.__name__.replace('Prober', '').lower()
        self.logger = get_logger(f'prober.{self.prober_type}')

    async def probe(self, host: Optional[str], port: int = 80,
                    timeout: Optional[float] = None) -> Optional[bool]:
        """
        探测端点是否可达

        Args:
            host: 主机名或IP，可带 ":port"
            port: 默认端口
            timeout: 超时时间（秒），None时使用配置值

        Returns:
            Optional[bool]: True可达，False不可达，None表示未配置

        Raises:
            ProbeError: 探测器内部故障
        """
        if not host or not str(host).strip():
            return None

        target_host, target_port = parse_address(str(host), port)
        if timeout is None:
            timeout = self.get_timeout()

        try:
            return await self._check(target_host, target_port, timeout)
        except ProbeError:
            raise
        except Exception as e:
            raise ProbeError(f"探测器内部错误: {e}", host=target_host, cause=e) from e

    @abstractmethod
    async def _check(self, host: str, port: int, timeout: float) -> bool:
        """
        执行一次连接检查

        Args:
            host: 主机
            port: 端口
            timeout: 超时时间（秒）

        Returns:
            bool: 是否可达
        """
        pass

    def validate_config(self) -> bool:
        """
        验证配置参数是否有效

        Returns:
            bool: 配置是否有效
        """
        timeout = self.config.get('timeout', 5)
        return isinstance(timeout, (int, float)) and timeout > 0

    def get_timeout(self) -> float:
        """
        获取超时时间配置

        Returns:
            float: 超时时间（秒）
        """
        return self.config.get('timeout', 5)

    async def close(self):
        """释放探测器持有的资源"""
        pass
