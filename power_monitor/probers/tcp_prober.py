"""TCP 连接探测器"""

import asyncio

from .base import BaseProber
from .factory import register_prober


@register_prober('tcp')
class TcpProber(BaseProber):
    """TCP探测器，能在超时内建立TCP连接即视为可达"""

    async def _check(self, host: str, port: int, timeout: float) -> bool:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout=timeout)
        except asyncio.TimeoutError:
            self.logger.debug(f"连接 {host}:{port} 超时 ({timeout}s)")
            return False
        except OSError as e:
            self.logger.debug(f"连接 {host}:{port} 失败: {e}")
            return False

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True
