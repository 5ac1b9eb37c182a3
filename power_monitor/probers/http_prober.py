"""HTTP HEAD 探测器"""

import asyncio
from typing import Dict, Any, Optional

import aiohttp

from .base import BaseProber
from .factory import register_prober


@register_prober('http')
class HttpProber(BaseProber):
    """HTTP探测器

    向 http://host:port 发送一次HEAD请求。路由器只要返回任何HTTP响应
    （包括4xx/5xx）就视为通电；超时、拒绝连接、DNS失败视为断电。
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        """获取共享的HTTP会话，并发数由调度器控制，这里不再限制"""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(limit=0, force_close=True, ssl=False)
            self._session = aiohttp.ClientSession(connector=connector)
        return self._session

    async def _check(self, host: str, port: int, timeout: float) -> bool:
        url = f"http://{host}:{port}"
        session = self._get_session()
        try:
            async with session.head(
                    url,
                    timeout=aiohttp.ClientTimeout(total=timeout),
                    allow_redirects=False
            ) as response:
                self.logger.debug(f"HEAD {url} -> {response.status}")
                return True
        except asyncio.TimeoutError:
            self.logger.debug(f"HEAD {url} 超时 ({timeout}s)")
            return False
        except (aiohttp.ClientError, OSError) as e:
            self.logger.debug(f"HEAD {url} 失败: {e}")
            return False

    async def close(self):
        """关闭共享的HTTP会话"""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
