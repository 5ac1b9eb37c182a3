"""工作池分发器

每次tick把实体列表分发给有上限的一组协程worker，worker从共享下标
依次取实体处理，直到列表耗尽。
"""

import asyncio
from typing import Awaitable, Callable, Dict, Any, List

from ..models.monitor_state import MonitoredEndpoint
from ..utils.log_manager import get_logger


class WorkerPoolDispatcher:
    """有界并发的工作池分发器"""

    def __init__(self, max_concurrency: int = 50):
        """初始化分发器

        Args:
            max_concurrency: 同时处理的实体数上限
        """
        if max_concurrency <= 0:
            raise ValueError("最大并发数必须是正整数")
        self.max_concurrency = max_concurrency
        self.in_flight = 0
        self.peak_in_flight = 0
        self.logger = get_logger('dispatcher')

    async def dispatch(self, endpoints: List[MonitoredEndpoint],
                       handler: Callable[[MonitoredEndpoint], Awaitable[Any]]) -> Dict[str, int]:
        """分发一轮处理

        同一实体在一轮内只会被处理一次；单个实体的异常只记录日志，
        不会中断整轮处理。

        Args:
            endpoints: 本轮的实体列表
            handler: 处理单个实体的协程函数

        Returns:
            本轮统计: total / processed / failed / workers
        """
        unique: Dict[str, MonitoredEndpoint] = {}
        for endpoint in endpoints:
            unique.setdefault(endpoint.entity_id, endpoint)
        queue = list(unique.values())

        stats = {'total': len(queue), 'processed': 0, 'failed': 0, 'workers': 0}
        if not queue:
            return stats

        index = 0

        async def worker():
            nonlocal index
            while index < len(queue):
                endpoint = queue[index]
                index += 1
                self.in_flight += 1
                self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
                try:
                    await handler(endpoint)
                    stats['processed'] += 1
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    stats['failed'] += 1
                    self.logger.error(f"处理实体 {endpoint.entity_id} 时发生异常: {e}",
                                      exc_info=True)
                finally:
                    self.in_flight -= 1

        worker_count = min(self.max_concurrency, len(queue))
        stats['workers'] = worker_count
        self.logger.debug(f"分发 {len(queue)} 个实体，worker数: {worker_count}")

        await asyncio.gather(*(worker() for _ in range(worker_count)))
        return stats
