"""监控调度器模块

负责按车队规模计算探测间隔、驱动全量探测tick、轮询确认待定状态以及
定期持久化。
"""

import asyncio
from datetime import datetime
from typing import Callable, Dict, Any, List, Optional

from .dispatcher import WorkerPoolDispatcher
from .entity_processor import EntityProcessor
from .state_machine import resolve_debounce
from ..models.monitor_state import MonitoredEndpoint
from ..models.settings import MonitorSettings
from ..utils.exceptions import SchedulerError
from ..utils.log_manager import get_logger

# (车队规模上限, 间隔秒数)，规模达到最后一个上限后使用 LARGE_FLEET_INTERVAL
INTERVAL_STEPS = [(50, 2), (200, 5), (1000, 10)]
LARGE_FLEET_INTERVAL = 30


def compute_check_interval(fleet_size: int, override: Optional[float] = None) -> float:
    """计算探测间隔

    Args:
        fleet_size: 被监控的实体数量
        override: 运维指定的间隔（秒），正数时直接使用

    Returns:
        探测间隔（秒）
    """
    if override and override > 0:
        return override

    for limit, interval in INTERVAL_STEPS:
        if fleet_size < limit:
            return interval
    return LARGE_FLEET_INTERVAL


class MonitorScheduler:
    """监控调度器

    车队规模只在启动时计算一次，之后间隔固定直到调度器重启。
    同一时刻只允许一个全量tick在执行，到期时上一轮仍在运行则直接跳过。
    """

    def __init__(self, processor: EntityProcessor,
                 endpoints_provider: Callable[[], List[MonitoredEndpoint]],
                 settings_provider: Optional[Callable[[], MonitorSettings]] = None):
        """初始化监控调度器

        Args:
            processor: 实体处理器
            endpoints_provider: 返回当前端点列表的函数，每次tick调用
            settings_provider: 返回当前配置快照的函数
        """
        self.processor = processor
        self.state_manager = processor.state_manager
        self.endpoints_provider = endpoints_provider
        self.settings_provider = settings_provider or MonitorSettings
        self.logger = get_logger('scheduler')

        self.dispatcher: Optional[WorkerPoolDispatcher] = None
        self.fleet_size = 0
        self.check_interval: Optional[float] = None
        self.is_running = False

        self._tick_task: Optional[asyncio.Task] = None
        self._loop_tasks: List[asyncio.Task] = []

        self.tick_count = 0
        self.skipped_ticks = 0
        self.last_tick_at: Optional[datetime] = None
        self.last_tick_stats: Dict[str, int] = {}

    async def start(self, restore: bool = True):
        """启动监控调度器

        Args:
            restore: 是否先从存储恢复状态
        """
        if self.is_running:
            self.logger.warning("监控调度器已经在运行")
            return

        settings = self.settings_provider()
        self.fleet_size = len(self.endpoints_provider())
        self.check_interval = compute_check_interval(self.fleet_size, settings.check_interval)
        self.dispatcher = WorkerPoolDispatcher(settings.max_concurrent_probes)

        if restore:
            await self.state_manager.restore(settings.freshness_window)

        self.is_running = True
        self._loop_tasks = [
            asyncio.create_task(self._tick_loop()),
            asyncio.create_task(self._confirm_loop()),
            asyncio.create_task(self._save_loop()),
        ]

        self.logger.info(
            f"启动监控调度器，实体数: {self.fleet_size}，探测间隔: {self.check_interval}秒，"
            f"最大并发: {settings.max_concurrent_probes}")

    async def stop(self):
        """停止调度器并做最终保存

        正在执行的tick不会被取消，单个探测的时长受探测超时约束。
        """
        if not self.is_running:
            return

        self.is_running = False
        self.logger.info("正在停止监控调度器...")

        for task in self._loop_tasks:
            task.cancel()
        await asyncio.gather(*self._loop_tasks, return_exceptions=True)
        self._loop_tasks = []

        if self._tick_task and not self._tick_task.done():
            self.logger.info("等待当前tick完成")
            await asyncio.gather(self._tick_task, return_exceptions=True)

        settings = self.settings_provider()
        await self.state_manager.flush(settings.shutdown_save_timeout)

        self.logger.info("监控调度器已停止")

    def trigger_tick(self) -> bool:
        """触发一次全量tick

        tick以独立任务运行，不阻塞计时循环。

        Returns:
            是否启动了新的tick，上一轮仍在运行时返回False
        """
        if self.dispatcher is None:
            raise SchedulerError("调度器尚未启动")

        if self._tick_task and not self._tick_task.done():
            self.skipped_ticks += 1
            self.logger.warning(f"上一轮检查仍在进行，跳过本次tick (累计跳过 {self.skipped_ticks} 次)")
            return False

        self._tick_task = asyncio.create_task(self._run_tick())
        return True

    async def _run_tick(self):
        self.last_tick_at = self.processor.clock()
        try:
            endpoints = self.endpoints_provider()
            stats = await self.dispatcher.dispatch(endpoints, self.processor.process_endpoint)
        except Exception as e:
            self.logger.error(f"执行tick时发生异常: {e}", exc_info=True)
            return

        self.tick_count += 1
        self.last_tick_stats = stats
        self.logger.debug(
            f"第 {self.tick_count} 轮检查完成: 处理 {stats['processed']}/{stats['total']}，"
            f"失败 {stats['failed']}")

    async def _tick_loop(self):
        while self.is_running:
            self.trigger_tick()
            await asyncio.sleep(self.check_interval)

    async def _confirm_loop(self):
        """轮询待定实体，确认已满debounce窗口的转换"""
        while self.is_running:
            try:
                await self.processor.confirm_pending()
            except Exception as e:
                self.logger.error(f"确认待定状态时发生异常: {e}", exc_info=True)
            await asyncio.sleep(self.settings_provider().confirm_check_interval)

    async def _save_loop(self):
        """定期批量保存，作为单实体保存失败时的兜底"""
        while self.is_running:
            await asyncio.sleep(self.settings_provider().save_interval)
            try:
                await self.state_manager.save_all()
            except Exception as e:
                self.logger.error(f"定期保存状态时发生异常: {e}", exc_info=True)

    async def check_all_now(self) -> Dict[str, Dict[str, Any]]:
        """立即对所有端点执行一轮检查

        Returns:
            实体ID -> 诊断信息
        """
        settings = self.settings_provider()
        dispatcher = self.dispatcher or WorkerPoolDispatcher(settings.max_concurrent_probes)
        endpoints = self.endpoints_provider()

        self.logger.info(f"立即检查 {len(endpoints)} 个端点")
        await dispatcher.dispatch(endpoints, self.processor.process_endpoint)

        debounce = resolve_debounce(settings.debounce_minutes)
        now = self.processor.clock()
        return {
            endpoint.entity_id: self.state_manager.get_entity_status(
                endpoint.entity_id, now, debounce)
            for endpoint in endpoints
        }

    def get_scheduler_stats(self) -> Dict[str, Any]:
        """获取调度器统计信息"""
        return {
            'is_running': self.is_running,
            'fleet_size': self.fleet_size,
            'check_interval': self.check_interval,
            'max_concurrent_probes': self.dispatcher.max_concurrency if self.dispatcher else None,
            'peak_in_flight': self.dispatcher.peak_in_flight if self.dispatcher else 0,
            'tick_count': self.tick_count,
            'skipped_ticks': self.skipped_ticks,
            'tick_running': bool(self._tick_task and not self._tick_task.done()),
            'last_tick_at': self.last_tick_at.isoformat() if self.last_tick_at else None,
            'last_tick_stats': self.last_tick_stats,
            'pending_entities': len(self.state_manager.pending_entity_ids()),
        }
