"""配置文件监控器"""

import asyncio
import inspect
import os
from typing import Callable, List, Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .config_manager import ConfigManager
from ..utils.exceptions import ConfigError
from ..utils.log_manager import get_logger


class ConfigFileHandler(FileSystemEventHandler):
    """配置文件变更事件处理器

    编辑器保存文件时可能是原地修改，也可能是写临时文件后改名，
    三种事件都视为配置变更。
    """

    def __init__(self, config_path: str, callback: Callable[[], None]):
        """
        初始化事件处理器

        Args:
            config_path: 配置文件的绝对路径
            callback: 配置变更回调函数
        """
        self.config_path = config_path
        self.callback = callback
        self.logger = get_logger('config_watcher')

    def _matches(self, event) -> bool:
        if event.is_directory:
            return False
        paths = [event.src_path, getattr(event, 'dest_path', None)]
        return any(path and os.path.abspath(path) == self.config_path for path in paths)

    def _dispatch_change(self, event):
        if not self._matches(event):
            return
        self.logger.info(f"检测到配置文件变更: {self.config_path}")
        try:
            self.callback()
        except Exception as e:
            self.logger.error(f"处理配置变更失败: {e}")

    def on_modified(self, event):
        self._dispatch_change(event)

    def on_created(self, event):
        self._dispatch_change(event)

    def on_moved(self, event):
        self._dispatch_change(event)


class ConfigWatcher:
    """配置文件监控器，支持热更新

    回调签名为 callback(old_config, new_config)，可以是普通函数或协程函数；
    协程回调在事件循环中以任务方式执行。
    """

    def __init__(self, config_manager: ConfigManager):
        """
        初始化配置监控器

        Args:
            config_manager: 配置管理器实例
        """
        self.config_manager = config_manager
        self.observer: Optional[Observer] = None
        self.logger = get_logger('config_watcher')
        self.change_callbacks: List[Callable] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._running = False

    def add_change_callback(self, callback: Callable):
        """
        添加配置变更回调函数

        Args:
            callback: 回调函数，当配置变更时被调用
        """
        self.change_callbacks.append(callback)

    def remove_change_callback(self, callback: Callable):
        if callback in self.change_callbacks:
            self.change_callbacks.remove(callback)

    def _on_config_changed(self):
        """重新加载配置并通知回调，重载失败时保留旧配置"""
        old_config = dict(self.config_manager.config)
        try:
            new_config = self.config_manager.reload_config()
        except ConfigError as e:
            self.logger.error(f"配置重新加载失败，继续使用旧配置: {e.format_error()}")
            return

        self.logger.info("配置文件已重新加载")

        for callback in self.change_callbacks:
            try:
                result = callback(old_config, new_config)
                if inspect.isawaitable(result):
                    asyncio.ensure_future(result)
            except Exception as e:
                self.logger.error(f"配置变更回调执行失败: {e}", exc_info=True)

    def _schedule_change(self):
        """watchdog线程中触发，切换到事件循环线程执行"""
        if self._loop and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._on_config_changed)
        else:
            self._on_config_changed()

    def start_watching(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        """
        开始监控配置文件

        Args:
            loop: 执行回调的事件循环，None时在watchdog线程中直接执行

        Raises:
            ConfigError: 启动监控失败
        """
        if self._running:
            self.logger.warning("配置监控器已经在运行")
            return

        config_path = os.path.abspath(self.config_manager.config_path)
        self._loop = loop

        try:
            self.observer = Observer()
            event_handler = ConfigFileHandler(config_path, self._schedule_change)
            self.observer.schedule(event_handler, os.path.dirname(config_path), recursive=False)
            self.observer.start()
        except Exception as e:
            self.observer = None
            self.logger.error(f"启动配置监控失败: {e}")
            raise ConfigError(f"启动配置监控失败: {e}", cause=e)

        self._running = True
        self.logger.info(f"开始监控配置文件: {self.config_manager.config_path}")

    def stop_watching(self):
        """停止监控配置文件"""
        if not self._running:
            return

        if self.observer:
            self.observer.stop()
            self.observer.join()
            self.observer = None

        self._running = False
        self.logger.info("配置文件监控已停止")

    def is_running(self) -> bool:
        return self._running

    async def watch_config_changes_async(self, check_interval: float = 5):
        """
        轮询方式监控配置变更，用于文件系统事件不可用的环境

        Args:
            check_interval: 检查间隔（秒）
        """
        self.logger.info(f"开始轮询监控配置文件变更，检查间隔: {check_interval}秒")

        while True:
            try:
                if self.config_manager.is_config_changed():
                    self.logger.info("检测到配置文件变更")
                    self._on_config_changed()
                await asyncio.sleep(check_interval)
            except asyncio.CancelledError:
                self.logger.info("配置轮询任务已取消")
                break
