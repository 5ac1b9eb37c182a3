#!/usr/bin/env python3
"""
供电监控系统主应用程序入口

集成所有组件，实现应用程序启动和优雅关闭，
添加信号处理和异常捕获。
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import Optional, Dict, Any

from power_monitor.alerts.factory import create_notifiers
from power_monitor.alerts.gate import NotificationGate
from power_monitor.probers import prober_factory
from power_monitor.probers.base import BaseProber
from power_monitor.services.config_manager import ConfigManager
from power_monitor.services.config_watcher import ConfigWatcher
from power_monitor.services.entity_processor import EntityProcessor
from power_monitor.services.monitor_scheduler import MonitorScheduler
from power_monitor.services.state_manager import StateManager
from power_monitor.storage import create_state_store
from power_monitor.storage.base import BaseStateStore
from power_monitor.utils.exceptions import PowerMonitorError, ConfigError
from power_monitor.utils.log_manager import log_manager, get_logger

__version__ = "1.0.0"


class PowerMonitorApp:
    """供电监控系统主应用程序类"""

    def __init__(self, config_path: str, log_overrides: Optional[Dict[str, Any]] = None):
        """初始化应用程序

        Args:
            config_path: 配置文件路径
            log_overrides: 命令行指定的日志配置，覆盖配置文件中的值
        """
        self.config_path = config_path
        self.log_overrides = log_overrides or {}
        self.logger: Optional[logging.Logger] = None
        self.is_running = False
        self.shutdown_event = asyncio.Event()

        # 核心组件
        self.config_manager: Optional[ConfigManager] = None
        self.config_watcher: Optional[ConfigWatcher] = None
        self.store: Optional[BaseStateStore] = None
        self.state_manager: Optional[StateManager] = None
        self.prober: Optional[BaseProber] = None
        self.gate: Optional[NotificationGate] = None
        self.processor: Optional[EntityProcessor] = None
        self.monitor_scheduler: Optional[MonitorScheduler] = None

        self.background_tasks = set()

    async def initialize(self, persist: bool = True):
        """初始化应用程序组件

        Args:
            persist: 是否启用状态存储，单次检查模式下不写入存储
        """
        try:
            self.config_manager = ConfigManager(self.config_path)
            self.config_manager.load_config()

            self._configure_logging(self.config_manager.get_global_config())
            self.logger = get_logger('main')
            self.logger.info("开始初始化供电监控系统")

            settings = self.config_manager.get_monitor_settings()

            if persist:
                self.store = create_state_store(self.config_manager.get_storage_config())
            self.state_manager = StateManager(self.store, history_size=settings.history_size)

            self.prober = prober_factory.create_prober(
                settings.probe_type, {'timeout': settings.probe_timeout})

            notifiers = create_notifiers(self.config_manager.get_notifications_config())
            self.gate = NotificationGate(
                notifiers, settings_provider=self.config_manager.get_monitor_settings)

            self.processor = EntityProcessor(
                self.state_manager, self.prober, self.gate,
                settings_provider=self.config_manager.get_monitor_settings)
            self.monitor_scheduler = MonitorScheduler(
                self.processor,
                endpoints_provider=self.config_manager.get_endpoints,
                settings_provider=self.config_manager.get_monitor_settings)

            self.config_watcher = ConfigWatcher(self.config_manager)
            self.config_watcher.add_change_callback(self._on_config_changed_callback)

            self.logger.info("应用程序组件初始化完成")

        except Exception as e:
            if self.logger:
                self.logger.error(f"应用程序初始化失败: {e}", exc_info=True)
            else:
                print(f"应用程序初始化失败: {e}", file=sys.stderr)
            raise

    def _configure_logging(self, global_config: Dict[str, Any]):
        """配置日志系统

        Args:
            global_config: 全局配置
        """
        global_config = {**global_config, **self.log_overrides}
        log_config = {
            'log_level': global_config.get('log_level', 'INFO'),
            'enable_console': True,
            'enable_file': bool(global_config.get('log_file'))
        }

        if global_config.get('log_file'):
            log_config['log_file'] = global_config['log_file']
            log_config['max_file_size'] = global_config.get('max_log_size', 10 * 1024 * 1024)
            log_config['backup_count'] = global_config.get('log_backup_count', 5)

        log_manager.configure(log_config)

    async def _on_config_changed_callback(self, old_config: Dict[str, Any],
                                          new_config: Dict[str, Any]):
        """配置文件变更回调

        重新配置日志和通知渠道，驱逐从配置中删除或被禁用的端点。
        监控参数由各组件在使用时重新读取，无需处理。
        """
        try:
            self._configure_logging(new_config.get('global') or {})
            self.gate.replace_notifiers(create_notifiers(new_config.get('notifications') or []))

            old_ids = {str(entity_id) for entity_id in (old_config.get('endpoints') or {})}
            new_endpoints = {str(entity_id): endpoint_config or {}
                             for entity_id, endpoint_config
                             in (new_config.get('endpoints') or {}).items()}
            disabled_ids = {entity_id for entity_id, endpoint_config in new_endpoints.items()
                            if endpoint_config.get('enabled', True) is False}

            for entity_id in sorted((old_ids - set(new_endpoints)) | disabled_ids):
                await self.state_manager.evict(entity_id)
            for entity_id in set(new_endpoints) - disabled_ids:
                self.state_manager.reactivate(entity_id)

            self.logger.info("配置重新加载完成")

        except Exception as e:
            self.logger.error(f"应用新配置失败: {e}", exc_info=True)

    async def start(self):
        """启动应用程序，直到收到关闭信号"""
        if self.is_running:
            self.logger.warning("应用程序已经在运行")
            return

        try:
            self.is_running = True
            self.logger.info("启动供电监控系统")

            try:
                self.config_watcher.start_watching(asyncio.get_running_loop())
            except ConfigError as e:
                self.logger.warning(f"文件事件监控不可用，仅使用轮询: {e}")

            config_watcher_task = asyncio.create_task(
                self.config_watcher.watch_config_changes_async())
            self.background_tasks.add(config_watcher_task)
            config_watcher_task.add_done_callback(self.background_tasks.discard)

            await self.monitor_scheduler.start()

            self.logger.info("供电监控系统启动完成")

            await self.shutdown_event.wait()

        except Exception as e:
            self.logger.error(f"应用程序运行异常: {e}", exc_info=True)
            raise
        finally:
            await self.stop()

    async def stop(self):
        """停止应用程序"""
        if not self.is_running:
            return

        self.logger.info("正在停止供电监控系统...")
        self.is_running = False

        try:
            if self.monitor_scheduler:
                await self.monitor_scheduler.stop()

            if self.config_watcher:
                self.config_watcher.stop_watching()

            for task in self.background_tasks:
                if not task.done():
                    task.cancel()
            if self.background_tasks:
                await asyncio.gather(*self.background_tasks, return_exceptions=True)
            self.background_tasks.clear()

            await self.close_resources()

            self.logger.info("供电监控系统已停止")
            log_manager.cleanup()

        except Exception as e:
            self.logger.error(f"停止应用程序时发生异常: {e}", exc_info=True)

    async def close_resources(self):
        """关闭探测器会话和存储连接"""
        if self.prober:
            await self.prober.close()
        if self.store:
            await self.store.close()

    def shutdown(self):
        """触发应用程序关闭"""
        if self.logger:
            self.logger.info("收到关闭信号")
        self.shutdown_event.set()

    def get_status(self) -> Dict[str, Any]:
        """获取应用程序状态

        Returns:
            应用程序状态信息
        """
        status = {
            'is_running': self.is_running,
            'config_path': self.config_path,
            'background_tasks_count': len(self.background_tasks)
        }

        if self.monitor_scheduler:
            status['scheduler_stats'] = self.monitor_scheduler.get_scheduler_stats()

        if self.state_manager:
            status['current_states'] = self.state_manager.get_all_states()

        if self.gate:
            status['notification_stats'] = self.gate.get_stats()

        return status


# 全局应用程序实例
app: Optional[PowerMonitorApp] = None


def signal_handler(signum, frame=None):
    """信号处理器"""
    signal_name = signal.Signals(signum).name
    print(f"\n收到信号 {signal_name} ({signum})")

    if app:
        app.shutdown()
    else:
        print("应用程序未初始化，直接退出")
        sys.exit(0)


def install_signal_handlers():
    """注册SIGINT/SIGTERM，事件循环不支持时退回signal.signal"""
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, signal_handler, signum)
        except NotImplementedError:
            signal.signal(signum, signal_handler)


def create_argument_parser() -> argparse.ArgumentParser:
    """创建命令行参数解析器"""
    parser = argparse.ArgumentParser(
        prog='power-monitor',
        description='供电监控系统 - 通过探测家庭路由器的可达性推断是否停电并发送通知',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例用法:
  %(prog)s config.yaml                    # 使用指定配置文件启动监控
  %(prog)s --validate config.yaml         # 验证配置文件格式
  %(prog)s --check-once config.yaml       # 探测所有端点一次并输出结果
  %(prog)s --version                      # 显示版本信息

配置文件格式请参考 config/example.yaml
        """
    )

    parser.add_argument(
        'config_file',
        nargs='?',
        help='YAML配置文件路径'
    )

    parser.add_argument(
        '--version', '-v',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    parser.add_argument(
        '--validate',
        action='store_true',
        help='验证配置文件格式并退出'
    )

    parser.add_argument(
        '--check-once',
        action='store_true',
        help='探测所有端点一次后退出'
    )

    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='设置日志级别（覆盖配置文件设置）'
    )

    parser.add_argument(
        '--log-file',
        help='日志文件路径（覆盖配置文件设置）'
    )

    return parser


def validate_config_file(config_path: str) -> bool:
    """验证配置文件

    Args:
        config_path: 配置文件路径

    Returns:
        验证是否成功
    """
    print(f"正在验证配置文件: {config_path}")

    try:
        config_manager = ConfigManager(config_path)
        config_manager.load_config()
    except ConfigError as e:
        print(f"❌ 配置文件验证失败: {e}")
        return False

    settings = config_manager.get_monitor_settings()
    endpoints = config_manager.get_endpoints()
    notifications = config_manager.get_notifications_config()
    storage = config_manager.get_storage_config()

    print("✅ 配置文件验证成功!")
    print(f"   - 端点数量: {len(endpoints)} (启用 {sum(1 for e in endpoints if e.enabled)})")
    print(f"   - 探测方式: {settings.probe_type}, 超时 {settings.probe_timeout}s")
    print(f"   - 状态存储: {storage.get('type', 'memory')}")
    print(f"   - 通知渠道数量: {len(notifications)}")

    for notification in notifications:
        print(f"     * {notification.get('name')} ({notification.get('type')})")

    return True


async def check_once(config_path: str, log_overrides: Optional[Dict[str, Any]] = None) -> bool:
    """探测所有端点一次

    Args:
        config_path: 配置文件路径
        log_overrides: 日志配置覆盖

    Returns:
        是否所有启用的端点都可达
    """
    print(f"正在探测端点: {config_path}")

    once_app = PowerMonitorApp(config_path, log_overrides)
    try:
        await once_app.initialize(persist=False)
        results = await once_app.monitor_scheduler.check_all_now()
    except PowerMonitorError as e:
        print(f"❌ 探测失败: {e}")
        return False
    finally:
        await once_app.close_resources()

    print(f"✅ 探测完成，共 {len(results)} 个端点:")

    all_reachable = True
    for entity_id, status in results.items():
        probe_ok = status.get('last_probe_ok')
        if probe_ok is None:
            print(f"   ⚪ {entity_id}: 未探测（未配置或已禁用）")
        elif probe_ok:
            print(f"   🟢 {entity_id}: 可达")
        else:
            print(f"   🔴 {entity_id}: 不可达")
            all_reachable = False

    return all_reachable


async def main():
    """主函数"""
    global app

    parser = create_argument_parser()
    args = parser.parse_args()

    if not args.config_file:
        parser.print_help()
        sys.exit(1)

    config_path = args.config_file

    if not os.path.exists(config_path):
        print(f"配置文件不存在: {config_path}", file=sys.stderr)
        sys.exit(1)

    log_overrides = {}
    if args.log_level:
        log_overrides['log_level'] = args.log_level
    if args.log_file:
        log_overrides['log_file'] = args.log_file

    if args.validate:
        success = validate_config_file(config_path)
        sys.exit(0 if success else 1)

    if args.check_once:
        success = await check_once(config_path, log_overrides)
        sys.exit(0 if success else 1)

    try:
        app = PowerMonitorApp(config_path, log_overrides)
        install_signal_handlers()

        await app.initialize()

        print(f"供电监控系统 v{__version__} 已启动")
        print(f"配置文件: {config_path}")
        print("按 Ctrl+C 停止程序")

        await app.start()

    except KeyboardInterrupt:
        print("\n用户中断程序")
    except ConfigError as e:
        print(f"配置错误: {e}", file=sys.stderr)
        sys.exit(1)
    except PowerMonitorError as e:
        print(f"供电监控系统错误: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        if app:
            await app.stop()


if __name__ == "__main__":
    asyncio.run(main())
