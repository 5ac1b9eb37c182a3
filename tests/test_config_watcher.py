"""测试配置监控器"""

import asyncio
import os
import tempfile
import pytest
from unittest.mock import AsyncMock, Mock
from watchdog.events import FileModifiedEvent, FileMovedEvent, DirModifiedEvent

from power_monitor.services.config_manager import ConfigManager
from power_monitor.services.config_watcher import ConfigFileHandler, ConfigWatcher

CONFIG = """
monitor:
  debounce_minutes: 5
endpoints:
  10001:
    host: 192.168.1.1
"""


class TestConfigFileHandler:
    """测试ConfigFileHandler类"""

    def setup_method(self):
        self.callback = Mock()
        self.handler = ConfigFileHandler('/etc/power/config.yaml', self.callback)

    def test_modified_config_file(self):
        self.handler.on_modified(FileModifiedEvent('/etc/power/config.yaml'))
        self.callback.assert_called_once()

    def test_other_file_ignored(self):
        self.handler.on_modified(FileModifiedEvent('/etc/power/other.yaml'))
        self.handler.on_modified(DirModifiedEvent('/etc/power'))
        self.callback.assert_not_called()

    def test_atomic_rename(self):
        """编辑器写临时文件后改名"""
        self.handler.on_moved(FileMovedEvent('/etc/power/.config.yaml.swp', '/etc/power/config.yaml'))
        self.callback.assert_called_once()

    def test_callback_error_logged(self):
        self.callback.side_effect = RuntimeError("boom")
        self.handler.on_modified(FileModifiedEvent('/etc/power/config.yaml'))


class TestConfigWatcher:
    """测试ConfigWatcher类"""

    def setup_method(self):
        """测试前准备"""
        self.temp_file = tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False)
        self.temp_file.write(CONFIG)
        self.temp_file.close()

        self.config_manager = ConfigManager(self.temp_file.name)
        self.config_manager.load_config()
        self.config_watcher = ConfigWatcher(self.config_manager)

    def teardown_method(self):
        """测试后清理"""
        self.config_watcher.stop_watching()
        if os.path.exists(self.temp_file.name):
            os.unlink(self.temp_file.name)

    def _rewrite(self, content):
        with open(self.temp_file.name, 'w', encoding='utf-8') as f:
            f.write(content)

    def test_add_remove_callback(self):
        callback = Mock()

        self.config_watcher.add_change_callback(callback)
        assert self.config_watcher.change_callbacks == [callback]

        self.config_watcher.remove_change_callback(callback)
        self.config_watcher.remove_change_callback(callback)
        assert self.config_watcher.change_callbacks == []

    def test_config_change_invokes_callbacks(self):
        callback = Mock()
        self.config_watcher.add_change_callback(callback)
        self._rewrite(CONFIG.replace('debounce_minutes: 5', 'debounce_minutes: 2'))

        self.config_watcher._on_config_changed()

        old_config, new_config = callback.call_args[0]
        assert old_config['monitor']['debounce_minutes'] == 5
        assert new_config['monitor']['debounce_minutes'] == 2

    def test_invalid_config_keeps_old(self):
        callback = Mock()
        self.config_watcher.add_change_callback(callback)
        self._rewrite("monitor:\n  probe_type: icmp\n")

        self.config_watcher._on_config_changed()

        callback.assert_not_called()
        assert self.config_manager.get_monitor_settings().debounce_minutes == 5

    def test_failing_callback_does_not_block_others(self):
        broken = Mock(side_effect=RuntimeError("boom"))
        healthy = Mock()
        self.config_watcher.add_change_callback(broken)
        self.config_watcher.add_change_callback(healthy)

        self.config_watcher._on_config_changed()

        healthy.assert_called_once()

    @pytest.mark.asyncio
    async def test_async_callback_scheduled(self):
        callback = AsyncMock()
        self.config_watcher.add_change_callback(callback)

        self.config_watcher._on_config_changed()
        await asyncio.sleep(0.01)

        callback.assert_awaited_once()

    def test_start_stop_watching(self):
        self.config_watcher.start_watching()
        assert self.config_watcher.is_running()

        self.config_watcher.start_watching()
        assert self.config_watcher.is_running()

        self.config_watcher.stop_watching()
        assert not self.config_watcher.is_running()
        assert self.config_watcher.observer is None

    @pytest.mark.asyncio
    async def test_polling_detects_change(self):
        callback = Mock()
        self.config_watcher.add_change_callback(callback)
        self._rewrite(CONFIG.replace('debounce_minutes: 5', 'debounce_minutes: 1'))
        mtime = self.config_manager.last_modified + 10
        os.utime(self.temp_file.name, (mtime, mtime))

        task = asyncio.create_task(self.config_watcher.watch_config_changes_async(0.01))
        await asyncio.sleep(0.05)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        callback.assert_called_once()
        assert self.config_manager.get_monitor_settings().debounce_minutes == 1
