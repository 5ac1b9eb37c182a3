"""CLI接口功能测试"""

import os
import tempfile
import pytest
import yaml
from unittest.mock import AsyncMock, patch

from main import create_argument_parser, validate_config_file, check_once, __version__


@pytest.fixture
def config_file():
    """创建临时配置文件"""
    config_data = {
        'global': {'log_level': 'WARNING'},
        'monitor': {'probe_type': 'tcp', 'probe_timeout': 1},
        'endpoints': {
            '10001': {'host': '192.0.2.10'},
            '10002': {'host': '192.0.2.11', 'enabled': False},
        },
        'notifications': [
            {'name': 'tg', 'type': 'telegram', 'bot_token': '123:abc'},
        ],
    }

    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
        yaml.dump(config_data, f, default_flow_style=False)
        temp_file = f.name

    yield temp_file

    if os.path.exists(temp_file):
        os.unlink(temp_file)


class TestArgumentParser:
    """命令行参数解析器测试"""

    def test_create_argument_parser(self):
        parser = create_argument_parser()

        assert parser.prog == 'power-monitor'
        assert '供电监控系统' in parser.description

    def test_parse_basic_args(self):
        args = create_argument_parser().parse_args(['config.yaml'])

        assert args.config_file == 'config.yaml'
        assert not args.validate
        assert not args.check_once
        assert args.log_level is None

    def test_parse_flags(self):
        args = create_argument_parser().parse_args(
            ['--check-once', '--log-level', 'DEBUG', '--log-file', '/tmp/power.log', 'config.yaml'])

        assert args.check_once
        assert args.log_level == 'DEBUG'
        assert args.log_file == '/tmp/power.log'

    def test_invalid_log_level(self):
        with pytest.raises(SystemExit):
            create_argument_parser().parse_args(['--log-level', 'TRACE', 'config.yaml'])

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            create_argument_parser().parse_args(['--version'])

        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out


class TestValidateConfigFile:
    """配置文件验证命令测试"""

    def test_valid(self, config_file, capsys):
        assert validate_config_file(config_file) is True

        output = capsys.readouterr().out
        assert "配置文件验证成功" in output
        assert "端点数量: 2 (启用 1)" in output
        assert "tg (telegram)" in output

    def test_invalid(self, capsys):
        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
            f.write("monitor:\n  probe_type: icmp\n")
            path = f.name
        try:
            assert validate_config_file(path) is False
            assert "配置文件验证失败" in capsys.readouterr().out
        finally:
            os.unlink(path)


class TestCheckOnce:
    """单次探测命令测试"""

    @pytest.mark.asyncio
    async def test_unreachable_endpoint(self, config_file, capsys):
        with patch('asyncio.open_connection', AsyncMock(side_effect=ConnectionRefusedError())):
            assert await check_once(config_file) is False

        output = capsys.readouterr().out
        assert "🔴 10001: 不可达" in output
        assert "⚪ 10002" in output

    @pytest.mark.asyncio
    async def test_reachable_endpoint(self, config_file, capsys):
        writer = AsyncMock()
        writer.close = lambda: None
        with patch('asyncio.open_connection', AsyncMock(return_value=(None, writer))):
            assert await check_once(config_file) is True

        assert "🟢 10001: 可达" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_missing_config(self, capsys):
        assert await check_once('/nonexistent/config.yaml') is False
        assert "探测失败" in capsys.readouterr().out
