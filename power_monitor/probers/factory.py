"""端点探测器工厂"""

from typing import Dict, Type, Any, Optional
from .base import BaseProber
from ..utils.exceptions import ProbeError, ErrorCode


class ProberFactory:
    """探测器工厂类，按探测类型创建探测器"""

    def __init__(self):
        """初始化工厂"""
        self._probers: Dict[str, Type[BaseProber]] = {}

    def register_prober(self, probe_type: str, prober_class: Type[BaseProber]):
        """
        注册探测器类

        Args:
            probe_type: 探测类型名称
            prober_class: 探测器类

        Raises:
            ProbeError: 注册失败
        """
        if not issubclass(prober_class, BaseProber):
            raise ProbeError(f"探测器类 {prober_class.__name__} 必须继承自 BaseProber",
                             ErrorCode.PROBER_INITIALIZATION_ERROR)

        if probe_type in self._probers:
            raise ProbeError(f"探测类型 '{probe_type}' 已经注册了探测器",
                             ErrorCode.PROBER_INITIALIZATION_ERROR)

        self._probers[probe_type] = prober_class

    def create_prober(self, probe_type: str,
                      config: Optional[Dict[str, Any]] = None) -> BaseProber:
        """
        创建探测器实例

        Args:
            probe_type: 探测类型
            config: 探测器配置

        Returns:
            BaseProber: 探测器实例

        Raises:
            ProbeError: 类型不支持或配置无效
        """
        if probe_type not in self._probers:
            raise ProbeError(f"不支持的探测类型: '{probe_type}'",
                             ErrorCode.PROBER_INITIALIZATION_ERROR)

        prober = self._probers[probe_type](config or {})
        if not prober.validate_config():
            raise ProbeError(f"探测器 '{probe_type}' 的配置验证失败",
                             ErrorCode.PROBER_INITIALIZATION_ERROR)
        return prober

    def get_supported_types(self) -> list:
        """
        获取支持的探测类型列表

        Returns:
            list: 探测类型列表
        """
        return list(self._probers.keys())

    def is_type_supported(self, probe_type: str) -> bool:
        return probe_type in self._probers


# 全局工厂实例
prober_factory = ProberFactory()


def register_prober(probe_type: str):
    """
    装饰器：注册探测器类

    Args:
        probe_type: 探测类型名称

    Returns:
        装饰器函数
    """
    def decorator(prober_class: Type[BaseProber]):
        prober_factory.register_prober(probe_type, prober_class)
        return prober_class

    return decorator
