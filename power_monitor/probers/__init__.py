"""端点探测器模块"""

from .base import BaseProber, parse_address
from .factory import ProberFactory, prober_factory, register_prober
from .http_prober import HttpProber
from .tcp_prober import TcpProber

__all__ = ['BaseProber', 'parse_address', 'ProberFactory', 'prober_factory',
           'register_prober', 'HttpProber', 'TcpProber']
