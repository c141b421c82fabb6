"""
客户端模块

提供连接牌桌服务器的轻量客户端，供脚本与集成测试使用。
"""

from . import network

__all__ = ["network"]
