"""
Card Table - 多人共享牌桌

一个玩家创建房间，其他玩家用房间码加入；服务器洗牌发牌，
并把拖动、翻面等操作实时转发给房间内的其他玩家。
"""

__version__ = "0.1.0"
__author__ = "Card Table Team"
__license__ = "MIT"

# 导出主要组件
from . import client, server, shared

__all__ = ["client", "server", "shared", "__version__"]
