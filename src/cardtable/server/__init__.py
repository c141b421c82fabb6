"""
服务器端模块

负责处理客户端连接、房间管理、洗牌发牌与牌面状态转发。

模块组成：
- game: 牌组模型与房间状态
- registry: 房间码 -> 房间 的注册表
- network: WebSocket 会话、消息路由与广播

使用方式：
- 入口参见 cardtable/server/main.py，启动 NetworkServer 并注入 RoomRegistry
"""

from . import game, registry, network

__all__ = ["game", "registry", "network"]
