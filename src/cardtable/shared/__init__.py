"""
共享模块

存放客户端和服务器共用的代码，如常量、协议定义、异常。

组件说明：
- constants: 网络端口、牌桌上限、消息类型
- errors: 面向玩家的错误类型，服务器统一转为 error 消息
- protocols: 扁平 JSON 消息（Message）与上行请求的解析

提示：
- 每个 WebSocket 文本帧就是一条 JSON 消息，用 type 字段区分种类
"""

from . import constants, errors, protocols

__all__ = ["constants", "errors", "protocols"]
