"""
异常定义

所有面向玩家的错误都继承 TableError，服务器会把 ``message`` 作为
``error`` 消息回复给发起请求的连接，不会影响其他会话。
"""

from __future__ import annotations


class TableError(Exception):
    """牌桌错误基类"""

    default_message = "Request failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ProtocolError(TableError):
    """消息格式错误（无法解析、缺少字段、未知类型）"""

    default_message = "Invalid message format"


class NotInRoomError(TableError):
    default_message = "Not in a room"


class RoomLookupError(TableError):
    """房间码无效或房间已被回收"""

    default_message = "Room not found"


class RoomNotFoundError(RoomLookupError):
    pass


class CapacityError(TableError):
    default_message = "Room is full"


class RoomFullError(CapacityError):
    pass


class IdentityError(TableError):
    """玩家身份相关错误"""

    default_message = "Not a member of this room"


class NotAMemberError(IdentityError):
    pass


class DuplicateNameError(IdentityError):
    default_message = "Name already taken"


class AlreadySeatedError(IdentityError):
    """同一连接在房间里已经占有另一个座位"""

    default_message = "Already seated in this room"


class AlreadyStartedError(TableError):
    default_message = "Game already started"


class InvalidCardIndexError(TableError, IndexError):
    default_message = "Invalid card index"

    def __init__(self, index=None, message: str | None = None):
        self.index = index
        super().__init__(message)


__all__ = [
    "TableError",
    "ProtocolError",
    "NotInRoomError",
    "RoomLookupError",
    "RoomNotFoundError",
    "CapacityError",
    "RoomFullError",
    "IdentityError",
    "NotAMemberError",
    "DuplicateNameError",
    "AlreadySeatedError",
    "AlreadyStartedError",
    "InvalidCardIndexError",
]
