"""
消息协议

所有帧都是扁平的 JSON 对象，用 ``type`` 字段区分种类，例如::

    {"type": "move-card", "cardIndex": 3, "x": 10.5, "y": 4, "rot": 0, "side": "front"}

服务器下行消息统一用 Message 封装；客户端上行消息在边界处解析为
带标签的请求对象（CreateRoom / JoinRoom / ...），校验失败抛出 ProtocolError。
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from cardtable.shared.constants import (
    MAX_NAME_LENGTH,
    MSG_CREATE_ROOM,
    MSG_ERROR,
    MSG_JOIN_ROOM,
    MSG_MOVE_CARD,
    MSG_REJOIN_ROOM,
    MSG_START_GAME,
    SIDES,
)
from cardtable.shared.errors import ProtocolError


class Message:
    """一条下行（或客户端收到的）消息：type + 扁平字段"""

    def __init__(self, msg_type: str, data: Optional[Dict[str, Any]] = None):
        self.type = msg_type
        self.data = data or {}

    def to_json(self) -> str:
        payload = {"type": self.type}
        payload.update(self.data)
        return json.dumps(payload)

    @classmethod
    def from_json(cls, json_str: str) -> "Message":
        obj = json.loads(json_str)
        if not isinstance(obj, dict) or "type" not in obj:
            raise ValueError("frame is not a typed object")
        data = dict(obj)
        msg_type = data.pop("type")
        return cls(msg_type, data)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Message):
            return NotImplemented
        return self.type == other.type and self.data == other.data

    def __repr__(self) -> str:
        return f"Message({self.type!r}, {self.data!r})"


def error_message(text: str) -> Message:
    return Message(MSG_ERROR, {"message": text})


# 上行请求（带标签的联合类型）
@dataclass(frozen=True)
class CreateRoom:
    player_name: str
    type: str = MSG_CREATE_ROOM


@dataclass(frozen=True)
class JoinRoom:
    room_code: str
    player_name: str
    type: str = MSG_JOIN_ROOM


@dataclass(frozen=True)
class RejoinRoom:
    room_code: str
    player_name: str
    type: str = MSG_REJOIN_ROOM


@dataclass(frozen=True)
class StartGame:
    type: str = MSG_START_GAME


@dataclass(frozen=True)
class MoveCard:
    card_index: int
    x: float
    y: float
    rot: float
    side: str
    type: str = MSG_MOVE_CARD


Request = Union[CreateRoom, JoinRoom, RejoinRoom, StartGame, MoveCard]


def _require_str(obj: Dict[str, Any], key: str) -> str:
    value = obj.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ProtocolError(f"Missing or invalid field: {key}")
    return value.strip()


def _player_name(obj: Dict[str, Any]) -> str:
    return _require_str(obj, "playerName")[:MAX_NAME_LENGTH]


def _number(obj: Dict[str, Any], key: str, alias: Optional[str] = None) -> float:
    value = obj.get(key)
    if value is None and alias:
        value = obj.get(alias)
    # bool 是 int 的子类，这里单独排除
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ProtocolError(f"Missing or invalid field: {key}")
    return value


def _parse_move(obj: Dict[str, Any]) -> MoveCard:
    index = obj.get("cardIndex")
    if isinstance(index, bool) or not isinstance(index, int):
        raise ProtocolError("Missing or invalid field: cardIndex")
    side = obj.get("side", obj.get("facing"))
    if side not in SIDES:
        raise ProtocolError("Missing or invalid field: side")
    return MoveCard(
        card_index=index,
        x=_number(obj, "x"),
        y=_number(obj, "y"),
        rot=_number(obj, "rot", alias="rotation"),
        side=side,
    )


_PARSERS = {
    MSG_CREATE_ROOM: lambda obj: CreateRoom(player_name=_player_name(obj)),
    MSG_JOIN_ROOM: lambda obj: JoinRoom(
        room_code=_require_str(obj, "roomCode").upper(), player_name=_player_name(obj)
    ),
    MSG_REJOIN_ROOM: lambda obj: RejoinRoom(
        room_code=_require_str(obj, "roomCode").upper(), player_name=_player_name(obj)
    ),
    MSG_START_GAME: lambda obj: StartGame(),
    MSG_MOVE_CARD: _parse_move,
}


def parse_request(text: Union[str, bytes]) -> Request:
    """把一帧原始文本解析为请求对象。

    Raises:
        ProtocolError: JSON 非法、不是对象、类型未知或字段缺失/类型错误
    """
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    try:
        obj = json.loads(text)
    except ValueError:
        raise ProtocolError("Invalid JSON") from None
    if not isinstance(obj, dict):
        raise ProtocolError("Message must be a JSON object")

    msg_type = obj.get("type")
    parser = _PARSERS.get(msg_type) if isinstance(msg_type, str) else None
    if parser is None:
        raise ProtocolError(f"Unknown message type: {msg_type}")
    return parser(obj)


__all__ = [
    "Message",
    "error_message",
    "CreateRoom",
    "JoinRoom",
    "RejoinRoom",
    "StartGame",
    "MoveCard",
    "Request",
    "parse_request",
]
