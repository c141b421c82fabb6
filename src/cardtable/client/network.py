"""
简单的客户端网络封装：负责连接牌桌服务器、收发消息并提供事件队列。
"""
from __future__ import annotations

import logging
import threading
import time
from queue import Empty, SimpleQueue
from typing import List, Optional

from websockets.exceptions import ConnectionClosed
from websockets.sync.client import ClientConnection, connect

from cardtable.shared.constants import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    MSG_CREATE_ROOM,
    MSG_JOIN_ROOM,
    MSG_MOVE_CARD,
    MSG_REJOIN_ROOM,
    MSG_ROOM_CREATED,
    MSG_ROOM_JOINED,
    MSG_START_GAME,
)
from cardtable.shared.protocols import Message

logger = logging.getLogger(__name__)


class TableClient:
    """线程驱动的轻量客户端，收到的消息放入事件队列。"""

    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> None:
        self.host = host
        self.port = port
        self.ws: Optional[ClientConnection] = None
        self._recv_thread: Optional[threading.Thread] = None
        self._running = threading.Event()
        self.events: SimpleQueue[Message] = SimpleQueue()
        self._pending: List[Message] = []
        self.player_name: Optional[str] = None
        self.room_code: Optional[str] = None

    @property
    def uri(self) -> str:
        return f"ws://{self.host}:{self.port}"

    @property
    def connected(self) -> bool:
        return self.ws is not None and self._running.is_set()

    def connect(self, timeout: float = 5.0) -> bool:
        """连接服务器。"""
        if self.connected:
            return True
        try:
            self.ws = connect(self.uri, open_timeout=timeout)
        except (OSError, TimeoutError) as e:
            logger.warning(f"连接失败: {e}")
            self.ws = None
            return False
        self._running.set()
        self._recv_thread = threading.Thread(target=self._recv_loop, daemon=True)
        self._recv_thread.start()
        return True

    def create_room(self, player_name: str) -> None:
        self.player_name = player_name
        self._send(Message(MSG_CREATE_ROOM, {"playerName": player_name}))

    def join_room(self, room_code: str, player_name: str) -> None:
        self.player_name = player_name
        self._send(Message(MSG_JOIN_ROOM, {"roomCode": room_code, "playerName": player_name}))

    def rejoin_room(self, room_code: str, player_name: str) -> None:
        self.player_name = player_name
        self._send(Message(MSG_REJOIN_ROOM, {"roomCode": room_code, "playerName": player_name}))

    def start_game(self) -> None:
        self._send(Message(MSG_START_GAME, {}))

    def move_card(self, index: int, x: float, y: float, rot: float = 0, side: str = "back") -> None:
        self._send(
            Message(MSG_MOVE_CARD, {"cardIndex": index, "x": x, "y": y, "rot": rot, "side": side})
        )

    def drain_events(self) -> List[Message]:
        items: List[Message] = self._pending
        self._pending = []
        while True:
            try:
                items.append(self.events.get_nowait())
            except Empty:
                break
        return items

    def wait_for(self, msg_type: str, timeout: float = 5.0) -> Optional[Message]:
        """等待指定类型的消息；之前收到的其他消息保留给 drain_events"""
        for i, msg in enumerate(self._pending):
            if msg.type == msg_type:
                return self._pending.pop(i)
        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            try:
                msg = self.events.get(timeout=remaining)
            except Empty:
                return None
            if msg.type == msg_type:
                return msg
            self._pending.append(msg)

    def close(self) -> None:
        self._running.clear()
        try:
            if self.ws:
                self.ws.close()
        finally:
            self.ws = None

    # 内部方法
    def _send(self, msg: Message) -> None:
        if not self.ws:
            return
        try:
            self.ws.send(msg.to_json())
        except ConnectionClosed:
            self.close()

    def _recv_loop(self) -> None:
        ws = self.ws
        try:
            for raw in ws:
                self._handle_raw(raw)
        except ConnectionClosed:
            pass
        finally:
            self._running.clear()

    def _handle_raw(self, raw) -> None:
        try:
            msg = Message.from_json(raw)
        except ValueError:
            # 忽略无法解析的消息
            logger.debug(f"忽略无法解析的消息: {raw!r}")
            return
        if msg.type in (MSG_ROOM_CREATED, MSG_ROOM_JOINED):
            self.room_code = msg.get("roomCode")
        self.events.put(msg)


__all__ = ["TableClient"]
