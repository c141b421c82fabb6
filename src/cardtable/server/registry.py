"""
房间注册表

维护房间码到 GameRoom 的映射，负责生成不重复的房间码和回收闲置房间。
每个服务器持有一个注册表实例，由 NetworkServer 注入使用。
"""

from __future__ import annotations

import logging
import random
import threading
import time
from typing import Dict, List, Optional

from cardtable.shared.constants import ROOM_CODE_ALPHABET, ROOM_CODE_LENGTH
from cardtable.server.game import GameRoom

logger = logging.getLogger(__name__)


def generate_room_code(length: int = ROOM_CODE_LENGTH, rng: Optional[random.Random] = None) -> str:
    """生成大写的 base36 房间码，例如 ``K3Z9QA``"""
    rand = rng or random
    return "".join(rand.choice(ROOM_CODE_ALPHABET) for _ in range(length))


def normalize_code(code) -> Optional[str]:
    if not isinstance(code, str):
        return None
    code = code.strip().upper()
    return code or None


class RoomRegistry:
    """房间码 -> 房间"""

    def __init__(self, code_length: int = ROOM_CODE_LENGTH, rng: Optional[random.Random] = None):
        self.code_length = code_length
        self._rng = rng
        self._rooms: Dict[str, GameRoom] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, code) -> bool:
        return self.find(code) is not None

    def rooms(self) -> List[GameRoom]:
        with self._lock:
            return list(self._rooms.values())

    def create(self) -> GameRoom:
        """创建房间，房间码与已有房间冲突时重新生成"""
        with self._lock:
            code = generate_room_code(self.code_length, self._rng)
            while code in self._rooms:
                logger.debug(f"房间码冲突，重新生成: {code}")
                code = generate_room_code(self.code_length, self._rng)
            room = GameRoom(code, rng=self._rng)
            self._rooms[code] = room
        return room

    def find(self, code) -> Optional[GameRoom]:
        key = normalize_code(code)
        if key is None:
            return None
        with self._lock:
            return self._rooms.get(key)

    def remove(self, code) -> Optional[GameRoom]:
        key = normalize_code(code)
        if key is None:
            return None
        with self._lock:
            return self._rooms.pop(key, None)

    def prune_idle(self, ttl: float, now: Optional[float] = None) -> List[str]:
        """移除无人在线且闲置超过 ttl 秒的房间，返回被移除的房间码"""
        if now is None:
            now = time.monotonic()
        removed = []
        for room in self.rooms():
            # 先在房间锁内关闭，之后的加入/重连都会失败，再从映射中移除
            if room.close_if_idle(ttl, now):
                self.remove(room.code)
                removed.append(room.code)
        if removed:
            logger.info(f"回收闲置房间: {', '.join(removed)}")
        return removed

    def status_lines(self) -> List[str]:
        rooms = self.rooms()
        if not rooms:
            return ["无活跃房间"]
        lines = []
        for room in rooms:
            names = ", ".join(p.name for p in room.players)
            lines.append(f"房间 {room.code}: {len(room.players)} 名玩家 [{names}]")
        return lines
