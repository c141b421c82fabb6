import logging
import threading
import time
from typing import Any, Dict, List, Optional

from websockets.exceptions import ConnectionClosed

from cardtable.shared.constants import (
    DECK_SIZE,
    MAX_PLAYERS,
    MSG_CARD_MOVED,
    MSG_GAME_STATE,
    MSG_INIT_DECK,
    MSG_PLAYER_JOINED,
)
from cardtable.shared.errors import (
    AlreadySeatedError,
    AlreadyStartedError,
    DuplicateNameError,
    InvalidCardIndexError,
    NotAMemberError,
    RoomFullError,
    RoomNotFoundError,
)
from cardtable.shared.protocols import Message
from cardtable.server.game.deck import Card, create_deck, deal_positions, shuffle

logger = logging.getLogger(__name__)


class Player:
    """房间内的玩家。断线时 connection 置空，但记录保留以便重连。"""

    def __init__(self, name: str, connection: Any = None):
        self.name = name
        self.connection = connection

    @property
    def connected(self) -> bool:
        return self.connection is not None

    def __repr__(self) -> str:
        return f"Player({self.name!r}, connected={self.connected})"


class GameRoom:
    """
    牌桌房间，管理玩家、牌组和广播。

    状态：大厅（started=False，可加入）-> 进行中（started=True，已发牌）。
    所有修改状态的操作都持有房间锁，保证同一房间的消息串行处理。
    广播也在锁内发送，每个连接收到的消息顺序与修改顺序一致；
    代价是慢连接的发送会阻塞本房间的其他操作（不影响其他房间）。
    """

    def __init__(self, code: str, rng=None):
        self.code = code
        self.players: List[Player] = []
        self.deck: List[Card] = create_deck()
        self.started = False
        self.current_turn = 0  # 只记录，不强制轮次
        self.last_active = time.monotonic()
        self.closed = False  # 被回收后置位，不再接受入座
        self._rng = rng
        self._lock = threading.RLock()

    # 查询
    def get_player(self, name: str) -> Optional[Player]:
        for p in self.players:
            if p.name == name:
                return p
        return None

    def connected_count(self) -> int:
        return sum(1 for p in self.players if p.connected)

    def is_full(self) -> bool:
        return len(self.players) >= MAX_PLAYERS

    def roster(self) -> Dict[str, Any]:
        """玩家名单（按加入顺序，即座位顺序）"""
        return {
            "playerCount": len(self.players),
            "players": [p.name for p in self.players],
            "connected": [p.connected for p in self.players],
            "currentTurn": self.current_turn,
        }

    def snapshot_deck(self) -> List[Dict[str, Any]]:
        return [card.to_dict(pos) for pos, card in enumerate(self.deck)]

    def deck_message(self) -> Message:
        return Message(MSG_INIT_DECK, {"cards": self.snapshot_deck()})

    # 玩家管理
    def seat_of(self, connection: Any) -> Optional[Player]:
        """该连接当前占有的座位（一个连接最多占一个座位）"""
        if connection is None:
            return None
        for p in self.players:
            if p.connection is connection:
                return p
        return None

    def add_player(self, name: str, connection: Any) -> Player:
        """添加玩家并向所有在线玩家广播 player-joined"""
        with self._lock:
            if self.closed:
                raise RoomNotFoundError()
            if self.seat_of(connection) is not None:
                raise AlreadySeatedError()
            if self.is_full():
                raise RoomFullError()
            if self.get_player(name) is not None:
                raise DuplicateNameError()
            player = Player(name, connection)
            self.players.append(player)
            self._touch()
            self.broadcast(Message(MSG_PLAYER_JOINED, self.roster()))
            return player

    def mark_disconnected(self, connection: Any) -> List[Player]:
        """断线：清空该连接占有的座位（保留玩家记录），并广播最新名单"""
        with self._lock:
            released = [p for p in self.players if connection is not None and p.connection is connection]
            for player in released:
                player.connection = None
                logger.info(f"玩家 {player.name} 断开房间 {self.code}（保留座位）")
            self._touch()
            self.broadcast(Message(MSG_GAME_STATE, self.roster()))
            return released

    def reconnect(self, name: str, connection: Any) -> Player:
        with self._lock:
            if self.closed:
                raise RoomNotFoundError()
            player = self.get_player(name)
            if player is None:
                raise NotAMemberError()
            current = self.seat_of(connection)
            if current is not None and current is not player:
                raise AlreadySeatedError()
            if player.connected and player.connection is not connection:
                logger.info(f"玩家 {name} 在新连接上接管了房间 {self.code} 的座位")
            player.connection = connection
            self._touch()
            self.broadcast(Message(MSG_GAME_STATE, self.roster()))
            return player

    # 牌局
    def start(self) -> None:
        """洗牌、叠放并向所有在线玩家发送完整牌组"""
        with self._lock:
            if self.started:
                raise AlreadyStartedError()
            self.started = True
            self.deck = deal_positions(shuffle(create_deck(), self._rng))
            self._touch()
            if logger.isEnabledFor(logging.DEBUG):
                for pos, card in enumerate(self.deck):
                    logger.debug(f"位置 {pos}: 牌 {card.index}（花色 {card.suit} 点数 {card.rank}）")
            self.broadcast(self.deck_message())

    def move_card(
        self,
        index: int,
        x: float,
        y: float,
        rotation: float,
        facing: str,
        origin: Any = None,
    ) -> Card:
        """更新某个槽位上的牌并转发给除发起者以外的玩家（后写者胜）"""
        with self._lock:
            if not isinstance(index, int) or not 0 <= index < DECK_SIZE:
                raise InvalidCardIndexError(index)
            card = self.deck[index]
            card.place(x, y, rotation, facing)
            self._touch()
            logger.debug(f"房间 {self.code} 槽位 {index} 更新为 {card.to_dict()}")
            sent = self.broadcast(
                Message(
                    MSG_CARD_MOVED,
                    {"cardIndex": index, "x": x, "y": y, "rot": rotation, "side": facing},
                ),
                exclude=origin,
            )
            logger.debug(f"移动已转发给 {sent} 名玩家")
            return card

    def send_deck(self, connection: Any) -> bool:
        """已开局时向单个连接补发当前牌组（加入或重连的玩家）"""
        with self._lock:
            if not self.started:
                return False
            return self.send_to(connection, self.deck_message())

    # 广播
    def send_to(self, connection: Any, msg: Message) -> bool:
        try:
            connection.send(msg.to_json())
            return True
        except ConnectionClosed:
            logger.debug(f"房间 {self.code} 向已关闭的连接发送失败")
            return False

    def broadcast(self, msg: Message, exclude: Any = None) -> int:
        """向所有在线玩家发送消息，跳过已关闭的连接，返回成功发送的数量"""
        text = msg.to_json()
        sent = 0
        for p in list(self.players):
            conn = p.connection
            if conn is None or (exclude is not None and conn is exclude):
                continue
            try:
                conn.send(text)
                sent += 1
            except ConnectionClosed:
                logger.debug(f"跳过已关闭的连接: {p.name}")
        return sent

    def close_if_idle(self, ttl: float, now: float) -> bool:
        """无人在线且闲置超过 ttl 秒时关闭房间；关闭后不再接受加入或重连"""
        with self._lock:
            if self.closed:
                return True
            if self.connected_count() or now - self.last_active < ttl:
                return False
            self.closed = True
            return True

    def _touch(self) -> None:
        self.last_active = time.monotonic()

    def __repr__(self) -> str:
        return f"GameRoom({self.code!r}, players={len(self.players)}, started={self.started})"
