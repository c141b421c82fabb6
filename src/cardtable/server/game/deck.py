"""
牌组模型

生成 54 张牌（4 门花色各 13 张 + 2 张王牌），并提供洗牌。
牌的身份（index / suit / rank）在创建时确定，之后只会随牌对象移动，
不会因为所处位置变化而重新计算。
"""

from __future__ import annotations

import random
from typing import Dict, List, Optional

from cardtable.shared.constants import DECK_SIZE, SIDE_BACK, STACK_OFFSET, SUIT_SIZE


class Card:
    """一张牌：不可变的身份 + 可变的摆放状态"""

    __slots__ = ("_index", "_suit", "_rank", "x", "y", "rotation", "facing")

    def __init__(self, index: int):
        self._index = index
        self._suit = index // SUIT_SIZE  # 4 为王牌
        self._rank = index % SUIT_SIZE + 1
        self.x = index * STACK_OFFSET
        self.y = index * STACK_OFFSET
        self.rotation = 0.0
        self.facing = SIDE_BACK

    @property
    def index(self) -> int:
        return self._index

    @property
    def suit(self) -> int:
        return self._suit

    @property
    def rank(self) -> int:
        return self._rank

    def place(self, x: float, y: float, rotation: float, facing: str) -> None:
        self.x = x
        self.y = y
        self.rotation = rotation
        self.facing = facing

    def to_dict(self, pos: Optional[int] = None) -> Dict[str, object]:
        """序列化为客户端使用的字段名（i / rot / side）"""
        data = {
            "i": self._index,
            "suit": self._suit,
            "rank": self._rank,
            "x": self.x,
            "y": self.y,
            "rot": self.rotation,
            "side": self.facing,
        }
        if pos is not None:
            data["pos"] = pos
        return data

    def __repr__(self) -> str:
        return f"Card({self._index}, suit={self._suit}, rank={self._rank}, {self.facing})"


def create_deck() -> List[Card]:
    """按标准顺序生成一副 54 张的牌"""
    return [Card(i) for i in range(DECK_SIZE)]


def shuffle(deck: List[Card], rng: Optional[random.Random] = None) -> List[Card]:
    """Fisher-Yates 原地洗牌，只交换牌对象的位置，返回同一个列表"""
    rand = rng or random
    for i in range(len(deck) - 1, 0, -1):
        j = rand.randint(0, i)
        deck[i], deck[j] = deck[j], deck[i]
    return deck


def deal_positions(deck: List[Card]) -> List[Card]:
    """按槽位重新叠放：第 p 个位置的牌偏移 p * STACK_OFFSET，背面朝上"""
    for pos, card in enumerate(deck):
        card.place(pos * STACK_OFFSET, pos * STACK_OFFSET, 0.0, SIDE_BACK)
    return deck


__all__ = ["Card", "create_deck", "shuffle", "deal_positions"]
