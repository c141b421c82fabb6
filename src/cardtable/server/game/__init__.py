"""
牌局逻辑模块

实现牌组生成与洗牌、房间内的玩家管理和状态广播。
"""

from .deck import Card, create_deck, deal_positions, shuffle
from .room import GameRoom, Player

__all__ = ["Card", "create_deck", "deal_positions", "shuffle", "GameRoom", "Player"]
