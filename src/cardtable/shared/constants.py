"""
常量定义

定义牌桌服务器与客户端共用的各种常量。
"""

# 网络配置
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8081

# 牌桌配置
MAX_PLAYERS = 4
DECK_SIZE = 54
SUIT_SIZE = 13
STACK_OFFSET = 0.25  # 初始叠放时每张牌的偏移
ROOM_CODE_LENGTH = 6
ROOM_CODE_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
MAX_NAME_LENGTH = 32

# 房间回收
ROOM_IDLE_TTL = 30 * 60  # 秒，无人在线的房间保留时长
REAP_INTERVAL = 60  # 秒

# 牌面朝向
SIDE_FRONT = "front"
SIDE_BACK = "back"
SIDES = (SIDE_FRONT, SIDE_BACK)

# 消息类型（客户端 -> 服务器）
MSG_CREATE_ROOM = "create-room"
MSG_JOIN_ROOM = "join-room"
MSG_REJOIN_ROOM = "rejoin-room"
MSG_START_GAME = "start-game"
MSG_MOVE_CARD = "move-card"

# 消息类型（服务器 -> 客户端）
MSG_ROOM_CREATED = "room-created"
MSG_ROOM_JOINED = "room-joined"
MSG_PLAYER_JOINED = "player-joined"
MSG_GAME_STATE = "game-state"
MSG_INIT_DECK = "init-deck"
MSG_CARD_MOVED = "card-moved"
MSG_ERROR = "error"
