"""
网络通信模块

基于 WebSocket 的会话管理与消息路由：每个连接一个会话线程，
收到的 JSON 帧解析为请求后分发到注册表或会话绑定的房间。
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Optional, Tuple

from websockets.exceptions import ConnectionClosed
from websockets.sync.server import Server, serve

from cardtable.shared.constants import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    MSG_ROOM_CREATED,
    MSG_ROOM_JOINED,
    REAP_INTERVAL,
    ROOM_IDLE_TTL,
)
from cardtable.shared.errors import (
    InvalidCardIndexError,
    NotInRoomError,
    ProtocolError,
    RoomNotFoundError,
    TableError,
)
from cardtable.shared.protocols import (
    CreateRoom,
    JoinRoom,
    Message,
    MoveCard,
    RejoinRoom,
    Request,
    StartGame,
    error_message,
    parse_request,
)
from cardtable.server.game import GameRoom
from cardtable.server.registry import RoomRegistry

logger = logging.getLogger(__name__)


class ClientSession:
	"""客户端会话，封装连接与当前绑定的房间/玩家名"""

	def __init__(self, connection: Any):
		self.connection = connection
		self.addr = getattr(connection, "remote_address", None)
		self.room: Optional[GameRoom] = None
		self.player_name: Optional[str] = None

	def bind(self, room: GameRoom, player_name: str) -> None:
		"""绑定到房间；若之前在别的房间，先在旧房间标记断线"""
		previous = self.room
		if previous is not None and previous is not room:
			previous.mark_disconnected(self.connection)
		self.room = room
		self.player_name = player_name

	def __repr__(self) -> str:
		return f"ClientSession({self.player_name or self.addr})"


class NetworkServer:
	"""WebSocket 服务器，负责会话管理与消息路由"""

	def __init__(
		self,
		host: str = DEFAULT_HOST,
		port: int = DEFAULT_PORT,
		registry: Optional[RoomRegistry] = None,
		room_ttl: float = ROOM_IDLE_TTL,
		reap_interval: float = REAP_INTERVAL,
	):
		self.host = host
		self.port = port
		self.registry = registry if registry is not None else RoomRegistry()
		self.room_ttl = room_ttl
		self.reap_interval = reap_interval
		self.sessions: Dict[int, ClientSession] = {}
		self._sessions_lock = threading.Lock()
		self._server: Optional[Server] = None
		self._serve_thread: Optional[threading.Thread] = None
		self._reap_thread: Optional[threading.Thread] = None
		self._stopped = threading.Event()

	# 服务器生命周期
	def start(self) -> None:
		"""绑定端口并在后台线程中开始接受连接"""
		self._server = serve(self.handle_connection, self.host, self.port)
		self._stopped.clear()
		self._serve_thread = threading.Thread(
			target=self._server.serve_forever, name="ws-serve", daemon=True
		)
		self._serve_thread.start()
		self._reap_thread = threading.Thread(target=self._reap_loop, name="room-reaper", daemon=True)
		self._reap_thread.start()
		logger.info(f"监听地址: {self.address[0]}:{self.address[1]}")

	def stop(self) -> None:
		"""停止服务器并关闭所有会话"""
		self._stopped.set()
		try:
			if self._server:
				self._server.shutdown()
		finally:
			self._server = None
		# // 关闭所有客户端连接
		with self._sessions_lock:
			sessions = list(self.sessions.values())
		for sess in sessions:
			try:
				sess.connection.close()
			except Exception:
				logger.debug(f"关闭连接失败: {sess}", exc_info=True)
		for t in (self._serve_thread, self._reap_thread):
			if t is not None:
				t.join(timeout=5)

	@property
	def address(self) -> Tuple[str, int]:
		"""实际监听的地址（端口为 0 时返回系统分配的端口）"""
		if self._server is None:
			return self.host, self.port
		host, port = self._server.socket.getsockname()[:2]
		return host, port

	def _reap_loop(self) -> None:
		# // wait 超时返回 False，到点回收一次；stop() 置位后立即退出
		while not self._stopped.wait(self.reap_interval):
			self.reap_rooms()

	def reap_rooms(self, now: Optional[float] = None) -> list:
		removed = self.registry.prune_idle(self.room_ttl, now)
		if removed:
			self.log_room_status("回收闲置房间后")
		return removed

	# 会话线程
	def handle_connection(self, connection: Any) -> None:
		"""单会话收发循环：逐帧读取 JSON 消息并路由，直到连接关闭"""
		sess = ClientSession(connection)
		with self._sessions_lock:
			self.sessions[id(connection)] = sess
		logger.info(f"客户端连接: {sess.addr}")
		try:
			for raw in connection:
				self.handle_raw_message(sess, raw)
		except ConnectionClosed:
			pass
		finally:
			self.on_disconnect(sess)

	# 消息处理
	def handle_raw_message(self, sess: ClientSession, raw) -> None:
		"""原始帧 -> 请求对象并路由；格式错误只回复给该连接"""
		try:
			request = parse_request(raw)
		except ProtocolError as e:
			logger.warning(f"无法解析的消息 from={sess}: {e.message}")
			self._send(sess, error_message(e.message))
			return
		self.route_message(sess, request)

	def route_message(self, sess: ClientSession, request: Request) -> None:
		"""根据请求类型分发；玩家错误转为 error 回复，不影响其他会话"""
		logger.debug(f"收到消息: type={request.type}, from={sess}")
		try:
			if isinstance(request, CreateRoom):
				self._on_create_room(sess, request)
			elif isinstance(request, JoinRoom):
				self._on_join_room(sess, request)
			elif isinstance(request, RejoinRoom):
				self._on_rejoin_room(sess, request)
			elif isinstance(request, StartGame):
				self._on_start_game(sess)
			elif isinstance(request, MoveCard):
				self._on_move_card(sess, request)
			else:
				raise ProtocolError(f"Unknown message type: {request.type}")
		except InvalidCardIndexError as e:
			logger.warning(f"无效的牌索引: {e.index} from={sess}")
			self._send(sess, error_message(e.message))
		except TableError as e:
			logger.info(f"请求被拒绝: type={request.type}, from={sess}, reason={e.message}")
			self._send(sess, error_message(e.message))
		except Exception:
			logger.exception(f"处理消息出错: type={request.type}, from={sess}")
			self._send(sess, error_message("Server error"))

	def _on_create_room(self, sess: ClientSession, req: CreateRoom) -> None:
		room = self.registry.create()
		room.add_player(req.player_name, sess.connection)
		sess.bind(room, req.player_name)
		self._send(sess, Message(MSG_ROOM_CREATED, {"roomCode": room.code}))
		logger.info(f"房间 {room.code} 由 {req.player_name} 创建")
		self.log_room_status("创建房间后")

	def _on_join_room(self, sess: ClientSession, req: JoinRoom) -> None:
		room = self._find_room(req.room_code)
		room.add_player(req.player_name, sess.connection)
		sess.bind(room, req.player_name)
		self._send(sess, Message(MSG_ROOM_JOINED, {"roomCode": room.code}))
		# 中途加入的玩家需要当前牌面
		room.send_deck(sess.connection)
		logger.info(f"玩家 {req.player_name} 加入房间 {room.code}")
		self.log_room_status("加入房间后")

	def _on_rejoin_room(self, sess: ClientSession, req: RejoinRoom) -> None:
		room = self._find_room(req.room_code)
		room.reconnect(req.player_name, sess.connection)
		sess.bind(room, req.player_name)
		self._send(sess, Message(MSG_ROOM_JOINED, {"roomCode": room.code}))
		room.send_deck(sess.connection)
		logger.info(f"玩家 {req.player_name} 重新连接房间 {room.code}")
		self.log_room_status("重连后")

	def _on_start_game(self, sess: ClientSession) -> None:
		room = self._require_room(sess)
		room.start()
		logger.info(f"房间 {room.code} 开始游戏（{sess.player_name} 发起）")

	def _on_move_card(self, sess: ClientSession, req: MoveCard) -> None:
		room = self._require_room(sess)
		room.move_card(req.card_index, req.x, req.y, req.rot, req.side, origin=sess.connection)

	def _find_room(self, code: str) -> GameRoom:
		room = self.registry.find(code)
		if room is None:
			raise RoomNotFoundError()
		return room

	def _require_room(self, sess: ClientSession) -> GameRoom:
		if sess.room is None:
			raise NotInRoomError()
		return sess.room

	# 发送
	def _send(self, sess: ClientSession, msg: Message) -> None:
		try:
			sess.connection.send(msg.to_json())
		except ConnectionClosed:
			logger.debug(f"发送失败，连接已关闭: {sess}")

	# 断开清理
	def on_disconnect(self, sess: ClientSession) -> None:
		"""连接关闭：玩家保留在房间内，只标记为断线"""
		try:
			if sess.room is not None:
				sess.room.mark_disconnected(sess.connection)
				self.log_room_status("断开连接后")
			logger.info(f"客户端断开: {sess.addr}")
		finally:
			sess.room = None
			with self._sessions_lock:
				self.sessions.pop(id(sess.connection), None)

	def log_room_status(self, action: str) -> None:
		logger.info(f"=== {action} ===")
		for line in self.registry.status_lines():
			logger.info(line)


__all__ = [
	"ClientSession",
	"NetworkServer",
]
