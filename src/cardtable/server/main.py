"""
服务器主程序入口

启动牌桌中继服务器，监听 WebSocket 连接。
"""

import logging
import os
import time

from cardtable.shared.constants import DEFAULT_HOST, DEFAULT_PORT, ROOM_IDLE_TTL

logger = logging.getLogger(__name__)


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.FileHandler("server.log"), logging.StreamHandler()],
    )


def _env_number(name: str, default, cast=int):
    try:
        return cast(os.environ.get(name, default))
    except (TypeError, ValueError):
        logger.warning(f"环境变量 {name} 无效，使用默认值 {default}")
        return default


def main():
    """启动服务器主函数"""
    configure_logging(logging.DEBUG if os.environ.get("DEBUG") else logging.INFO)

    # 支持通过环境变量覆盖主机、端口与房间保留时长
    host = os.environ.get("HOST", DEFAULT_HOST)
    port = _env_number("PORT", DEFAULT_PORT)
    room_ttl = _env_number("ROOM_IDLE_TTL", ROOM_IDLE_TTL, float)

    logger.info("=" * 50)
    logger.info("Card Table 中继服务器启动中...")
    logger.info(f"监听地址: {host}:{port}，闲置房间保留 {room_ttl:.0f} 秒")
    logger.info("=" * 50)

    server = None
    try:
        from cardtable.server.network import NetworkServer

        server = NetworkServer(host, port, room_ttl=room_ttl)
        server.start()

        logger.info("服务器运行中，按 Ctrl+C 停止")

        # 保持服务器运行
        while True:
            time.sleep(1)

    except KeyboardInterrupt:
        logger.info("服务器正在关闭...")
    except Exception as e:
        logger.error(f"服务器错误: {e}", exc_info=True)
    finally:
        if server is not None:
            server.stop()
        logger.info("服务器已停止")


if __name__ == "__main__":
    main()
