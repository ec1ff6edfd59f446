"""
网关进程入口：读取配置、绑定监听端口、以多线程 WSGI 服务运行（每请求一线程）。
监听端口绑定失败或配置非法即以退出码 1 终止；其余情况不主动退出。
"""
from __future__ import annotations

import signal
import socket
import sys
from typing import Optional

from werkzeug.serving import BaseWSGIServer, get_sockaddr, make_server, select_address_family

from .app import create_app
from .config import GatewayConfig, load_config
from .errors import FatalStartupError
from .logging_utils import configure_logging, json_log

LISTEN_BACKLOG = 128


def bind_listener(host: str, port: int) -> socket.socket:
    """显式绑定并监听；失败抛 FatalStartupError（不交给 werkzeug 内部 sys.exit）。"""
    family = select_address_family(host, port)
    sock = socket.socket(family, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind(get_sockaddr(host, port, family))
        sock.listen(LISTEN_BACKLOG)
    except OSError as e:
        sock.close()
        raise FatalStartupError(f"cannot bind {host}:{port}: {e.strerror or e}") from e
    return sock


def build_server(config: GatewayConfig, app=None) -> BaseWSGIServer:
    """绑定端口并创建多线程服务；config.listen_port 为 0 时由系统分配（实际端口见 server.port）。"""
    sock = bind_listener(config.listen_host, config.listen_port)
    try:
        server = make_server(
            config.listen_host,
            config.listen_port,
            app or create_app(config),
            threaded=True,
            fd=sock.fileno(),
        )
    finally:
        # make_server 已通过 fromfd 复制了描述符
        sock.close()
    return server


def _raise_interrupt(signum, frame):
    raise KeyboardInterrupt


def serve(config: GatewayConfig) -> None:
    server = build_server(config)
    json_log("info", "gateway_started", "", host=config.listen_host, port=server.port,
             backend=config.backend_url)
    signal.signal(signal.SIGTERM, _raise_interrupt)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        json_log("info", "gateway_stopping", "")
    finally:
        server.server_close()
        client = getattr(server.app, "extensions", {}).get("gateway_backend_client")
        if client is not None:
            client.close()


def main(argv: Optional[list] = None) -> int:
    """控制台入口 storefront-gateway；返回进程退出码。"""
    try:
        config = load_config()
    except FatalStartupError as e:
        configure_logging("INFO")
        json_log("error", "gateway_config_invalid", "", error=str(e))
        return 1
    configure_logging(config.log_level)
    try:
        serve(config)
    except FatalStartupError as e:
        json_log("error", "gateway_startup_failed", "", error=str(e))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
