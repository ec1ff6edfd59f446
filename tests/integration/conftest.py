"""
网关集成测试公共 fixture：
- echo_backend：真实 HTTP 后端替身（Flask + werkzeug 多线程服务），回显收到的方法、路径、查询串、请求头与请求体。
- dropping_backend：只回半截响应就断开连接的原始 socket 服务。
- dripping_backend：每隔一段时间只发一个字节响应体的原始 socket 服务。
- closed_backend_url：无人监听的端口（连接被拒绝）。
- start_gateway：按配置启动真实网关服务，返回其 base_url。
"""
from __future__ import annotations

import base64
import os
import socket
import sys
import threading
import time

import pytest
import urllib3
from flask import Flask, jsonify, redirect, request
from werkzeug.serving import make_server

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from storefront_core.gateway.config import GatewayConfig
from storefront_core.gateway.server import build_server

SLOW_SEC = 2.0
SLOW_HEALTH_SEC = 1.5
DRIP_INTERVAL_SEC = 0.4
DRIP_BYTES = 8
CATALOG_SUMMARY = {"products": 128, "currency": "EUR"}
ECHO_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def create_echo_backend():
    app = Flask("echo_backend")

    @app.route("/api/health")
    def health():
        return jsonify({"status": "ok"})

    @app.route("/slow-health")
    def slow_health():
        time.sleep(SLOW_HEALTH_SEC)
        return jsonify({"status": "ok"})

    @app.route("/broken-health")
    def broken_health():
        return jsonify({"status": "db down"}), 500

    @app.route("/api/slow")
    def slow():
        time.sleep(SLOW_SEC)
        return jsonify({"status": "late"})

    @app.route("/api/products/missing")
    def missing():
        resp = jsonify({"message": "Product not found"})
        resp.status_code = 404
        resp.headers["X-Backend"] = "echo"
        return resp

    @app.route("/internal/admin")
    def internal_admin():
        return jsonify({"seen": request.path})

    @app.route("/api/catalog/summary")
    def catalog_summary():
        return jsonify(CATALOG_SUMMARY)

    @app.route("/api/moved")
    def moved():
        return redirect("/api/products", code=302)

    @app.route("/api/<path:rest>", methods=ECHO_METHODS, provide_automatic_options=False)
    def echo(rest):
        return jsonify({
            "method": request.method,
            "path": request.path,
            "query": request.query_string.decode("latin-1"),
            "headers": dict(request.headers.items()),
            "body": base64.b64encode(request.get_data()).decode("ascii"),
        })

    return app


class ServerThread(threading.Thread):
    """在后台线程运行 werkzeug 服务；stop() 停止。"""

    def __init__(self, server):
        super().__init__(daemon=True)
        self.server = server

    @property
    def url(self) -> str:
        return f"http://127.0.0.1:{self.server.port}"

    def run(self):
        self.server.serve_forever(poll_interval=0.05)

    def stop(self):
        self.server.shutdown()


class RawSocketBackend:
    """原始 socket 后端：每个连接读一次请求后交给 respond(conn) 写响应，随后关闭。"""

    def __init__(self, respond):
        self._respond = respond
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.bind(("127.0.0.1", 0))
        self.sock.listen(16)
        self.sock.settimeout(0.1)
        self.port = self.sock.getsockname()[1]
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._loop, daemon=True)
        self._thread.start()

    @property
    def url(self) -> str:
        return f"http://127.0.0.1:{self.port}"

    def _loop(self):
        while not self._stop.is_set():
            try:
                conn, _ = self.sock.accept()
            except socket.timeout:
                continue
            except OSError:
                break
            threading.Thread(target=self._serve, args=(conn,), daemon=True).start()

    def _serve(self, conn):
        with conn:
            conn.settimeout(1)
            try:
                conn.recv(65536)
                self._respond(conn)
            except OSError:
                pass

    def stop(self):
        self._stop.set()
        self._thread.join(timeout=2)
        self.sock.close()


@pytest.fixture(scope="session")
def echo_backend():
    t = ServerThread(make_server("127.0.0.1", 0, create_echo_backend(), threaded=True))
    t.start()
    yield t.url
    t.stop()


def _drop_mid_body(conn):
    """声明 Content-Length 100 却只发 10 字节后关闭连接，模拟响应中途断开。"""
    conn.sendall(
        b"HTTP/1.1 200 OK\r\n"
        b"Content-Type: application/json\r\n"
        b"Content-Length: 100\r\n\r\n"
        b'{"data": ['
    )


def _drip_body(conn):
    """头部立即返回，响应体每 DRIP_INTERVAL_SEC 秒只发一个字节。"""
    conn.sendall(
        b"HTTP/1.1 200 OK\r\n"
        b"Content-Type: application/octet-stream\r\n"
        + f"Content-Length: {DRIP_BYTES}\r\n\r\n".encode("ascii")
    )
    for _ in range(DRIP_BYTES):
        time.sleep(DRIP_INTERVAL_SEC)
        conn.sendall(b"x")


@pytest.fixture
def dropping_backend():
    b = RawSocketBackend(_drop_mid_body)
    yield b.url
    b.stop()


@pytest.fixture
def dripping_backend():
    b = RawSocketBackend(_drip_body)
    yield b.url
    b.stop()


@pytest.fixture
def closed_backend_url():
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return f"http://127.0.0.1:{port}"


@pytest.fixture
def start_gateway():
    """start_gateway(backend_url, **config_overrides) -> 网关 base_url；用例结束后统一停止。"""
    threads = []

    def _start(backend_url, **overrides):
        overrides.setdefault("proxy_timeout_sec", 1.0)
        overrides.setdefault("health_timeout_sec", 1.0)
        overrides.setdefault("connect_timeout_sec", 0.5)
        config = GatewayConfig(backend_url=backend_url, listen_port=0, listen_host="127.0.0.1", **overrides)
        t = ServerThread(build_server(config))
        t.start()
        threads.append(t)
        return t.url

    yield _start
    for t in threads:
        t.stop()


@pytest.fixture
def http():
    """测试侧 HTTP 客户端；不重试、不跟随重定向。"""
    pool = urllib3.PoolManager(retries=False)
    yield pool
    pool.clear()
