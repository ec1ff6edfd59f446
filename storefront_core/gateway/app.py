"""
店铺网关 Flask 应用（公网唯一 HTTP 入口，后端仅经本网关访问）。
- 请求在 before_request 中直接交给 Router 分派，任意方法、任意路径，不经 Flask URL 规则匹配。
- 处理函数返回结构化 GatewayResponse，再统一转换为 Flask Response。
- 全链路追踪：入站 X-Trace-Id / X-Request-ID 或新生成的 trace_id，透传后端并写入访问日志。
"""
from __future__ import annotations

import time
from typing import Optional
from urllib.parse import quote

from flask import Flask, Response, request
from werkzeug.exceptions import HTTPException

from .config import GatewayConfig
from .health import HealthAggregator, local_health
from .http_client import BackendClient
from .logging_utils import json_log, new_trace_id
from .models import GatewayResponse, ProxyRequest, json_response
from .proxy import make_proxy_handler
from .router import build_router


def _ensure_trace_id() -> str:
    """从请求头获取或生成 trace_id。"""
    return request.headers.get("X-Trace-Id") or request.headers.get("X-Request-ID") or new_trace_id()


def _raw_path() -> str:
    """优先取服务器记录的原始 URI 路径（保留百分号编码），否则对解码后的路径重新编码。"""
    raw = request.environ.get("RAW_URI") or request.environ.get("REQUEST_URI") or ""
    path = raw.split("?", 1)[0]
    if path.startswith("/"):
        return path
    return quote(request.path, safe="/:@!$&'()*+,;=-._~%")


def _to_proxy_request() -> ProxyRequest:
    return ProxyRequest.build(
        request.method,
        _raw_path(),
        request.headers.items(),
        body=request.get_data(cache=False),
        query_string=request.query_string.decode("latin-1"),
        client_addr=request.remote_addr or "",
        scheme=request.scheme,
        trace_id=getattr(request, "trace_id", ""),
    )


def _to_flask_response(result: GatewayResponse) -> Response:
    resp = Response(result.body, status=result.status, headers=result.headers)
    if result.header("Content-Type") is None:
        # 后端未声明类型时不补 Flask 默认的 text/html
        resp.headers.pop("Content-Type", None)
    length = result.header("Content-Length")
    if length is not None:
        # 构造时按 body 写入的长度被后端声明的长度覆盖（HEAD）
        resp.headers["Content-Length"] = length
    return resp


def create_app(config: GatewayConfig, backend_client: Optional[BackendClient] = None) -> Flask:
    """
    创建网关 Flask 应用。
    - config：启动时构造一次的不可变配置。
    - backend_client：后端出站客户端；None 时按 config 创建（测试可注入替身）。
    """
    app = Flask(__name__, static_folder=None)
    app.config["GATEWAY_CONFIG"] = config
    client = backend_client or BackendClient(config)
    router = build_router(local_health, HealthAggregator(client), make_proxy_handler(client))
    app.extensions["gateway_router"] = router
    app.extensions["gateway_backend_client"] = client

    @app.before_request
    def gateway_entry():
        request.trace_id = _ensure_trace_id()
        request.start_time = time.perf_counter()
        route, result = router.dispatch(_to_proxy_request())
        request.route = route
        request.relayed = result.relayed
        return _to_flask_response(result)

    @app.after_request
    def after(resp):
        start = getattr(request, "start_time", None)
        duration_ms = int((time.perf_counter() - start) * 1000) if start is not None else 0
        # 后端响应原样回传，网关头只加在自身生成的响应上
        if not getattr(request, "relayed", False):
            resp.headers["X-Trace-Id"] = getattr(request, "trace_id", "")
            resp.headers["X-Response-Time"] = str(duration_ms)
        json_log(
            "info",
            "request",
            getattr(request, "trace_id", ""),
            method=request.method,
            path=request.path,
            route=getattr(request, "route", ""),
            status=resp.status_code,
            duration_ms=duration_ms,
            client=request.remote_addr or "",
        )
        return resp

    @app.errorhandler(HTTPException)
    def http_error(e):
        # 如读取请求体时的 400 / 413
        return _to_flask_response(json_response(e.code or 500, {"error": (e.name or "error").lower()}))

    @app.errorhandler(Exception)
    def unexpected_error(e):
        json_log("error", "unhandled_error", getattr(request, "trace_id", ""), path=request.path,
                 error=f"{type(e).__name__}: {e}", exc_info=True)
        return _to_flask_response(json_response(500, {"error": "internal error"}))

    return app


__all__ = ["create_app"]
