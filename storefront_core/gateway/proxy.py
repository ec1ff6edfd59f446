"""
代理处理：/api/* 原样转发至后端（方法、路径前缀、查询串、请求头、请求体不变），
后端响应（状态码、响应头、响应体）原样回传，仅剥离逐跳传输头。
"""
from __future__ import annotations

from typing import Iterable, List, Set, Tuple

from urllib3 import HTTPHeaderDict

from .errors import UpstreamUnavailable
from .http_client import BackendClient
from .logging_utils import json_log
from .models import GatewayResponse, ProxyRequest, json_response

HOP_BY_HOP = frozenset((
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "trailers",
    "transfer-encoding",
    "upgrade",
))

# 由出站连接重新生成
_REQUEST_DROP = frozenset(("host", "content-length"))
# 由 WSGI 服务按实际 body 重新生成（Server、Date 由服务端统一写一份）
_RESPONSE_DROP = frozenset(("content-length", "server", "date"))


def _connection_tokens(values: Iterable[str]) -> Set[str]:
    tokens = set()
    for v in values:
        tokens.update(t.strip().lower() for t in v.split(",") if t.strip())
    return tokens


def forward_headers(req: ProxyRequest) -> HTTPHeaderDict:
    """
    出站请求头：去掉逐跳头、Host、Content-Length，追加 X-Forwarded-*，透传 trace id。
    其余请求头（含重复头）保持原样。
    """
    drop = HOP_BY_HOP | _REQUEST_DROP | _connection_tokens(req.headers.getlist("Connection"))
    out = HTTPHeaderDict()
    for k, v in req.headers.items():
        if k.lower() not in drop:
            out.add(k, v)

    prior = ", ".join(out.getlist("X-Forwarded-For"))
    if req.client_addr:
        out.discard("X-Forwarded-For")
        out["X-Forwarded-For"] = f"{prior}, {req.client_addr}" if prior else req.client_addr
    host = req.headers.get("Host")
    if host and "X-Forwarded-Host" not in out:
        out["X-Forwarded-Host"] = host
    if "X-Forwarded-Proto" not in out:
        out["X-Forwarded-Proto"] = req.scheme
    if req.trace_id and "X-Trace-Id" not in out:
        out["X-Trace-Id"] = req.trace_id
    return out


def relay_headers(headers: Iterable[Tuple[str, str]], keep_length: bool = False) -> List[Tuple[str, str]]:
    """
    回传给客户端的响应头：去掉逐跳头、Content-Length、Server、Date，顺序与重复头保持不变。
    keep_length 为真时（HEAD 响应没有 body 可供重新计算）保留后端的 Content-Length。
    """
    headers = list(headers)
    conn = _connection_tokens(v for k, v in headers if k.lower() == "connection")
    drop = HOP_BY_HOP | _RESPONSE_DROP | conn
    if keep_length:
        drop = drop - {"content-length"}
    return [(k, v) for k, v in headers if k.lower() not in drop]


def make_proxy_handler(client: BackendClient):
    """返回绑定了后端客户端的代理处理函数 handler(ProxyRequest) -> GatewayResponse。"""

    def proxy_handler(req: ProxyRequest) -> GatewayResponse:
        try:
            upstream = client.forward(
                req.method,
                req.path,
                forward_headers(req),
                body=req.body,
                query_string=req.query_string,
            )
        except UpstreamUnavailable as e:
            # 细节只进日志，客户端只看到通用消息
            json_log("error", "forward_failed", req.trace_id, method=req.method, path=req.path,
                     upstream=e.url, error=e.reason)
            return json_response(e.status, {"error": e.public_message})
        return GatewayResponse(
            status=upstream.status,
            headers=relay_headers(upstream.headers, keep_length=req.method == "HEAD"),
            body=upstream.body,
            relayed=True,
        )

    return proxy_handler


__all__ = ["make_proxy_handler", "forward_headers", "relay_headers", "HOP_BY_HOP"]
