"""
网关请求期临时结构：ProxyRequest（入站请求）、HealthStatus（健康结果）、GatewayResponse（处理函数返回值）。
均不落盘，请求结束即丢弃。
"""
from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from urllib3 import HTTPHeaderDict


@dataclass
class ProxyRequest:
    """一次入站请求。headers 大小写不敏感且支持重复头；body 原样字节，网关不做修改。"""

    method: str
    path: str
    headers: HTTPHeaderDict = field(default_factory=HTTPHeaderDict)
    body: bytes = b""
    query_string: str = ""
    client_addr: str = ""
    scheme: str = "http"
    trace_id: str = ""

    @classmethod
    def build(cls, method: str, path: str, headers: Optional[Any] = None, **kwargs: Any) -> "ProxyRequest":
        """headers 可为 dict 或 (name, value) 序列，统一转为 HTTPHeaderDict。"""
        hd = HTTPHeaderDict()
        items = headers.items() if hasattr(headers, "items") else (headers or [])
        for k, v in items:
            hd.add(k, v)
        return cls(method=method.upper(), path=path, headers=hd, **kwargs)


@dataclass(frozen=True)
class HealthStatus:
    gateway_up: bool
    backend_reachable: bool
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gatewayUp": self.gateway_up,
            "backendReachable": self.backend_reachable,
            "timestamp": self.timestamp,
        }


@dataclass
class GatewayResponse:
    """处理函数的结构化返回值；relayed=True 表示后端响应原样转发（不追加网关响应头）。"""

    status: int
    headers: List[Tuple[str, str]] = field(default_factory=list)
    body: bytes = b""
    relayed: bool = False

    def header(self, name: str) -> Optional[str]:
        lname = name.lower()
        for k, v in self.headers:
            if k.lower() == lname:
                return v
        return None

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8")) if self.body else None


def json_response(status: int, payload: Dict[str, Any]) -> GatewayResponse:
    """网关自身生成的 JSON 响应（健康、404、502 等）。"""
    body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    return GatewayResponse(
        status=status,
        headers=[("Content-Type", "application/json; charset=utf-8")],
        body=body,
    )


__all__ = ["ProxyRequest", "HealthStatus", "GatewayResponse", "json_response"]
