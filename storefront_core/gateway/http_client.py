"""
网关到后端的 HTTP 出站调用：urllib3 连接池复用 TCP 连接，降低转发耗时。
- 每次出站都带显式超时（connect + total）；响应体按整体截止时间分块读取，后端逐字节慢发也不会拖住网关线程。
- 单次尝试，不自动重试；重试由客户端负责。
- 不跟随重定向、不解压：后端响应原样回传。
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import urllib3
from urllib3 import HTTPHeaderDict
from urllib3.util import SKIP_HEADER

from .config import GatewayConfig
from .errors import UpstreamDegraded, UpstreamUnavailable

logger = logging.getLogger("gateway.http_client")

READ_CHUNK = 64 * 1024


@dataclass
class UpstreamResponse:
    status: int
    headers: List[Tuple[str, str]] = field(default_factory=list)
    body: bytes = b""


class BackendClient:
    """后端出站客户端；连接池线程安全，整个进程共享一个实例。"""

    def __init__(self, config: GatewayConfig, pool: Optional[urllib3.PoolManager] = None):
        self._config = config
        self._pool = pool or urllib3.PoolManager(
            num_pools=config.pool_num_pools,
            maxsize=config.pool_maxsize,
            block=False,
        )
        logger.info(
            "gateway http pool created num_pools=%s maxsize=%s",
            config.pool_num_pools,
            config.pool_maxsize,
        )

    def _timeout(self, total: float) -> urllib3.Timeout:
        return urllib3.Timeout(total=total, connect=min(self._config.connect_timeout_sec, total), read=total)

    def forward(
        self,
        method: str,
        path: str,
        headers: HTTPHeaderDict,
        body: Optional[bytes] = None,
        query_string: str = "",
    ) -> UpstreamResponse:
        """
        转发一次请求，返回 (status, headers, body)。
        连接拒绝、超时、响应中途断开统一抛出 UpstreamUnavailable。
        """
        url = self._config.backend_target(path, query_string)
        deadline = time.monotonic() + self._config.proxy_timeout_sec
        out_headers = HTTPHeaderDict(headers)
        # 客户端未带 User-Agent 时不让 urllib3 补默认值
        if "User-Agent" not in out_headers:
            out_headers["User-Agent"] = SKIP_HEADER
        try:
            resp = self._pool.urlopen(
                method,
                url,
                body=body or None,
                headers=out_headers,
                timeout=self._timeout(self._config.proxy_timeout_sec),
                retries=False,
                redirect=False,
                preload_content=False,
                decode_content=False,
            )
        except (urllib3.exceptions.HTTPError, OSError) as e:
            raise UpstreamUnavailable(f"{type(e).__name__}: {e}", url) from e
        try:
            data = self._read_body(resp, deadline)
        except (urllib3.exceptions.HTTPError, OSError) as e:
            resp.close()
            raise UpstreamUnavailable(f"{type(e).__name__}: {e}", url) from e
        except UpstreamUnavailable as e:
            resp.close()
            e.url = url
            raise
        finally:
            resp.release_conn()
        return UpstreamResponse(status=resp.status, headers=list(resp.headers.items()), body=data)

    @staticmethod
    def _read_body(resp: urllib3.BaseHTTPResponse, deadline: float) -> bytes:
        """
        按整体截止时间读取响应体：每次 read1 至多一次 recv，且 socket 超时收紧到剩余时间。
        超过截止时间抛 UpstreamUnavailable；长度不符由 urllib3 抛 ProtocolError。
        """
        chunks = []
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise UpstreamUnavailable("response body exceeded proxy timeout")
            sock = getattr(resp.connection, "sock", None)
            if sock is not None:
                sock.settimeout(remaining)
            chunk = resp.read1(READ_CHUNK, decode_content=False)
            if not chunk:
                return b"".join(chunks)
            chunks.append(chunk)

    def probe_health(self, trace_id: str = "") -> int:
        """GET 后端健康端点；2xx 返回状态码，非 2xx 抛 UpstreamDegraded，连不上抛 UpstreamUnavailable。"""
        url = self._config.backend_health_url
        headers = {"Accept": "application/json"}
        if trace_id:
            headers["X-Trace-Id"] = trace_id
        try:
            resp = self._pool.request(
                "GET",
                url,
                headers=headers,
                timeout=self._timeout(self._config.health_timeout_sec),
                retries=False,
                redirect=False,
            )
        except (urllib3.exceptions.HTTPError, OSError) as e:
            raise UpstreamUnavailable(f"{type(e).__name__}: {e}", url) from e
        if not 200 <= resp.status < 300:
            raise UpstreamDegraded(f"backend health returned {resp.status}")
        return resp.status

    def close(self) -> None:
        self._pool.clear()


__all__ = ["BackendClient", "UpstreamResponse"]
