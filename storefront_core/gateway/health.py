"""
健康汇总：
- /health：网关自身存活，无上游依赖，进程在即 200。
- /api/health：组合健康，短超时探测后端健康端点；可达 200，不可达 503。
"""
from __future__ import annotations

from .errors import GatewayError, UpstreamDegraded
from .http_client import BackendClient
from .logging_utils import json_log
from .models import GatewayResponse, HealthStatus, ProxyRequest, json_response


def local_health(req: ProxyRequest) -> GatewayResponse:
    return json_response(200, {"status": "ok", "service": "gateway"})


class HealthAggregator:
    """组合健康检查；每次调用即时计算，不缓存结果。"""

    def __init__(self, client: BackendClient):
        self._client = client

    def check(self, trace_id: str = "") -> HealthStatus:
        try:
            self._client.probe_health(trace_id)
        except GatewayError as e:
            status = HealthStatus(gateway_up=True, backend_reachable=False)
            json_log("warn", "backend_health_failed", trace_id, error=str(e), kind=type(e).__name__,
                     **status.to_dict())
            return status
        return HealthStatus(gateway_up=True, backend_reachable=True)

    def __call__(self, req: ProxyRequest) -> GatewayResponse:
        status = self.check(req.trace_id)
        if status.backend_reachable:
            return json_response(200, {"status": "ok", "backend": "reachable"})
        return json_response(UpstreamDegraded.status, {"status": "degraded", "backend": "unreachable"})


__all__ = ["local_health", "HealthAggregator"]
