"""
网关异常分类：路由、上游不可用、上游降级、启动致命错误。
所有上游异常在网关边界统一翻译为对客户端安全的通用消息，不透传原始网络异常。
"""
from __future__ import annotations


class GatewayError(Exception):
    """网关异常基类；status 为对客户端的 HTTP 状态码。"""

    status = 500
    public_message = "internal error"


class RoutingError(GatewayError):
    """未知路径，本地恢复为 404。"""

    status = 404
    public_message = "not found"


class UpstreamUnavailable(GatewayError):
    """后端连接失败、超时或响应中途断开，对客户端返回 502。"""

    status = 502
    public_message = "backend unavailable"

    def __init__(self, reason: str, url: str = ""):
        super().__init__(reason)
        self.reason = reason
        self.url = url


class UpstreamDegraded(GatewayError):
    """后端健康探测失败；仅在组合健康路由上返回 503。"""

    status = 503
    public_message = "backend unreachable"


class FatalStartupError(GatewayError):
    """启动期不可恢复错误（如监听端口无法绑定），进程以非零码退出。"""


class ConfigError(FatalStartupError):
    """配置缺失或非法。"""


__all__ = [
    "GatewayError",
    "RoutingError",
    "UpstreamUnavailable",
    "UpstreamDegraded",
    "FatalStartupError",
    "ConfigError",
]
