"""
路由分类：按路径把请求分派给已注册的处理函数。
- /health            -> 网关本地健康
- /api/health[/...]  -> 组合健康
- /api/...           -> 代理
- 其他               -> 404 {"error": "not found"}
无状态，按注册顺序匹配，先匹配先得。
匹配前先消解路径中的 . 与 .. 段，消解后的路径同时用于转发。
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Tuple
from urllib.parse import unquote

from .errors import RoutingError
from .models import GatewayResponse, ProxyRequest, json_response

Handler = Callable[[ProxyRequest], GatewayResponse]

LOCAL_HEALTH = "local_health"
COMPOSITE_HEALTH = "composite_health"
PROXY = "proxy"
NOT_FOUND = "not_found"


@dataclass(frozen=True)
class RoutePattern:
    """exact 为整路径匹配；prefix 为前缀匹配（prefix 本身需以 / 结尾）。"""

    exact: Optional[str] = None
    prefix: Optional[str] = None

    def matches(self, path: str) -> bool:
        if self.exact is not None and path == self.exact:
            return True
        if self.prefix is not None and path.startswith(self.prefix):
            return True
        return False


_DOT_SEGMENTS = (".", "..")


def normalize_path(path: str) -> str:
    """
    消解 . 与 ..（含 %2e 编码形式），越过根的 .. 停在根。
    不含点段的路径原样返回，其余段的编码保持不变。
    """
    segments = path.split("/")
    if not any(unquote(s) in _DOT_SEGMENTS for s in segments):
        return path
    out: List[str] = []
    for seg in segments[1:]:
        name = unquote(seg)
        if name == ".":
            continue
        if name == "..":
            if out:
                out.pop()
            continue
        out.append(seg)
    result = "/" + "/".join(out)
    # 以点段结尾时保留目录语义
    if unquote(segments[-1]) in _DOT_SEGMENTS and not result.endswith("/"):
        result += "/"
    return result


def not_found(req: ProxyRequest) -> GatewayResponse:
    return json_response(RoutingError.status, {"error": RoutingError.public_message})


class Router:
    def __init__(self, fallback: Handler = not_found):
        self._routes: List[Tuple[str, RoutePattern, Handler]] = []
        self._fallback = fallback

    def add(self, name: str, pattern: RoutePattern, handler: Handler) -> None:
        self._routes.append((name, pattern, handler))

    def resolve(self, path: str) -> Tuple[str, Handler]:
        for name, pattern, handler in self._routes:
            if pattern.matches(path):
                return name, handler
        return NOT_FOUND, self._fallback

    def dispatch(self, req: ProxyRequest) -> Tuple[str, GatewayResponse]:
        path = normalize_path(req.path)
        if path != req.path:
            req = replace(req, path=path)
        name, handler = self.resolve(path)
        return name, handler(req)


def build_router(local_health: Handler, composite_health: Handler, proxy: Handler) -> Router:
    """按固定优先级注册三类处理函数；/api/health 必须先于 /api/ 注册。"""
    router = Router()
    router.add(LOCAL_HEALTH, RoutePattern(exact="/health"), local_health)
    router.add(COMPOSITE_HEALTH, RoutePattern(exact="/api/health", prefix="/api/health/"), composite_health)
    router.add(PROXY, RoutePattern(prefix="/api/"), proxy)
    return router


__all__ = [
    "Router",
    "RoutePattern",
    "build_router",
    "not_found",
    "normalize_path",
    "LOCAL_HEALTH",
    "COMPOSITE_HEALTH",
    "PROXY",
    "NOT_FOUND",
]
