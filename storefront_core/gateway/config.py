"""
网关启动配置：启动时构造一次的不可变 GatewayConfig，显式传入路由、代理与健康组件。
来源优先级：环境变量 > GATEWAY_CONFIG_PATH 指向的文件（.json 或 .yaml/.yml）> 内置默认。
后端地址与监听端口没有默认值，缺失即 ConfigError（不允许私网之外可用的硬编码地址）。
"""
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlsplit

import yaml

from .errors import ConfigError

CONFIG_PATH_ENV = "GATEWAY_CONFIG_PATH"

# 可读取的环境变量；配置文件中用同名小写键
_ENV_KEYS = (
    "BACKEND_URL",
    "BACKEND_HOST",
    "BACKEND_PORT",
    "BACKEND_SCHEME",
    "BACKEND_HEALTH_PATH",
    "GATEWAY_HOST",
    "GATEWAY_PORT",
    "GATEWAY_PROXY_TIMEOUT_SEC",
    "GATEWAY_CONNECT_TIMEOUT_SEC",
    "GATEWAY_HEALTH_TIMEOUT_SEC",
    "GATEWAY_POOL_NUM_POOLS",
    "GATEWAY_POOL_MAXSIZE",
    "GATEWAY_LOG_LEVEL",
)


@dataclass(frozen=True)
class GatewayConfig:
    """网关配置；frozen，构造后不可修改。"""

    backend_url: str
    listen_port: int
    listen_host: str = "0.0.0.0"
    backend_health_path: str = "/api/health"
    proxy_timeout_sec: float = 5.0
    connect_timeout_sec: float = 2.0
    health_timeout_sec: float = 2.0
    pool_num_pools: int = 4
    pool_maxsize: int = 32
    log_level: str = "INFO"

    @property
    def backend_health_url(self) -> str:
        return self.backend_url + self.backend_health_path

    def backend_target(self, path: str, query_string: str = "") -> str:
        """拼接后端目标 URL，保留原始路径前缀与查询串。"""
        url = self.backend_url + path
        if query_string:
            url += "?" + query_string
        return url


def _load_file(path: str) -> Dict[str, Any]:
    """从文件加载配置：.yaml/.yml 用 PyYAML，其余按 JSON 解析；键统一转大写。"""
    try:
        with open(path, "r", encoding="utf-8") as f:
            content = f.read()
    except OSError as e:
        raise ConfigError(f"cannot read config file {path}: {e}") from e
    if not content.strip():
        return {}
    lower = path.lower()
    try:
        if lower.endswith(".yaml") or lower.endswith(".yml"):
            data = yaml.safe_load(content) or {}
        else:
            data = json.loads(content)
    except (ValueError, yaml.YAMLError) as e:
        raise ConfigError(f"invalid config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping")
    # gateway: 下一层也接受
    if isinstance(data.get("gateway"), dict):
        data = data["gateway"]
    return {str(k).upper(): v for k, v in data.items() if v is not None}


def _merged_settings(environ: Mapping[str, str]) -> Dict[str, Any]:
    settings: Dict[str, Any] = {}
    path = (environ.get(CONFIG_PATH_ENV) or "").strip()
    if path:
        if not os.path.isfile(path):
            raise ConfigError(f"{CONFIG_PATH_ENV} points to a missing file: {path}")
        settings.update(_load_file(path))
    for key in _ENV_KEYS:
        val = environ.get(key)
        if val is not None and str(val).strip() != "":
            settings[key] = str(val).strip()
    return settings


def _float(settings: Dict[str, Any], key: str, default: float) -> float:
    raw = settings.get(key, default)
    try:
        val = float(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be a number, got {raw!r}")
    if val <= 0:
        raise ConfigError(f"{key} must be positive, got {raw!r}")
    return val


def _int(settings: Dict[str, Any], key: str, default: Optional[int] = None, minimum: int = 1) -> int:
    raw = settings.get(key, default)
    if raw is None:
        raise ConfigError(f"{key} is required")
    try:
        val = int(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be an integer, got {raw!r}")
    if val < minimum:
        raise ConfigError(f"{key} must be >= {minimum}, got {raw!r}")
    return val


def _port(settings: Dict[str, Any], key: str) -> int:
    port = _int(settings, key, minimum=0)
    if port > 65535:
        raise ConfigError(f"{key} out of range: {port}")
    return port


def _backend_url(settings: Dict[str, Any]) -> str:
    """BACKEND_URL 优先；否则 BACKEND_SCHEME://BACKEND_HOST:BACKEND_PORT。"""
    url = str(settings.get("BACKEND_URL") or "").strip()
    if not url:
        host = str(settings.get("BACKEND_HOST") or "").strip()
        if not host:
            raise ConfigError("BACKEND_URL or BACKEND_HOST is required")
        scheme = str(settings.get("BACKEND_SCHEME") or "http").strip().lower()
        port = _port(settings, "BACKEND_PORT")
        url = f"{scheme}://{host}:{port}"
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise ConfigError(f"backend URL must be http(s)://host[:port], got {url!r}")
    if parts.query or parts.fragment:
        raise ConfigError("backend URL must not carry a query string or fragment")
    return url.rstrip("/")


def load_config(environ: Optional[Mapping[str, str]] = None) -> GatewayConfig:
    """读取环境变量（及可选配置文件）并校验，返回不可变配置；非法时抛出 ConfigError。"""
    env = os.environ if environ is None else environ
    settings = _merged_settings(env)
    health_path = str(settings.get("BACKEND_HEALTH_PATH") or "/api/health").strip()
    if not health_path.startswith("/"):
        health_path = "/" + health_path
    return GatewayConfig(
        backend_url=_backend_url(settings),
        listen_port=_port(settings, "GATEWAY_PORT"),
        listen_host=str(settings.get("GATEWAY_HOST") or "0.0.0.0").strip(),
        backend_health_path=health_path,
        proxy_timeout_sec=_float(settings, "GATEWAY_PROXY_TIMEOUT_SEC", 5.0),
        connect_timeout_sec=_float(settings, "GATEWAY_CONNECT_TIMEOUT_SEC", 2.0),
        health_timeout_sec=_float(settings, "GATEWAY_HEALTH_TIMEOUT_SEC", 2.0),
        pool_num_pools=_int(settings, "GATEWAY_POOL_NUM_POOLS", 4),
        pool_maxsize=_int(settings, "GATEWAY_POOL_MAXSIZE", 32),
        log_level=str(settings.get("GATEWAY_LOG_LEVEL") or "INFO").strip().upper(),
    )


__all__ = ["GatewayConfig", "load_config", "CONFIG_PATH_ENV"]
