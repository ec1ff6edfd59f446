from .app import create_app
from .config import GatewayConfig, load_config
from .errors import (
    ConfigError,
    FatalStartupError,
    GatewayError,
    RoutingError,
    UpstreamDegraded,
    UpstreamUnavailable,
)

__all__ = [
    "create_app",
    "GatewayConfig",
    "load_config",
    "GatewayError",
    "RoutingError",
    "UpstreamUnavailable",
    "UpstreamDegraded",
    "FatalStartupError",
    "ConfigError",
]
