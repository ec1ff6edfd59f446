"""
网关单元测试公共 fixture：配置、后端客户端替身、网关 app。
"""
from __future__ import annotations

import os
import sys

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from storefront_core.gateway.app import create_app
from storefront_core.gateway.config import GatewayConfig
from storefront_core.gateway.http_client import UpstreamResponse

BACKEND_URL = "http://backend.internal:3000"


class StubBackendClient:
    """记录每次 forward 调用；response / forward_error / health_error 由用例设置。"""

    def __init__(self):
        self.calls = []
        self.probes = []
        self.response = UpstreamResponse(
            status=200,
            headers=[("Content-Type", "application/json")],
            body=b'{"data": [], "total": 0}',
        )
        self.forward_error = None
        self.health_error = None

    @property
    def last_call(self):
        return self.calls[-1] if self.calls else None

    def forward(self, method, path, headers, body=None, query_string=""):
        self.calls.append({
            "method": method,
            "path": path,
            "headers": headers,
            "body": body,
            "query_string": query_string,
        })
        if self.forward_error is not None:
            raise self.forward_error
        return self.response

    def probe_health(self, trace_id=""):
        self.probes.append(trace_id)
        if self.health_error is not None:
            raise self.health_error
        return 200


@pytest.fixture
def gateway_config():
    return GatewayConfig(backend_url=BACKEND_URL, listen_port=0, listen_host="127.0.0.1")


@pytest.fixture
def backend():
    return StubBackendClient()


@pytest.fixture
def gateway_app(gateway_config, backend):
    app = create_app(gateway_config, backend_client=backend)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def gateway_client(gateway_app):
    """网关测试客户端。"""
    with gateway_app.test_client() as c:
        yield c
