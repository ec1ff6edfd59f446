#!/usr/bin/env python3
"""在容器内启动店铺网关；后端地址、端口与超时全部来自环境变量（见 storefront_core.gateway.config）。"""
import os
import sys

sys.path.insert(0, os.environ.get("APP_ROOT", "/app"))

from storefront_core.gateway.server import main

sys.exit(main())
