"""
店铺网关压力测试脚本（Locust）
覆盖：网关本地健康、组合健康、商品列表/详情/创建/更新/删除（经网关转发至后端）。
用法:
  locust -f locustfile.py --host=http://localhost:5921
  无界面: locust -f locustfile.py --host=http://localhost:5921 -u 100 -r 10 -t 5m --headless
"""
import logging
import os
import uuid

from locust import HttpUser, between, events, tag, task

HOST = os.environ.get("GATEWAY_URL", "http://localhost:5921").rstrip("/")


def _headers() -> dict:
    return {"Content-Type": "application/json", "X-Request-ID": str(uuid.uuid4())}


class ShopperUser(HttpUser):
    """模拟店铺用户：浏览商品为主，少量写操作与健康探测。"""
    host = HOST
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.product_ids = []

    @tag("health")
    @task(3)
    def health(self):
        self.client.get("/health", name="/health")

    @tag("health")
    @task(1)
    def composite_health(self):
        # 后端不可达时 503 属预期结果，不计为失败
        with self.client.get("/api/health", name="/api/health", catch_response=True) as r:
            if r.status_code in (200, 503):
                r.success()

    @task(6)
    def list_products(self):
        self.client.get("/api/products", headers=_headers(), name="/api/products")

    @task(3)
    def get_product(self):
        if not self.product_ids:
            return
        pid = self.product_ids[-1]
        self.client.get(f"/api/products/{pid}", headers=_headers(), name="/api/products/[id]")

    @task(2)
    def create_product(self):
        name = "perf-" + uuid.uuid4().hex[:8]
        r = self.client.post(
            "/api/products",
            json={"name": name, "price": 9.99, "stock": 10},
            headers=_headers(),
            name="/api/products POST",
        )
        if r.status_code in (200, 201):
            try:
                data = r.json()
            except ValueError:
                return
            pid = data.get("_id") or data.get("id") or (data.get("data") or {}).get("_id")
            if pid:
                self.product_ids.append(pid)

    @task(1)
    def update_product(self):
        if not self.product_ids:
            return
        pid = self.product_ids[-1]
        self.client.put(f"/api/products/{pid}", json={"stock": 5}, headers=_headers(), name="/api/products/[id] PUT")

    @task(1)
    def delete_product(self):
        if not self.product_ids:
            return
        pid = self.product_ids.pop()
        self.client.delete(f"/api/products/{pid}", headers=_headers(), name="/api/products/[id] DELETE")


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    logging.info("Load test started. Host=%s", HOST)
