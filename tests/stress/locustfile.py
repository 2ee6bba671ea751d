"""
POS Load Testing with Locust

Run with (after `flask system init` and loading a few products):
    locust -f tests/stress/locustfile.py --host http://127.0.0.1:5001

Or headless:
    locust -f tests/stress/locustfile.py --host http://127.0.0.1:5001 \
           --users 10 --spawn-rate 2 --run-time 60s --headless

Pass thresholds:
- p95 response time < 500ms for reads
- p95 response time < 1000ms for writes (save, pay, lock)
- Error rate < 1%

Many cashiers saving orders for the same products is the interesting
case: stock conflicts come back as 409 and are counted as expected.
"""

import random
import time
from typing import Optional, Dict, List

from locust import HttpUser, task, between, events


# =============================================================================
# CONFIGURATION
# =============================================================================

# Default users created by `flask system init`
TEST_USERS = [
    {"username": "cashier", "password": "Password123!", "role": "cashier"},
    {"username": "manager", "password": "Password123!", "role": "manager"},
]

WRITE_MARKERS = ("save", "pay", "lock", "draft")


# =============================================================================
# METRICS TRACKING
# =============================================================================

class MetricsCollector:
    """Per-endpoint counts, errors and latencies."""

    def __init__(self):
        self.request_counts: Dict[str, int] = {}
        self.error_counts: Dict[str, int] = {}
        self.response_times: Dict[str, List[float]] = {}

    def record(self, name: str, response_time: float, success: bool):
        self.request_counts[name] = self.request_counts.get(name, 0) + 1
        self.error_counts.setdefault(name, 0)
        if not success:
            self.error_counts[name] += 1
        self.response_times.setdefault(name, []).append(response_time)

    def get_summary(self) -> Dict:
        summary = {}
        for name, count in self.request_counts.items():
            times = sorted(self.response_times[name])
            if not times:
                continue
            p95_idx = min(int(len(times) * 0.95), len(times) - 1)
            summary[name] = {
                "count": count,
                "errors": self.error_counts[name],
                "error_rate": self.error_counts[name] / count * 100,
                "avg_ms": sum(times) / len(times),
                "p95_ms": times[p95_idx],
            }
        return summary


metrics = MetricsCollector()


# =============================================================================
# USER BEHAVIORS
# =============================================================================

class POSUser(HttpUser):
    """Base POS user that authenticates on start."""
    wait_time = between(0.5, 2)
    abstract = True

    token: Optional[str] = None
    product_ids: List[int] = []

    def on_start(self):
        self.login()
        self.load_products()

    def on_stop(self):
        if self.token:
            self.client.post("/api/locks/release-session", headers=self.get_headers(), name="locks/release_session")

    def login(self):
        creds = random.choice(TEST_USERS)
        response = self.client.post(
            "/api/auth/login",
            json={"username": creds["username"], "password": creds["password"]},
            name="auth/login"
        )
        if response.status_code == 200:
            self.token = response.json().get("token")

    def load_products(self):
        response = self.client.get("/api/products", headers=self.get_headers(), name="products/list")
        if response.status_code == 200:
            self.product_ids = [p["id"] for p in response.json().get("products", []) if p.get("stock", 0) > 0]

    def get_headers(self) -> Dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def timed(self, name: str, method: str, path: str, ok=(200,), **kwargs):
        start = time.time()
        response = getattr(self.client, method)(path, headers=self.get_headers(), name=name, **kwargs)
        metrics.record(name, (time.time() - start) * 1000, response.status_code in ok)
        return response


class BrowsingUser(POSUser):
    """Reads only: catalog lookups, order history, sync polling."""
    weight = 3

    @task(5)
    def list_products(self):
        self.timed("products/list", "get", "/api/products")

    @task(2)
    def list_clients(self):
        self.timed("clients/list", "get", "/api/clients")

    @task(2)
    def list_orders(self):
        self.timed("orders/list", "get", "/api/orders", params={"limit": 20})

    @task(3)
    def poll_revision(self):
        self.timed("sync/revision", "get", "/api/sync/revision")

    @task(1)
    def health_check(self):
        self.timed("system/health", "get", "/api/health")


class CashierUser(POSUser):
    """Builds, saves and pays orders, holding the order lock while editing."""
    weight = 2

    created_orders: List[str] = []

    @task(4)
    def sell(self):
        if not self.product_ids:
            return

        response = self.timed("orders/draft", "post", "/api/orders/draft", json={})
        if response.status_code != 200:
            return
        order = response.json()["order"]

        response = self.timed(
            "orders/draft_add_item", "post", "/api/orders/draft/add-item",
            ok=(200, 409),
            json={"order": order, "product_id": random.choice(self.product_ids), "quantity": random.randint(1, 3)},
        )
        if response.status_code != 200:
            return
        order = response.json()["order"]

        response = self.timed("orders/save", "post", "/api/orders", ok=(201, 409), json={"order": order})
        if response.status_code != 201:
            return
        saved = response.json()["order"]
        self.created_orders.append(saved["id"])

        self.timed(
            "payments/pay", "post", f"/api/payments/orders/{saved['id']}",
            ok=(200,),
            json={"method": random.choice(["cash", "card"]), "amount_cents": saved["total_cents"]},
        )

    @task(2)
    def edit_parked_order(self):
        if not self.created_orders:
            return
        order_id = random.choice(self.created_orders[-10:])

        response = self.timed("locks/acquire", "post", f"/api/locks/{order_id}", ok=(200, 409))
        if response.status_code != 200:
            return
        self.timed("orders/get", "get", f"/api/orders/{order_id}", ok=(200, 404))
        self.timed("locks/release", "delete", f"/api/locks/{order_id}", ok=(200, 409))

    @task(1)
    def payment_summary(self):
        if not self.created_orders:
            return
        order_id = random.choice(self.created_orders[-10:])
        self.timed("payments/summary", "get", f"/api/payments/orders/{order_id}", ok=(200, 404))


# =============================================================================
# EVENT HANDLERS
# =============================================================================

@events.test_stop.add_listener
def on_test_stop(environment, **kwargs):
    """Print summary when test stops."""
    print("\n" + "=" * 80)
    print("LOAD TEST SUMMARY")
    print("=" * 80)

    summary = metrics.get_summary()

    print(f"\n{'Endpoint':<30} {'Count':>8} {'Errors':>8} {'Err%':>8} {'Avg(ms)':>10} {'P95(ms)':>10}")
    print("-" * 80)

    total_requests = 0
    total_errors = 0
    all_pass = True

    for name, stats in sorted(summary.items()):
        total_requests += stats["count"]
        total_errors += stats["errors"]

        p95_threshold = 1000 if any(marker in name for marker in WRITE_MARKERS) else 500
        passed = stats["p95_ms"] < p95_threshold and stats["error_rate"] < 1
        if not passed:
            all_pass = False

        print(f"{name:<30} {stats['count']:>8} {stats['errors']:>8} {stats['error_rate']:>7.2f}% "
              f"{stats['avg_ms']:>9.1f} {stats['p95_ms']:>9.1f} [{'PASS' if passed else 'FAIL'}]")

    print("-" * 80)
    print(f"{'TOTAL':<30} {total_requests:>8} {total_errors:>8} {total_errors/max(total_requests,1)*100:>7.2f}%")
    print("=" * 80)
    print("\n[PASS] All endpoints within thresholds" if all_pass else "\n[FAIL] Some endpoints exceeded thresholds")
    print("=" * 80)
