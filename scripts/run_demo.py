#!/usr/bin/env python3
"""
run_demo.py - End-to-end demo against a running storefront service
- Mints tokens for the seeded admin & customer (see scripts/seed.py)
- Admin creates a category/product
- Customer fills a cart, validates it and checks out
- Admin marks the order paid and ships it
- Prints order stats
"""

import json
import os
from typing import Any, Dict, List, Optional

import requests

from storefront.core.auth import create_access_token

class DemoRunner:
    def __init__(self):
        self.base_url = os.getenv("STOREFRONT_URL", "http://localhost:8000")
        self.admin_id = 1
        self.cust_id = 2
        self.admin_access_token, _ = create_access_token(self.admin_id, "admin")
        self.cust_access_token, _ = create_access_token(self.cust_id, "customer")

    # ---------- helpers ----------
    def show_step(self, title: str):
        print(f"\n=== {title} ===")

    def headers(self, token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    def call_api(
        self,
        method: str,
        path: str,
        headers: Optional[Dict] = None,
        data: Optional[Any] = None,
        expected_status: List[int] = [200, 201],
        timeout: int = 30,
    ):
        url = f"{self.base_url}{path}"
        print(f"\n-> {method} {url}")
        if data is not None:
            print(f"   Body: {json.dumps(data, indent=2)}")
        try:
            resp = requests.request(method=method, url=url, headers=headers, json=data, timeout=timeout)
        except requests.exceptions.RequestException as e:
            print(f"   Error: \033[91m{e}\033[0m")
            return {"status": None, "data": None}

        status_color = "\033[92m" if resp.status_code in expected_status else "\033[93m"
        print(f"   Status: {status_color}{resp.status_code}\033[0m")
        try:
            js = resp.json()
        except json.JSONDecodeError:
            print(f"   Content: {resp.text}")
            return {"status": resp.status_code, "data": None}
        print(json.dumps(js, indent=2))
        return {"status": resp.status_code, "data": js}

    # ---------- flow ----------
    def run_demo(self):
        print("Starting Storefront Demo")
        print("=" * 50)
        admin = self.headers(self.admin_access_token)
        cust = self.headers(self.cust_access_token)

        self.show_step("Preflight: health")
        if self.call_api("GET", "/health").get("status") != 200:
            print("\033[91mService not reachable; is uvicorn running?\033[0m")
            return

        self.show_step("Admin: create category")
        cat = self.call_api("POST", "/categories", headers=admin, data={"name": "Shoes"}, expected_status=[201, 409])
        category_id = ((cat.get("data") or {}).get("data") or {}).get("id")

        self.show_step("Admin: create product")
        prod = self.call_api(
            "POST",
            "/products",
            headers=admin,
            data={"name": "Air Zoom", "description": "Runner", "price_cents": 12999, "stock": 10,
                  "category_id": category_id},
        )
        product_id = ((prod.get("data") or {}).get("data") or {}).get("id")
        if not product_id:
            print("Skipping cart steps - no product")
            return

        self.show_step("Customer: add to cart")
        self.call_api("POST", "/cart/items", headers=cust, data={"product_id": product_id, "quantity": 2})

        self.show_step("Customer: validate cart")
        self.call_api("GET", "/cart/validate", headers=cust)

        self.show_step("Customer: checkout")
        co = self.call_api(
            "POST",
            "/orders",
            headers=cust,
            data={"shipping_address": "1 Demo Street, Dublin D01XYZ", "payment_method": "card"},
        )
        order = (co.get("data") or {}).get("data") or {}
        order_id = order.get("id")
        print(f"Order ID: {order_id}; Amount: {order.get('total_amount')}")
        if not order_id:
            return

        self.show_step("Admin: mark paid & ship")
        self.call_api("PATCH", f"/orders/{order_id}/payment-status", headers=admin, data={"payment_status": "paid"})
        self.call_api("PATCH", f"/orders/{order_id}/status", headers=admin, data={"status": "shipped"})

        self.show_step("Customer: my orders")
        self.call_api("GET", "/orders/my", headers=cust)

        self.show_step("Admin: order stats")
        self.call_api("GET", "/orders/stats", headers=admin)

        print("\n\033[92m=== DEMO COMPLETE ===\033[0m")


if __name__ == "__main__":
    DemoRunner().run_demo()
