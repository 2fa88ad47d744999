"""Integration tests for the HTTP routes."""

from tests.conftest import CUSTOMER_ID


def add(client, headers, product_id, quantity=1):
    return client.post("/cart/items", json={"product_id": product_id, "quantity": quantity}, headers=headers)


def checkout(client, headers):
    return client.post("/orders", json={"shipping_address": "1 Main St", "payment_method": "card"}, headers=headers)


class TestService:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_info(self, client):
        assert client.get("/v1/_info").json()["service"] == "storefront"


class TestAuth:
    def test_missing_token(self, client, seeded):
        response = client.get("/cart")
        assert response.status_code == 401
        assert response.json() == {"success": False, "message": "Not authenticated"}

    def test_invalid_token(self, client, seeded):
        response = client.get("/cart", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_admin_route_rejects_customer(self, client, seeded, customer_headers):
        response = client.get("/cart/admin/stats", headers=customer_headers)
        assert response.status_code == 403
        assert response.json()["message"] == "Admin only"


class TestCatalogRoutes:
    def test_list_products_is_public(self, client, seeded):
        body = client.get("/products").json()
        assert body["success"] is True
        assert body["data"]["pagination"]["total"] == 2
        prices = {p["name"]: p["price"] for p in body["data"]["products"]}
        assert prices == {"Widget": "10.00", "Gizmo": "5.50"}

    def test_missing_product(self, client, seeded):
        response = client.get("/products/9999")
        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Product not found"}

    def test_admin_creates_product(self, client, seeded, admin_headers):
        response = client.post("/products", json={"name": "Sprocket", "price_cents": 250, "stock": 4},
                               headers=admin_headers)
        assert response.status_code == 201
        assert response.json()["data"]["price"] == "2.50"

    def test_update_product_with_null_name(self, client, seeded, admin_headers):
        response = client.patch(f"/products/{seeded['widget']}", json={"name": None}, headers=admin_headers)
        assert response.status_code == 422
        assert response.json() == {"success": False, "message": "name cannot be null"}

    def test_update_product_with_unknown_category(self, client, seeded, admin_headers):
        response = client.patch(f"/products/{seeded['widget']}", json={"category_id": 999}, headers=admin_headers)
        assert response.status_code == 404
        assert response.json()["message"] == "Category not found"

    def test_duplicate_category(self, client, seeded, admin_headers):
        response = client.post("/categories", json={"name": "Gadgets"}, headers=admin_headers)
        assert response.status_code == 409


class TestCartRoutes:
    def test_add_then_add_again(self, client, seeded, customer_headers):
        first = add(client, customer_headers, seeded["widget"], 1)
        assert first.status_code == 201
        assert first.json()["message"] == "Item added to cart"

        second = add(client, customer_headers, seeded["widget"], 2)
        assert second.status_code == 200
        assert second.json()["data"]["quantity"] == 3

    def test_add_beyond_stock(self, client, seeded, customer_headers):
        response = add(client, customer_headers, seeded["gizmo"], 4)
        assert response.status_code == 400
        assert response.json()["message"] == "Requested quantity exceeds stock. Available: 3"

    def test_add_unavailable(self, client, seeded, customer_headers):
        response = add(client, customer_headers, seeded["relic"])
        assert response.status_code == 400
        assert response.json()["message"] == "Product is not available"

    def test_zero_quantity_is_rejected_on_add(self, client, seeded, customer_headers):
        response = add(client, customer_headers, seeded["widget"], 0)
        assert response.status_code == 422
        assert response.json()["success"] is False
        assert response.json()["errors"]

    def test_view_and_summary(self, client, seeded, customer_headers):
        add(client, customer_headers, seeded["widget"], 2)
        add(client, customer_headers, seeded["gizmo"], 1)

        cart = client.get("/cart", headers=customer_headers).json()["data"]
        assert cart["summary"]["subtotal"] == "25.50"
        assert cart["summary"]["item_count"] == 3

        summary = client.get("/cart/summary", headers=customer_headers).json()["data"]
        assert summary == {"item_count": 3, "total": "25.50", "valid": True, "issues": []}

    def test_update_to_zero_removes(self, client, seeded, customer_headers):
        add(client, customer_headers, seeded["widget"])
        response = client.put(f"/cart/items/{seeded['widget']}", json={"quantity": 0}, headers=customer_headers)
        assert response.json() == {"success": True, "message": "Item removed from cart", "data": None}

    def test_remove_missing_line(self, client, seeded, customer_headers):
        response = client.delete(f"/cart/items/{seeded['widget']}", headers=customer_headers)
        assert response.status_code == 404

    def test_check_and_clear(self, client, seeded, customer_headers):
        add(client, customer_headers, seeded["widget"])
        check = client.get(f"/cart/items/{seeded['widget']}/check", headers=customer_headers).json()["data"]
        assert check["in_cart"] is True

        cleared = client.delete("/cart", headers=customer_headers).json()
        assert cleared["data"] == {"items_removed": 1}

    def test_validate_empty_cart(self, client, seeded, customer_headers):
        data = client.get("/cart/validate", headers=customer_headers).json()["data"]
        assert data["valid"] is False
        assert data["errors"] == ["Cart is empty"]

    def test_admin_views_user_cart(self, client, seeded, customer_headers, admin_headers):
        add(client, customer_headers, seeded["widget"])
        data = client.get(f"/cart/admin/users/{CUSTOMER_ID}", headers=admin_headers).json()["data"]
        assert len(data["items"]) == 1


class TestOrderRoutes:
    def test_checkout(self, client, seeded, customer_headers):
        add(client, customer_headers, seeded["widget"], 2)
        add(client, customer_headers, seeded["gizmo"], 1)

        response = checkout(client, customer_headers)
        assert response.status_code == 201
        order = response.json()["data"]
        assert order["total_amount"] == "25.50"
        assert order["status"] == "pending"
        assert client.get("/cart", headers=customer_headers).json()["data"]["items"] == []

    def test_checkout_empty_cart(self, client, seeded, customer_headers):
        response = checkout(client, customer_headers)
        assert response.status_code == 400
        assert response.json()["message"] == "Cart is empty"

    def test_checkout_invalid_cart_lists_errors(self, client, seeded, customer_headers, admin_headers):
        add(client, customer_headers, seeded["widget"], 3)
        client.patch(f"/products/{seeded['widget']}", json={"stock": 1}, headers=admin_headers)

        response = checkout(client, customer_headers)
        assert response.status_code == 400
        assert response.json()["errors"] == ['Requested quantity for "Widget" exceeds stock (1 available)']

    def test_checkout_requires_address(self, client, seeded, customer_headers):
        response = client.post("/orders", json={"payment_method": "card"}, headers=customer_headers)
        assert response.status_code == 422

    def test_owner_and_admin_can_read_order(self, client, seeded, customer_headers, other_headers, admin_headers):
        add(client, customer_headers, seeded["widget"])
        order_id = checkout(client, customer_headers).json()["data"]["id"]

        assert client.get(f"/orders/{order_id}", headers=customer_headers).status_code == 200
        assert client.get(f"/orders/{order_id}", headers=admin_headers).status_code == 200
        forbidden = client.get(f"/orders/{order_id}", headers=other_headers)
        assert forbidden.status_code == 403
        assert forbidden.json()["success"] is False

    def test_other_customer_cannot_cancel(self, client, seeded, customer_headers, other_headers):
        add(client, customer_headers, seeded["widget"])
        order_id = checkout(client, customer_headers).json()["data"]["id"]

        response = client.patch(f"/orders/{order_id}/cancel", headers=other_headers)
        assert response.status_code == 403
        assert response.json()["success"] is False
        order = client.get(f"/orders/{order_id}", headers=customer_headers).json()["data"]
        assert order["status"] == "pending"

    def test_my_orders(self, client, seeded, customer_headers, other_headers):
        add(client, customer_headers, seeded["widget"])
        checkout(client, customer_headers)
        assert client.get("/orders/my", headers=customer_headers).json()["data"]["pagination"]["total"] == 1
        assert client.get("/orders/my", headers=other_headers).json()["data"]["pagination"]["total"] == 0

    def test_customer_cancels_own_order(self, client, seeded, customer_headers):
        add(client, customer_headers, seeded["widget"])
        order_id = checkout(client, customer_headers).json()["data"]["id"]

        response = client.patch(f"/orders/{order_id}/cancel", json={"reason": "too slow"}, headers=customer_headers)
        assert response.status_code == 200
        assert response.json()["data"]["notes"] == "Cancelled: too slow"

        again = client.patch(f"/orders/{order_id}/cancel", headers=customer_headers)
        assert again.status_code == 400

    def test_admin_status_and_stats(self, client, seeded, customer_headers, admin_headers):
        add(client, customer_headers, seeded["widget"], 2)
        order_id = checkout(client, customer_headers).json()["data"]["id"]

        client.patch(f"/orders/{order_id}/payment-status", json={"payment_status": "paid"}, headers=admin_headers)
        shipped = client.patch(f"/orders/{order_id}/status", json={"status": "shipped"}, headers=admin_headers)
        assert shipped.json()["data"]["status"] == "shipped"

        bad = client.patch(f"/orders/{order_id}/status", json={"status": "lost"}, headers=admin_headers)
        assert bad.status_code == 400

        stats = client.get("/orders/stats", headers=admin_headers).json()["data"]
        assert stats["total_revenue"] == "20.00"

    def test_customer_cannot_change_status(self, client, seeded, customer_headers):
        add(client, customer_headers, seeded["widget"])
        order_id = checkout(client, customer_headers).json()["data"]["id"]
        response = client.patch(f"/orders/{order_id}/status", json={"status": "delivered"}, headers=customer_headers)
        assert response.status_code == 403

    def test_bulk_cancel(self, client, seeded, customer_headers, admin_headers):
        add(client, customer_headers, seeded["widget"])
        first = checkout(client, customer_headers).json()["data"]["id"]
        add(client, customer_headers, seeded["gizmo"])
        second = checkout(client, customer_headers).json()["data"]["id"]

        response = client.patch("/orders/bulk/cancel", json={"order_ids": [first, second]}, headers=admin_headers)
        assert response.json()["message"] == "2 of 2 orders cancelled"

    def test_delete_order(self, client, seeded, customer_headers, admin_headers):
        add(client, customer_headers, seeded["widget"])
        order_id = checkout(client, customer_headers).json()["data"]["id"]
        assert client.delete(f"/orders/{order_id}", headers=admin_headers).status_code == 200
        assert client.delete(f"/orders/{order_id}", headers=admin_headers).status_code == 404

    def test_sweep_with_nothing_pending(self, client, seeded, admin_headers):
        response = client.post("/orders/pending-clears/sweep", headers=admin_headers)
        assert response.json()["data"] == {"cleared": 0, "pending": []}
