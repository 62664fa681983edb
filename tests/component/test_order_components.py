"""
Component tests for order placement and listing

Placing an order stores exactly one order for the caller and empties the
caller's cart. Totals are checked against catalog prices.
"""
from unittest.mock import patch

from bson import ObjectId
from fastapi.testclient import TestClient
from pymongo.errors import PyMongoError

from store import UserStore


def place(test_client, headers, products, total, address="12 Harbour Rd"):
    return test_client.post(
        "/api/user/order",
        json={"products": products, "address": address, "totalAmount": total},
        headers=headers,
    )


class TestPlaceOrder:
    def test_order_created_and_cart_cleared(self, test_client: TestClient, mongo_db, registered, auth_headers,
                                            products):
        test_client.post("/api/user/cart", json={"productId": products[0], "quantity": 1}, headers=auth_headers)
        test_client.post("/api/user/cart", json={"productId": products[2], "quantity": 2}, headers=auth_headers)

        response = place(
            test_client, auth_headers,
            [{"product": products[0], "quantity": 1}, {"product": products[2], "quantity": 2}],
            64.5,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Order placed successfully"
        assert data["order"]["user"] == registered["user"]["id"]
        assert data["order"]["total_amount"] == 64.5
        assert data["order"]["address"] == "12 Harbour Rd"
        assert test_client.get("/api/user/cart", headers=auth_headers).json() == []
        user_oid = ObjectId(registered["user"]["id"])
        assert mongo_db["order"].count_documents({"user": user_oid}) == 1

    def test_total_mismatch_is_rejected(self, test_client: TestClient, mongo_db, auth_headers, products):
        test_client.post("/api/user/cart", json={"productId": products[0], "quantity": 1}, headers=auth_headers)

        response = place(test_client, auth_headers, [{"product": products[0], "quantity": 1}], 0.5)

        assert response.status_code == 400
        assert response.json()["detail"] == "Order total does not match product prices"
        assert mongo_db["order"].count_documents({}) == 0
        assert len(test_client.get("/api/user/cart", headers=auth_headers).json()) == 1

    def test_empty_products_rejected(self, test_client: TestClient, auth_headers):
        response = place(test_client, auth_headers, [], 0)

        assert response.status_code == 400

    def test_negative_total_fails_validation(self, test_client: TestClient, auth_headers, products):
        response = place(test_client, auth_headers, [{"product": products[0], "quantity": 1}], -1)

        assert response.status_code == 422

    def test_store_failure_while_clearing_cart(self, test_client: TestClient, mongo_db, auth_headers, products):
        """The order stays stored when clearing the cart fails; the caller sees a 500."""
        with patch.object(UserStore, "save", side_effect=PyMongoError("connection reset")):
            response = place(test_client, auth_headers, [{"product": products[0], "quantity": 1}], 40.0)

        assert response.status_code == 500
        assert response.json()["detail"] == "Internal server error"
        assert mongo_db["order"].count_documents({}) == 1


class TestListOrders:
    def test_lists_only_callers_orders(self, test_client: TestClient, auth_headers, products):
        place(test_client, auth_headers, [{"product": products[1], "quantity": 2}], 111.0)
        other = test_client.post(
            "/api/user/signup", json={"name": "Other", "email": "other@gmail.com", "password": "pass1234"}
        ).json()
        place(test_client, {"Authorization": f"Bearer {other['token']}"},
              [{"product": products[0], "quantity": 1}], 40.0)

        response = test_client.get("/api/user/order", headers=auth_headers)

        assert response.status_code == 200
        orders = response.json()
        assert len(orders) == 1
        assert orders[0]["products"] == [{"product": products[1], "quantity": 2}]
        assert orders[0]["total_amount"] == 111.0

    def test_no_orders(self, test_client: TestClient, auth_headers):
        assert test_client.get("/api/user/order", headers=auth_headers).json() == []


class TestOrderLineBounds:
    def test_oversized_line_quantity_fails_validation(self, test_client: TestClient, auth_headers, products):
        response = place(test_client, auth_headers, [{"product": products[0], "quantity": 2 ** 63}], 40.0)

        assert response.status_code == 422
