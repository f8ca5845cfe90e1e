import httpx
import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import GATEWAY_ORDER_ID, cart, create_order, register_and_login
from designcart.core.config import settings
from designcart.services.payment_gateway import RazorpayGateway, get_payment_gateway
from designcart.main import app

pytestmark = pytest.mark.anyio


async def test_create_order_requires_auth(client, gateway_calls):
    resp = await client.post("/api/v1/payment/create-order", json=cart())
    assert resp.status_code == 401
    assert gateway_calls == []


async def test_create_order_persists_pending_order(client, auth_headers, gateway_calls):
    data = await create_order(client, auth_headers)

    assert data["gateway_order_id"] == GATEWAY_ORDER_ID
    assert data["amount"] == 118000
    assert data["currency"] == "INR"
    assert data["key_id"] == settings.RAZORPAY_KEY_ID
    assert data["local_order_ids"] == [data["local_order_id"]]
    assert gateway_calls[0]["amount"] == 118000
    assert gateway_calls[0]["receipt"].startswith("receipt_")

    resp = await client.get(f"/api/v1/orders/{data['local_order_id']}", headers=auth_headers)
    assert resp.status_code == 200
    order = resp.json()
    assert order["status"] == "pending"
    assert order["amount"] == "1180.00"
    assert order["subtotal"] == "1000.00"
    assert order["tax"] == "180.00"
    assert order["razorpay_order_id"] == GATEWAY_ORDER_ID
    assert order["project_ids"] == ["proj-aaaa1111"]
    assert order["invoice_number"] is None


async def test_create_order_unconfigured_gateway(client, auth_headers):
    app.dependency_overrides[get_payment_gateway] = lambda: RazorpayGateway("", "")
    resp = await client.post("/api/v1/payment/create-order", json=cart(), headers=auth_headers)
    assert resp.status_code == 500
    assert "request_id" in resp.json()

    resp = await client.get("/api/v1/orders", headers=auth_headers)
    assert resp.json()["total"] == 0


async def test_gateway_failure_persists_nothing(client, auth_headers):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="bad gateway")

    app.dependency_overrides[get_payment_gateway] = lambda: RazorpayGateway(
        "key", "secret", transport=httpx.MockTransport(handler)
    )
    resp = await client.post("/api/v1/payment/create-order", json=cart(), headers=auth_headers)
    assert resp.status_code == 500

    resp = await client.get("/api/v1/orders", headers=auth_headers)
    assert resp.json() == {"orders": [], "total": 0}


async def test_create_order_validation_error(client, auth_headers):
    payload = cart()
    payload["items"] = []
    resp = await client.post("/api/v1/payment/create-order", json=payload, headers=auth_headers)
    assert resp.status_code == 400
    assert "detail" in resp.json()


async def test_split_by_project(client, auth_headers):
    payload = {
        "amount": "2950.00",
        "items": [
            {"title": "Sofa", "price": "1000.00", "qty": 1, "project_id": "proj-a"},
            {"title": "Lamp", "price": "250.00", "qty": 2, "project_id": "proj-b"},
            {"title": "Rug", "price": "500.00", "qty": 1, "project_id": "proj-a"},
        ],
        "project_ids": ["proj-a", "proj-b"],
        "tax_rate": "18",
        "split_by_project": True,
    }
    data = await create_order(client, auth_headers, payload)
    assert len(data["local_order_ids"]) == 2

    orders = {}
    for order_id in data["local_order_ids"]:
        resp = await client.get(f"/api/v1/orders/{order_id}", headers=auth_headers)
        order = resp.json()
        orders[order["project_ids"][0]] = order

    assert orders["proj-a"]["subtotal"] == "1500.00"
    assert orders["proj-a"]["tax"] == "270.00"
    assert orders["proj-a"]["amount"] == "1770.00"
    assert orders["proj-b"]["subtotal"] == "500.00"
    assert orders["proj-b"]["amount"] == "590.00"
    assert {o["razorpay_order_id"] for o in orders.values()} == {GATEWAY_ORDER_ID}


async def test_orders_are_private(client, auth_headers):
    data = await create_order(client, auth_headers)
    bob = await register_and_login(client, "bob")

    resp = await client.get(f"/api/v1/orders/{data['local_order_id']}", headers=bob)
    assert resp.status_code == 404
    resp = await client.get("/api/v1/orders", headers=bob)
    assert resp.json()["total"] == 0


async def test_persistence_failure_after_gateway_order(client, auth_headers, gateway_calls, monkeypatch):
    """网关已建单但本地落库失败：返回 500，不留下本地订单"""
    original_commit = AsyncSession.commit
    state = {"failed": False}

    async def failing_commit(self):
        if not state["failed"]:
            state["failed"] = True
            raise OperationalError("INSERT INTO orders", {}, Exception("disk I/O error"))
        return await original_commit(self)

    monkeypatch.setattr(AsyncSession, "commit", failing_commit)
    resp = await client.post("/api/v1/payment/create-order", json=cart(), headers=auth_headers)
    assert resp.status_code == 500
    assert resp.json()["request_id"]
    assert len(gateway_calls) == 1

    resp = await client.get("/api/v1/orders", headers=auth_headers)
    assert resp.json() == {"orders": [], "total": 0}
