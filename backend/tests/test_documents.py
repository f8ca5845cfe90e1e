from datetime import datetime, timezone
from decimal import Decimal

import pytest

from conftest import cart, create_order, register_and_login, signed_payload
from designcart.schemas.billing import OrderResponse
from designcart.services.document_service import (
    format_date,
    format_money,
    format_rate,
    render_bill,
    render_invoice,
    summarize_invoice,
)

pytestmark = pytest.mark.anyio


def _order(**overrides) -> OrderResponse:
    data = dict(
        id="3f2a9c1e-0000-4000-8000-000000000001",
        user_id=1,
        razorpay_order_id="order_X",
        status="paid",
        amount=Decimal("1180.00"),
        subtotal=Decimal("1000.00"),
        tax=Decimal("180.00"),
        tax_rate=Decimal("18.00"),
        currency="INR",
        items=[{"title": "Oak Sofa", "price": "1000.00", "qty": 1, "area": "Living Room"}],
        project_ids=["proj-aaaa1111"],
        invoice_number="INV-202610-0001",
        invoice_date=datetime(2026, 10, 17, 6, 0, tzinfo=timezone.utc),
        created_at=datetime(2026, 10, 17, 5, 0, tzinfo=timezone.utc),
    )
    data.update(overrides)
    return OrderResponse(**data)


def test_format_money_indian_grouping():
    assert format_money(Decimal("1180.00")) == "₹1,180"
    assert format_money(Decimal("1234567.50")) == "₹12,34,567.50"
    assert format_money(Decimal("999")) == "₹999"
    assert format_money(Decimal("100000")) == "₹1,00,000"
    assert format_money(None) == "₹0"


def test_format_rate_and_date():
    assert format_rate(Decimal("18.00")) == "18"
    assert format_rate(Decimal("12.50")) == "12.5"
    # 22:00 UTC 已是印度时间次日
    assert format_date(datetime(2026, 10, 16, 22, 0, tzinfo=timezone.utc)) == "17 October 2026"


def test_render_is_deterministic():
    orders = [_order(), _order(id="7b1d0e2f-0000-4000-8000-000000000002", project_ids=["proj-bbbb2222"])]
    assert render_invoice(orders) == render_invoice(orders)
    assert render_bill(orders[0]) == render_bill(orders[0])


def test_invoice_totals_across_orders():
    orders = [
        _order(),
        _order(id="7b1d0e2f-0000-4000-8000-000000000002", amount=Decimal("590.00"), subtotal=None, tax=Decimal("90.00")),
    ]
    summary = summarize_invoice(orders)
    assert summary.grand_total == Decimal("1770.00")
    assert summary.total_tax == Decimal("270.00")
    assert summary.total_subtotal == Decimal("1590.00")

    html = render_invoice(orders)
    assert "INV-202610-0001" in html
    assert "2 Orders" in html
    assert "₹1,770" in html
    assert "Order #3F2A9C1E" in html
    assert "Order #7B1D0E2F" in html


def test_invoice_hides_tax_row_when_zero():
    html = render_invoice([_order(tax=Decimal("0"), amount=Decimal("1000.00"))])
    assert "Tax (" not in html


def test_bill_defaults():
    html = render_bill(_order(subtotal=None, tax=None, tax_rate=None, status="pending", project_ids=[]))
    assert "BILL-3F2A9C1E" in html
    assert "GST (18%)" in html
    assert "PENDING" in html
    assert "General" in html
    assert "17 October 2026" in html


def test_rendering_escapes_item_titles():
    html = render_bill(_order(items=[{"title": "<script>x</script>", "price": "1", "qty": 1}]))
    assert "<script>x</script>" not in html
    assert "&lt;script&gt;" in html


async def test_generate_documents_for_paid_batch(client, auth_headers):
    first = await create_order(client, auth_headers, cart("proj-a"))
    second = await create_order(client, auth_headers, cart("proj-b"))
    ids = [first["local_order_id"], second["local_order_id"]]
    verified = await client.post("/api/v1/payment/verify", json=signed_payload(ids), headers=auth_headers)
    invoice_number = verified.json()["invoice_number"]

    resp = await client.post("/api/v1/invoice/generate", json={"order_id": ids[1]}, headers=auth_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["invoice_number"] == invoice_number
    assert body["order_count"] == 2
    assert "₹2,360" in body["html"]

    resp = await client.post("/api/v1/bill/generate", json={"order_id": ids[0]}, headers=auth_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["bill_number"] == f"BILL-{ids[0][:8].upper()}"
    assert "PAID" in body["html"]
    assert invoice_number in body["html"]


async def test_generate_documents_for_pending_order(client, auth_headers):
    data = await create_order(client, auth_headers)
    resp = await client.post("/api/v1/invoice/generate", json={"order_id": data["local_order_id"]}, headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["order_count"] == 1
    assert resp.json()["invoice_number"] == f"INV-{data['local_order_id'][:8].upper()}"


async def test_documents_of_other_users_are_not_found(client, auth_headers):
    data = await create_order(client, auth_headers)
    bob = await register_and_login(client, "bob")
    for path in ("/api/v1/bill/generate", "/api/v1/invoice/generate"):
        resp = await client.post(path, json={"order_id": data["local_order_id"]}, headers=bob)
        assert resp.status_code == 404

    resp = await client.post("/api/v1/bill/generate", json={"order_id": "missing"}, headers=auth_headers)
    assert resp.status_code == 404


async def test_paid_documents_are_cached(client, auth_headers, monkeypatch):
    from designcart.services import cache_service

    store = {}
    monkeypatch.setattr(cache_service, "get_document", lambda key: store.get(key))
    monkeypatch.setattr(cache_service, "set_document", lambda key, html, ttl=None: store.__setitem__(key, html) or True)

    pending = await create_order(client, auth_headers, cart("proj-a"))
    await client.post("/api/v1/bill/generate", json={"order_id": pending["local_order_id"]}, headers=auth_headers)
    assert store == {}

    await client.post("/api/v1/payment/verify", json=signed_payload([pending["local_order_id"]]), headers=auth_headers)
    resp = await client.post("/api/v1/bill/generate", json={"order_id": pending["local_order_id"]}, headers=auth_headers)
    key = cache_service.key_bill_document(pending["local_order_id"])
    assert store[key] == resp.json()["html"]

    store[key] = "<html>cached</html>"
    resp = await client.post("/api/v1/bill/generate", json={"order_id": pending["local_order_id"]}, headers=auth_headers)
    assert resp.json()["html"] == "<html>cached</html>"


async def test_invoice_degrades_to_single_order_when_group_lookup_fails(client, auth_headers, monkeypatch):
    from sqlalchemy.exc import OperationalError
    from designcart.services import cache_service, document_service

    first = await create_order(client, auth_headers, cart("proj-a"))
    second = await create_order(client, auth_headers, cart("proj-b"))
    ids = [first["local_order_id"], second["local_order_id"]]
    verified = await client.post("/api/v1/payment/verify", json=signed_payload(ids), headers=auth_headers)
    invoice_number = verified.json()["invoice_number"]

    store = {}
    monkeypatch.setattr(cache_service, "get_document", lambda key: store.get(key))
    monkeypatch.setattr(cache_service, "set_document", lambda key, html, ttl=None: store.__setitem__(key, html) or True)

    def broken_select(*args, **kwargs):
        raise OperationalError("SELECT orders", {}, Exception("connection reset"))

    monkeypatch.setattr(document_service, "select", broken_select)
    resp = await client.post("/api/v1/invoice/generate", json={"order_id": ids[0]}, headers=auth_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["order_count"] == 1
    assert body["invoice_number"] == invoice_number
    assert "₹1,180" in body["html"]
    assert store == {}
