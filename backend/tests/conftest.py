# backend/tests/conftest.py
import os
import sys
import logging
import tempfile
from pathlib import Path

import pytest

# ==============================================================
# 测试环境变量：必须在导入 designcart 之前设置
# ==============================================================
_DB_DIR = tempfile.mkdtemp(prefix="designcart-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{Path(_DB_DIR) / 'test.db'}"
os.environ["DATABASE_NULLPOOL"] = "true"
os.environ["CACHE_ENABLED"] = "false"
os.environ["AUDIT_LOG_ENABLED"] = "true"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"
os.environ["INVOICE_COUNTER_BACKOFF_SECONDS"] = "0"

import httpx  # noqa: E402
from httpx import AsyncClient, ASGITransport  # noqa: E402

from designcart.core.config import settings  # noqa: E402
from designcart.core.database import engine, Base  # noqa: E402
from designcart.main import app  # noqa: E402
from designcart.services.payment_gateway import RazorpayGateway, compute_signature, get_payment_gateway  # noqa: E402

GATEWAY_ORDER_ID = "order_TEST0001"


@pytest.fixture(scope="session", autouse=True)
def _tests_log_to_stdout():
    root = logging.getLogger()
    if not any(isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stdout for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        root.addHandler(handler)
    root.setLevel(os.getenv("TEST_LOG_LEVEL", "INFO").upper())


# anyio 统一跑在 asyncio 上
@pytest.fixture(scope="session", autouse=True)
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
async def _database():
    """每个测试一套全新的表"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


@pytest.fixture
def gateway_calls():
    """记录发往网关的请求体"""
    return []


@pytest.fixture
def gateway(gateway_calls):
    """真实的 RazorpayGateway，底层 HTTP 由 MockTransport 应答"""

    def handler(request: httpx.Request) -> httpx.Response:
        import json
        body = json.loads(request.content)
        gateway_calls.append(body)
        return httpx.Response(
            200,
            json={"id": GATEWAY_ORDER_ID, "amount": body["amount"], "currency": body["currency"], "status": "created"},
        )

    return RazorpayGateway(
        key_id=settings.RAZORPAY_KEY_ID,
        key_secret=settings.RAZORPAY_KEY_SECRET,
        transport=httpx.MockTransport(handler),
    )


@pytest.fixture
async def client(gateway):
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


async def register_and_login(client: AsyncClient, username: str = "alice") -> dict:
    """注册并登录，返回 Authorization 头"""
    resp = await client.post(
        "/api/v1/auth/register",
        json={"username": username, "email": f"{username}@example.com", "password": "s3cret-pass"},
    )
    assert resp.status_code == 201, resp.text
    resp = await client.post("/api/v1/auth/login", data={"username": username, "password": "s3cret-pass"})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


@pytest.fixture
async def auth_headers(client):
    return await register_and_login(client, "alice")


def signed_payload(order_ids, gateway_order_id: str = GATEWAY_ORDER_ID, payment_id: str = "pay_TEST0001") -> dict:
    return {
        "razorpay_order_id": gateway_order_id,
        "razorpay_payment_id": payment_id,
        "razorpay_signature": compute_signature(gateway_order_id, payment_id, settings.RAZORPAY_KEY_SECRET),
        "order_ids": list(order_ids),
    }


def cart(project_id: str = "proj-aaaa1111", amount: str = "1180.00") -> dict:
    return {
        "amount": amount,
        "items": [
            {"title": "Oak Sofa", "price": "1000.00", "qty": 1, "area": "Living Room", "project_id": project_id},
        ],
        "project_ids": [project_id] if project_id else [],
        "subtotal": "1000.00",
        "tax": "180.00",
        "tax_rate": "18",
    }


async def create_order(client: AsyncClient, headers: dict, payload: dict | None = None) -> dict:
    resp = await client.post("/api/v1/payment/create-order", json=payload or cart(), headers=headers)
    assert resp.status_code == 200, resp.text
    return resp.json()
