"""HTTP surface: envelope, status codes and webhook acknowledgement rules."""
import json
import time

import httpx
import pytest
import pytest_asyncio

from api.dependencies import get_uow_factory, provide_payment_gateway
from application.utils.signature import compute_signature
from domain.order.entity import OrderStatus
from main import app
from tests.fakes import WEBHOOK_SECRET, FakeGateway


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest_asyncio.fixture
async def client(uow_factory, gateway):
    async def _gateway():
        yield gateway

    app.dependency_overrides[get_uow_factory] = lambda: uow_factory
    app.dependency_overrides[provide_payment_gateway] = _gateway
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
    app.dependency_overrides.clear()


def _webhook_request(payload: dict, secret: str = WEBHOOK_SECRET):
    body = json.dumps(payload, separators=(",", ":")).encode()
    ts = str(int(time.time()))
    headers = {
        "content-type": "application/json",
        "x-webhook-timestamp": ts,
        "x-webhook-signature": compute_signature(body, ts, secret),
    }
    return body, headers


def _paid(order_id: str) -> dict:
    return {
        "type": "PAYMENT_SUCCESS_WEBHOOK",
        "data": {
            "order": {"order_id": order_id, "order_amount": 250.0},
            "payment": {"cf_payment_id": 5550001, "payment_status": "SUCCESS", "payment_amount": 250.0},
        },
    }


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["data"] == {"status": "healthy"}
    assert resp.headers.get("X-Request-ID")


@pytest.mark.asyncio
async def test_create_order_returns_session(client, store, gateway):
    resp = await client.post("/api/create-order", json={
        "cart": [{"id": "sku-1", "price": 100, "quantity": 2}, {"id": "sku-2", "price": "50.00", "quantity": 1}],
        "user": {"uid": "user-1", "email": "buyer@example.com", "displayName": "Asha"},
        "amount": 250,
    })

    assert resp.status_code == 200
    body = resp.json()
    assert body["code"] == 0
    data = body["data"]
    assert data["paymentSessionToken"] == "session_test_123"
    assert data["orderId"] in store.orders
    assert gateway.sessions[0].customer.customer_name == "Asha"


@pytest.mark.asyncio
async def test_create_order_with_empty_cart_is_rejected(client, store):
    resp = await client.post("/api/create-order", json={"cart": [], "user": {"uid": "user-1"}})
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"]["type"] == "ValidationError"
    assert store.orders == {}


@pytest.mark.asyncio
async def test_create_order_amount_mismatch(client, store):
    resp = await client.post("/api/create-order", json={
        "cart": [{"id": "sku-1", "price": "100.00", "quantity": 1}],
        "user": {"uid": "user-1"},
        "amount": "99.00",
    })
    assert resp.status_code == 400
    assert resp.json()["error"]["type"] == "AmountMismatch"
    assert store.orders == {}


@pytest.mark.asyncio
async def test_webhook_materializes_order(client, store, seed_pending):
    order_id = seed_pending()
    body, headers = _webhook_request(_paid(order_id))

    resp = await client.post("/api/webhook", content=body, headers=headers)

    assert resp.status_code == 200
    assert resp.json()["data"]["outcome"] == "applied"
    assert store.orders[order_id].status is OrderStatus.PREPARING
    assert store.item_count(order_id) == 2


@pytest.mark.asyncio
async def test_webhook_with_bad_signature_is_acknowledged_and_ignored(client, store, seed_pending):
    order_id = seed_pending()
    body, headers = _webhook_request(_paid(order_id), secret="wrong-secret")

    resp = await client.post("/api/webhook", content=body, headers=headers)

    assert resp.status_code == 200
    assert resp.json()["data"]["outcome"] == "rejected"
    assert store.orders[order_id].status is OrderStatus.PENDING
    assert store.ledger == {}


@pytest.mark.asyncio
async def test_webhook_store_outage_asks_for_redelivery(client, store, seed_pending):
    order_id = seed_pending()
    store.fail("payments.add_if_absent")
    body, headers = _webhook_request(_paid(order_id))

    resp = await client.post("/api/webhook", content=body, headers=headers)

    assert resp.status_code == 503
    assert resp.json()["error"]["type"] == "ReconcileRetry"

    retry = await client.post("/api/webhook", content=body, headers=headers)
    assert retry.status_code == 200
    assert store.orders[order_id].status is OrderStatus.PREPARING


@pytest.mark.asyncio
async def test_verify_order(client, store, seed_pending, gateway):
    order_id = seed_pending()
    gateway.order_status = "EXPIRED"

    resp = await client.post("/api/verify-order", json={"orderId": order_id})

    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "FAILED"
    assert store.orders[order_id].status is OrderStatus.FAILED


@pytest.mark.asyncio
async def test_probe_order(client, seed_pending):
    order_id = seed_pending()

    found = await client.get(f"/api/order/{order_id}")
    missing = await client.get("/api/order/order_missing")

    assert found.status_code == 200
    assert found.json()["data"]["exists"] is True
    assert found.json()["data"]["status"] == "PENDING"
    assert missing.status_code == 200
    assert missing.json()["data"]["exists"] is False
