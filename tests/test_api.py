"""HTTP surface tests — liveness, /send-test, /health, request IDs."""

import pytest
from conftest import subscription


@pytest.mark.asyncio
async def test_liveness(client):
    resp = await client.get("/")
    assert resp.status_code == 200
    assert resp.text == "Web Push Notification Server is running."


@pytest.mark.asyncio
async def test_send_test_without_subscribers(client):
    resp = await client.get("/send-test")
    assert resp.status_code == 200
    assert resp.text == "No subscribers found."


@pytest.mark.asyncio
async def test_send_test_counts_success_and_failure(client, store, sender):
    store.set("webPushSubscriptions", {
        "-1": subscription("https://push.example/ok"),
        "-2": subscription("https://push.example/gone"),
        "-3": subscription("https://push.example/ok"),
    })
    sender.failing_endpoints.add("https://push.example/gone")

    resp = await client.get("/send-test")

    assert resp.status_code == 200
    assert resp.text == "Notifications sent: 1, failed: 1"
    assert len(sender.attempts) == 2


@pytest.mark.asyncio
async def test_send_test_read_failure_is_503(client, store):
    store.read_error = ConnectionError("offline")

    resp = await client.get("/send-test")

    assert resp.status_code == 503
    assert resp.text == "Could not read subscribers."


@pytest.mark.asyncio
async def test_health_reports_watched_games(client, context, store):
    store.set("sattanamee/kalyan", {"2026-10-18": {"number": ""}})
    await context.start()

    resp = await client.get("/health")

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["store"] == "memory"
    assert data["watched_entities"] == ["kalyan"]
    assert data["dispatch"]["dispatches"] == 0


@pytest.mark.asyncio
async def test_health_degraded_before_start(client):
    resp = await client.get("/health")
    assert resp.json()["status"] == "degraded"


@pytest.mark.asyncio
async def test_request_id_generated_and_propagated(client):
    r1 = await client.get("/")
    r2 = await client.get("/")
    assert r1.headers["X-Request-ID"] != r2.headers["X-Request-ID"]

    r3 = await client.get("/", headers={"X-Request-ID": "trace-12345"})
    assert r3.headers["X-Request-ID"] == "trace-12345"


@pytest.mark.asyncio
async def test_cors_allows_any_origin(client):
    resp = await client.get("/", headers={"Origin": "https://example.com"})
    assert resp.headers["access-control-allow-origin"] == "*"

    preflight = await client.options(
        "/send-test",
        headers={
            "Origin": "https://admin.example.com",
            "Access-Control-Request-Method": "GET",
        },
    )
    assert preflight.status_code == 200
    assert preflight.headers["access-control-allow-origin"] == "*"
