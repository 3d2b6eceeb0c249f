"""Daemon HTTP surface over the poll engine."""
import asyncio
import time

import httpx
import pytest
from aiohttp import test_utils

from portal_poller import VisibilitySignal
from portal_poller.api import PortalClient
from portal_poller.daemon import build_arg_parser, create_app
from portal_poller.poll.engine import PollEngine


async def _fetch(job):
    return {"path": job.path, "items": [1, 2]}


async def _start(presets=(), portal=None):
    signal = VisibilitySignal()
    engine = PollEngine(fetcher=_fetch, client=portal, visibility=signal)
    client = test_utils.TestClient(test_utils.TestServer(create_app(engine=engine, presets=presets)))
    await client.start_server()
    return client, engine, signal


async def _post(client, path, body=None):
    resp = await client.post(path, json=body or {})
    return resp.status, await resp.json()


async def _until(predicate, timeout: float = 2.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


@pytest.mark.asyncio
async def test_start_status_data_cancel():
    client, engine, signal = await _start()
    try:
        status, job = await _post(client, "/poll_start", {"preset": "unread_count"})
        assert status == 200
        assert job["name"] == "unread_count"
        assert job["path"] == "notifications/unread-count"
        assert job["current_interval_ms"] == 15000
        poll_id = job["poll_id"]

        await _until(lambda: engine.get_job(poll_id).fetch_count >= 1)
        status, data = await _post(client, "/poll_data", {"poll_id": poll_id})
        assert status == 200
        assert data["data"] == {"path": "notifications/unread-count", "items": [1, 2]}

        status, listing = await _post(client, "/poll_status")
        assert listing["count"] == 1
        assert listing["visible"] is True

        status, body = await _post(client, "/poll_cancel", {"poll_id": poll_id})
        assert status == 200
        assert body["status"] == "cancelled"

        status, _ = await _post(client, "/poll_status", {"poll_id": poll_id})
        assert status == 404
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_custom_path_with_policy_overrides():
    client, engine, signal = await _start()
    try:
        status, job = await _post(client, "/poll_start", {
            "path": "maintenance/requests",
            "params": {"status": "pending"},
            "initial_interval_ms": 5000,
            "max_interval_ms": 60000,
            "backoff_multiplier": 1.5,
        })
        assert status == 200
        assert job["name"] == "maintenance/requests"
        assert job["params"] == {"status": "pending"}
        policy = engine.get_job(job["poll_id"]).policy
        assert (policy.initial_interval_ms, policy.max_interval_ms, policy.backoff_multiplier) == (5000, 60000, 1.5)
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_start_rejects_bad_requests():
    client, engine, signal = await _start()
    try:
        status, body = await _post(client, "/poll_start", {"preset": "nope"})
        assert status == 400
        assert "Unknown preset" in body["error"]

        status, body = await _post(client, "/poll_start", {"preset": ["invoices"]})
        assert status == 400
        assert "preset must be a string" in body["error"]

        status, body = await _post(client, "/poll_start", {"path": "invoices", "use_backoff": "sometimes"})
        assert status == 400
        assert "use_backoff" in body["error"]

        status, body = await _post(client, "/poll_start", {})
        assert status == 400

        status, body = await _post(client, "/poll_start", {"path": "invoices", "initial_interval_ms": 9000, "max_interval_ms": 100})
        assert status == 400
        assert "max_interval_ms" in body["error"]

        status, body = await _post(client, "/poll_start", {"path": "invoices", "params": ["x"]})
        assert status == 400
        assert engine.jobs == {}
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_visibility_pauses_and_refresh_resets():
    client, engine, signal = await _start(presets=["invoices"])
    try:
        poll_id = next(iter(engine.jobs))
        job = engine.get_job(poll_id)
        await _until(lambda: job.fetch_count >= 1)
        job.controller.current_interval_ms = 60000

        status, body = await _post(client, "/visibility", {"visible": False})
        assert status == 200
        assert body["visible"] is False
        assert signal.visible is False

        _, described = await _post(client, "/poll_status", {"poll_id": poll_id})
        assert described["interval_ms"] is None
        assert described["current_interval_ms"] == 60000

        _, described = await _post(client, "/poll_refresh", {"poll_id": poll_id})
        assert described["current_interval_ms"] == 15000

        await _post(client, "/visibility", {"visible": True})
        _, described = await _post(client, "/poll_status", {"poll_id": poll_id})
        assert described["interval_ms"] == 15000

        status, _ = await _post(client, "/visibility", {"visible": "yes"})
        assert status == 400
        status, _ = await _post(client, "/poll_refresh", {"poll_id": "missing"})
        assert status == 404
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_health_and_presets():
    client, engine, signal = await _start()
    try:
        resp = await client.get("/health")
        health = await resp.json()
        assert health["ok"] is True
        assert health["jobs"] == 0
        assert health["api"] is None

        resp = await client.get("/presets")
        presets = await resp.json()
        assert presets["notifications"]["initial_interval_ms"] == 30000
        assert presets["unread_count"]["initial_interval_ms"] == 15000
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_health_reports_portal_status():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/health"
        return httpx.Response(503)

    portal = PortalClient(base_url="http://portal.test/api/", token="", transport=httpx.MockTransport(handler))
    client, engine, signal = await _start(portal=portal)
    try:
        resp = await client.get("/health")
        assert resp.status == 200
        health = await resp.json()
        assert health["ok"] is True
        assert health["api"] == {"ok": False, "status": 503, "base_url": "http://portal.test/api/"}
        assert health["api_base_url"] == "http://portal.test/api/"
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_cleanup_disposes_everything():
    client, engine, signal = await _start(presets=["notifications", "dashboard"])
    jobs = list(engine.jobs.values())
    assert len(jobs) == 2
    await client.close()
    assert engine.jobs == {}
    assert all(job.controller.disposed for job in jobs)
    assert signal.listener_count == 0


def test_arg_parser_presets():
    args = build_arg_parser().parse_args(["--debug", "--preset", "unread_count", "--preset", "invoices"])
    assert args.debug is True
    assert args.preset == ["unread_count", "invoices"]
