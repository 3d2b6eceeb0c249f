"""Portal REST client against an httpx mock transport."""
import httpx
import pytest

from portal_poller.api import ApiError, PortalClient


def _client(handler, token="secret-token"):
    return PortalClient(
        base_url="http://portal.test/api/",
        token=token,
        timeout=5.0,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_get_json_sends_token_and_params():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"data": {"unread_count": 3}})

    data = await _client(handler).get_json("/notifications", params={"per_page": 20})
    assert data == {"data": {"unread_count": 3}}
    assert seen["url"] == "http://portal.test/api/notifications?per_page=20"
    assert seen["auth"] == "Bearer secret-token"


@pytest.mark.asyncio
async def test_no_token_means_no_auth_header():
    def handler(request: httpx.Request) -> httpx.Response:
        assert "Authorization" not in request.headers
        return httpx.Response(200, json=[])

    assert await _client(handler, token="").get_json("invoices") == []


@pytest.mark.asyncio
async def test_error_status_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"message": "maintenance"})

    with pytest.raises(ApiError) as exc:
        await _client(handler).get_json("maintenance/requests")
    assert exc.value.status == 503


@pytest.mark.asyncio
async def test_transport_error_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ApiError) as exc:
        await _client(handler).get_json("notifications")
    assert exc.value.status is None
    assert "connection refused" in str(exc.value)


@pytest.mark.asyncio
async def test_invalid_json_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>login</html>")

    with pytest.raises(ApiError):
        await _client(handler).get_json("dashboard")


@pytest.mark.asyncio
async def test_check_health_never_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("down", request=request)

    health = await _client(handler).check_health()
    assert health["ok"] is False
    assert "down" in health["error"]
