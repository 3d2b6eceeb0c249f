"""Portal REST client — JSON GETs against the property-management backend."""
import logging
import time
from typing import Any

import httpx

from . import config, debug

log = logging.getLogger(__name__)


class ApiError(Exception):
    """A portal request failed (transport error or non-2xx status)."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class PortalClient:
    def __init__(
        self,
        base_url: str = None,
        token: str = None,
        timeout: float = None,
        transport: httpx.AsyncBaseTransport = None,
    ):
        self.base_url = (base_url or config.API_BASE_URL).rstrip("/") + "/"
        self.token = token if token is not None else config.API_TOKEN
        self.timeout = timeout or config.API_TIMEOUT
        self._transport = transport

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _client(self, timeout: float = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(),
            timeout=timeout or self.timeout,
            transport=self._transport,
        )

    async def get_json(self, path: str, params: dict = None, poll_id: str = None) -> Any:
        """GET ``path`` (relative to the API base) and decode the JSON body."""
        url = path.lstrip("/")
        start = time.time()
        try:
            async with self._client() as client:
                resp = await client.get(url, params=params or None)
        except httpx.HTTPError as e:
            debug.log("ERROR", f"GET {url} failed: {e}")
            raise ApiError(f"GET {url} failed: {e}") from e

        elapsed_ms = (time.time() - start) * 1000
        debug.log_fetch(url, resp.status_code, elapsed_ms, poll_id=poll_id)
        if resp.status_code >= 400:
            raise ApiError(f"GET {url} returned {resp.status_code}", status=resp.status_code)
        try:
            return resp.json()
        except ValueError as e:
            raise ApiError(f"GET {url} returned invalid JSON: {e}", status=resp.status_code) from e

    async def check_health(self, path: str = "health") -> dict:
        try:
            async with self._client(timeout=5.0) as client:
                resp = await client.get(path)
                return {"ok": resp.status_code < 400, "status": resp.status_code, "base_url": self.base_url}
        except Exception as e:
            return {"ok": False, "base_url": self.base_url, "error": str(e)}
