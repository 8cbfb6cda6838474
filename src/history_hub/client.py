"""Authenticated, rate-limited client for the claude.ai conversation API.

The client owns a one-way availability flag: it starts available and is
demoted for good on an authorization failure (401/403), when no organization
can be discovered, or by an explicit ``mark_unavailable()``. A demoted client
answers every call with None without touching the network; a new credential
needs a new instance.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)

API_BASE = "https://claude.ai"
REQUEST_DELAY = 0.1  # seconds between request starts
REQUEST_TIMEOUT = 10.0  # seconds per attempt, end to end
MAX_RETRIES = 3


class _RateLimited(Exception):
    """Internal exception used to retry HTTP 429 responses."""


class RemoteClient:
    """claude.ai API client authenticated with a session cookie."""

    def __init__(
        self,
        session_key: str,
        org_id: str | None = None,
        *,
        base_url: str = API_BASE,
        request_delay: float = REQUEST_DELAY,
        timeout: float = REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.request_delay = request_delay
        self.timeout = timeout
        self._session_key = session_key
        self._org_id = org_id
        self._available = True
        self._transport = transport
        self._sleep = sleep
        self._client: httpx.AsyncClient | None = None
        self._last_request_at: float | None = None
        self._throttle_lock = asyncio.Lock()

    def is_available(self) -> bool:
        return self._available

    def mark_unavailable(self) -> None:
        self._available = False

    async def aclose(self) -> None:
        """Close underlying HTTP resources."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get_organization_id(self) -> str | None:
        """Return the organization id, discovering and caching it if needed."""
        if self._org_id:
            return self._org_id
        if not self._available:
            return None

        orgs = await self.fetch_api("/api/organizations")
        if isinstance(orgs, list) and orgs:
            first = orgs[0]
            org_id = first.get("uuid") if isinstance(first, dict) else None
            if org_id:
                self._org_id = org_id
                return org_id

        logger.warning("No organizations found for session key; disabling remote source")
        self.mark_unavailable()
        return None

    async def fetch_api(self, path: str, params: dict[str, str] | None = None) -> Any:
        """GET ``path`` and return the decoded JSON body, or None on any failure."""
        if not self._available:
            return None

        await self._throttle()
        client = self._ensure_client()

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(MAX_RETRIES + 1),  # initial + 3 retries
                wait=wait_exponential(multiplier=2),  # 2s, 4s, 8s
                retry=retry_if_exception_type((_RateLimited, httpx.TransportError)),
                sleep=self._sleep,
                reraise=True,
            ):
                with attempt:
                    self._last_request_at = time.monotonic()
                    try:
                        response = await asyncio.wait_for(client.get(path, params=params), self.timeout)
                    except (httpx.TimeoutException, asyncio.TimeoutError):
                        logger.warning("Remote request timed out: %s", path)
                        return None

                    if response.status_code in (401, 403):
                        logger.warning(
                            "Session key expired or invalid (HTTP %d); disabling remote source",
                            response.status_code,
                        )
                        self.mark_unavailable()
                        return None

                    if response.status_code == 429:
                        logger.warning("Rate limited on %s (attempt %d)", path, attempt.retry_state.attempt_number)
                        raise _RateLimited(path)

                    if not response.is_success:
                        logger.warning("Remote request failed: %s %s", response.status_code, path)
                        return None

                    try:
                        return response.json()
                    except ValueError as e:
                        logger.warning("Invalid JSON from %s: %s", path, e)
                        return None
        except (_RateLimited, httpx.TransportError) as e:
            logger.warning("Remote request failed after retries: %s (%s)", path, str(e) or type(e).__name__)
            return None

    # ── Private helpers ──────────────────────────────────────────────

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                headers={
                    "Cookie": f"sessionKey={self._session_key}",
                    "Accept": "application/json",
                    "Content-Type": "application/json",
                },
                transport=self._transport,
            )
        return self._client

    async def _throttle(self) -> None:
        """Wait until ``request_delay`` has passed since the last request start."""
        async with self._throttle_lock:
            if self._last_request_at is not None:
                elapsed = time.monotonic() - self._last_request_at
                if elapsed < self.request_delay:
                    await self._sleep(self.request_delay - elapsed)
            self._last_request_at = time.monotonic()
