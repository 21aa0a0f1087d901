"""
Wallet API client: a thin async adapter over the wallet service's REST API.

One method per endpoint.  Every call returns an ``ApiResponse`` whatever the
status code, so negative scenarios can inspect 4xx bodies as data, and emits
an ``EndpointMetric`` to the optional metric sink.  Network errors from
``httpx`` propagate; nothing is retried here.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import httpx

from wallet_harness.models import ApiResponse, EndpointMetric, HarnessConfig

logger = logging.getLogger(__name__)

MetricSink = Callable[[EndpointMetric], None]


class WalletApiClient:
    """Async HTTP client for the wallet service."""

    def __init__(
        self,
        base_url: str,
        service_id: str = "wallet-harness",
        timeout: float = 30.0,
        wakeup_timeout: float = 120.0,
        metric_sink: MetricSink | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url
        self.service_id = service_id
        self.wakeup_timeout = wakeup_timeout
        self._metric_sink = metric_sink
        self._session = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    @classmethod
    def from_config(
        cls,
        config: HarnessConfig,
        metric_sink: MetricSink | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> WalletApiClient:
        return cls(
            base_url=config.api_url,
            service_id=config.service_id,
            timeout=config.timeouts.request,
            wakeup_timeout=config.timeouts.wakeup,
            metric_sink=metric_sink,
            transport=transport,
        )

    async def __aenter__(self) -> WalletApiClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._session.aclose()

    # ── plumbing ────────────────────────────────────────────────────────
    @staticmethod
    def _auth(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    async def _request(
        self,
        method: str,
        url: str,
        metric_endpoint: str,
        **kwargs: Any,
    ) -> ApiResponse:
        t0 = time.monotonic()
        resp = await self._session.request(method, url, **kwargs)
        duration_ms = (time.monotonic() - t0) * 1000

        try:
            body: Any = resp.json()
        except ValueError:
            body = resp.text

        logger.debug("%s %s -> %d (%.1fms)", method, url, resp.status_code, duration_ms)
        if self._metric_sink is not None:
            self._metric_sink(EndpointMetric(
                endpoint=metric_endpoint,
                duration_ms=round(duration_ms, 3),
                status_code=resp.status_code,
            ))

        return ApiResponse(
            endpoint=metric_endpoint,
            status_code=resp.status_code,
            body=body,
            duration_ms=duration_ms,
        )

    # ── endpoints ───────────────────────────────────────────────────────
    async def wakeup(self) -> ApiResponse:
        return await self._request("GET", "/wakeup", "/wakeup", timeout=self.wakeup_timeout)

    async def health(self) -> ApiResponse:
        return await self._request("GET", "/health", "/health")

    async def login(self, username: str, password: str) -> ApiResponse:
        return await self._request(
            "POST",
            "/user/login",
            "/user/login",
            json={"username": username, "password": password},
            headers={"X-Service-Id": self.service_id},
        )

    async def get_user_info(self, user_id: str, token: str) -> ApiResponse:
        return await self._request("GET", f"/user/info/{user_id}", "/user/info", headers=self._auth(token))

    async def get_wallet(self, wallet_id: str, token: str) -> ApiResponse:
        return await self._request("GET", f"/wallet/{wallet_id}", "/wallet", headers=self._auth(token))

    async def create_transaction(self, wallet_id: str, payload: Any, token: str) -> ApiResponse:
        """POST ``payload`` verbatim, so malformed bodies reach the service."""
        return await self._request(
            "POST",
            f"/wallet/{wallet_id}/transaction",
            "/wallet/transaction",
            json=payload,
            headers=self._auth(token),
        )

    async def get_transaction(self, wallet_id: str, transaction_id: str, token: str) -> ApiResponse:
        return await self._request(
            "GET",
            f"/wallet/{wallet_id}/transaction/{transaction_id}",
            "/wallet/transaction/details",
            headers=self._auth(token),
        )

    async def list_transactions(self, wallet_id: str, token: str, **filters: Any) -> ApiResponse:
        params = {k: v for k, v in filters.items() if v is not None}
        return await self._request(
            "GET",
            f"/wallet/{wallet_id}/transactions",
            "/wallet/transactions",
            params=params,
            headers=self._auth(token),
        )
