# src/steeb_core/push/delivery.py

"""Push delivery channels."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .push_models import DeliveryResult, PushPayload

logger = logging.getLogger(__name__)

GONE_STATUSES = frozenset({404, 410})


class HttpPushDeliverer:
    """Delivers notifications through an HTTP push relay (web-push gateway).

    The relay receives {"subscription": ..., "payload": ...} as JSON and answers with the
    status code of the push service: 404/410 mean the endpoint is gone for good.
    """

    def __init__(
        self,
        relay_url: str,
        *,
        token: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.relay_url = relay_url
        self.token = token
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def deliver(self, subscription: dict[str, Any], payload: PushPayload) -> DeliveryResult:
        body = {"subscription": subscription, "payload": payload.to_dict()}
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.post(self.relay_url, json=body, headers=self._headers())
        except httpx.RequestError as e:
            logger.warning("Push relay request error: %s", e)
            return DeliveryResult(delivered=False, detail=str(e))

        if response.status_code in GONE_STATUSES:
            return DeliveryResult(delivered=False, permanent_failure=True, detail=f"HTTP {response.status_code}")

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning("Push relay HTTP error: %s", e)
            return DeliveryResult(delivered=False, detail=f"HTTP {response.status_code}")

        return DeliveryResult(delivered=True)


class DryRunPushDeliverer:
    """Logs the payload instead of sending it (no relay configured)."""

    async def deliver(self, subscription: dict[str, Any], payload: PushPayload) -> DeliveryResult:
        logger.info("DRY RUN push to %s: %s", subscription.get("endpoint"), payload.to_dict())
        return DeliveryResult(delivered=True, detail="dry_run")


def build_deliverer(settings) -> HttpPushDeliverer | DryRunPushDeliverer:
    relay_url = str(getattr(settings, "push_relay_url", "") or "").strip()
    if not relay_url:
        logger.warning("Push relay URL not configured; push delivery runs in dry-run mode")
        return DryRunPushDeliverer()
    return HttpPushDeliverer(
        relay_url,
        token=getattr(settings, "push_relay_token", None),
        timeout=float(getattr(settings, "push_request_timeout_seconds", 10.0)),
    )
