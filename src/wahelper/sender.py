"""Outbound sender: best-effort delivery of canonical records to the local sink."""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DELIVERY_PATH = "/message"


class OutboundSender:
    """POSTs records as JSON to ``http://localhost:<port>/message``.

    Delivery is fire-and-forget: a failure is logged, never retried and
    never raised to the caller.
    """

    def __init__(
        self,
        port: int,
        timeout: float = 1.0,
        host: str = "localhost",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = f"http://{host}:{port}{DELIVERY_PATH}"
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport, trust_env=False)

    async def deliver(self, record: dict[str, Any]) -> bool:
        try:
            response = await self._client.post(self.url, json=record)
        except httpx.HTTPError as e:
            logger.error(f"Failed to deliver message {record.get('message_id', '?')} to {self.url}: {e}")
            return False
        if response.status_code >= 400:
            logger.debug(f"Sink returned {response.status_code} for message {record.get('message_id', '?')}")
        return True

    async def aclose(self) -> None:
        await self._client.aclose()
