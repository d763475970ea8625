"""Connectivity Probe — asks the transfer service whether it is reachable right now.

Invariants:
    - Never raises: any transport failure or non-2xx answer means offline
    - Bounded by its own short timeout, independent of the sync timeout

Design Decisions:
    - Probes the service's liveness route instead of the device's network state:
      "online" only matters if the ledger itself answers (ADR: no always-true stub)
"""

import logging

import httpx

logger = logging.getLogger(__name__)


class HttpConnectivityProbe:
    """Reports online when GET {base_url}/health answers 2xx within the timeout."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 2.0,
        health_path: str = "/health",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.health_path = health_path
        self.client = httpx.AsyncClient(
            base_url=base_url, timeout=timeout_seconds, transport=transport,
        )

    async def is_online(self) -> bool:
        try:
            response = await self.client.get(self.health_path)
        except httpx.HTTPError as e:
            logger.info(f"Transfer service offline: {e!r}")
            return False
        return response.is_success

    async def close(self) -> None:
        await self.client.aclose()
