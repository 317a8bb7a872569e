"""Connectivity classification.

Two checks, both plain HTTP so a captive portal can intercept them:

1. A no-content endpoint that answers 204 with an empty body.
2. A marker endpoint whose body contains a fixed string.

The second check only runs when the first one is inconclusive. It tells a
host that is really cut off apart from one whose traffic is intercepted.
"""

import logging
from enum import Enum

import httpx

from ..core.config import ConnectivityConfig

logger = logging.getLogger(__name__)


class ConnectivityStatus(Enum):
    """Result of one classification."""

    ONLINE = "online"
    OFFLINE = "offline"
    CAPTIVE_PORTAL = "captive_portal"


def _is_2xx_or_3xx(status_code: int) -> bool:
    return 200 <= status_code < 400


class ConnectivityClassifier:
    """Decide whether the host is online, offline or behind a portal.

    Usage:
        classifier = ConnectivityClassifier(config.connectivity)
        status = await classifier.classify()
    """

    def __init__(
        self,
        config: ConnectivityConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the classifier.

        Args:
            config: Check endpoints and timeout
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self._config = config or ConnectivityConfig()
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._config.timeout_seconds,
            follow_redirects=False,
            transport=self._transport,
        )

    async def classify(self) -> ConnectivityStatus:
        """Classify current connectivity. Never raises.

        Returns:
            ONLINE, OFFLINE or CAPTIVE_PORTAL
        """
        url = self._config.primary_url
        logger.debug("Checking connectivity via %s", url)

        try:
            async with self._client() as client:
                response = await client.get(url)
        except httpx.TimeoutException:
            logger.debug("Primary check timed out: %s", url)
            return await self._fallback()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.debug("Primary check failed: %s (%s)", url, type(e).__name__)
            return await self._fallback()

        if response.status_code == 204 and not response.content:
            logger.debug("Primary check returned 204: direct internet access")
            return ConnectivityStatus.ONLINE

        if _is_2xx_or_3xx(response.status_code):
            logger.debug(
                "Primary check intercepted (status %d, %d bytes, location=%s)",
                response.status_code,
                len(response.content),
                response.headers.get("location", ""),
            )
            return ConnectivityStatus.CAPTIVE_PORTAL

        logger.debug("Unexpected primary check status %d", response.status_code)
        return await self._fallback()

    async def _fallback(self) -> ConnectivityStatus:
        """Second opinion from the marker endpoint."""
        url = self._config.fallback_url
        logger.debug("Trying fallback check via %s", url)

        try:
            async with self._client() as client:
                response = await client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.debug("Fallback check failed: %s (%s)", url, type(e).__name__)
            return ConnectivityStatus.OFFLINE

        if 200 <= response.status_code < 300 and self._config.fallback_marker in response.text:
            logger.debug("Fallback check found marker: internet access confirmed")
            return ConnectivityStatus.ONLINE

        if _is_2xx_or_3xx(response.status_code):
            # Ambiguous: reachable but not the expected content. Treated as a
            # portal so the next action is an authentication attempt.
            logger.debug(
                "Fallback check returned status %d without marker", response.status_code
            )
            return ConnectivityStatus.CAPTIVE_PORTAL

        logger.debug("Fallback check returned status %d", response.status_code)
        return ConnectivityStatus.OFFLINE
