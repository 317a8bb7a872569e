"""Browser session management.

At most one Chromium session is alive at any time. Page callbacks from
Playwright only append to a bounded ``PageEventQueue``; the portal navigator
drains and logs the queue after each phase, in arrival order.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable

from playwright.async_api import Browser, Page, Playwright, async_playwright

from ..core.errors import BrowserError

logger = logging.getLogger(__name__)

# Portals are usually plain HTTP on private addresses with self-signed certs
CHROMIUM_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--ignore-certificate-errors",
    "--disable-extensions",
    "--disable-features=IsolateOrigins,site-per-process,BlockInsecurePrivateNetworkRequests",
    "--allow-running-insecure-content",
]

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


@dataclass(frozen=True)
class PageEvent:
    """Something the page reported while we were driving it."""

    kind: str  # "requestfailed", "console" or "pageerror"
    text: str
    detail: str = ""


class PageEventQueue:
    """Bounded FIFO of page events.

    When full, the oldest events are discarded and counted in ``dropped``.
    """

    def __init__(self, maxlen: int = 200) -> None:
        self._events: deque[PageEvent] = deque(maxlen=maxlen)
        self.dropped = 0

    def __len__(self) -> int:
        return len(self._events)

    def push(self, event: PageEvent) -> None:
        if len(self._events) == self._events.maxlen:
            self.dropped += 1
        self._events.append(event)

    def drain(self) -> list[PageEvent]:
        """Remove and return all queued events, oldest first."""
        events = list(self._events)
        self._events.clear()
        return events

    def attach(self, page: Page) -> None:
        """Route the page's diagnostic callbacks into this queue."""
        page.on("requestfailed", self._on_request_failed)
        page.on("console", self._on_console)
        page.on("pageerror", self._on_page_error)

    def _on_request_failed(self, request: Any) -> None:
        self.push(
            PageEvent(
                kind="requestfailed",
                text=f"{request.url} - {request.failure or 'unknown error'}",
                detail=f"method={request.method} type={request.resource_type}",
            )
        )

    def _on_console(self, message: Any) -> None:
        if message.type == "error":
            self.push(PageEvent(kind="console", text=message.text))

    def _on_page_error(self, error: Any) -> None:
        self.push(
            PageEvent(
                kind="pageerror",
                text=getattr(error, "message", None) or str(error),
                detail=getattr(error, "stack", None) or "",
            )
        )


class BrowserManager:
    """Owns the single Playwright/Chromium session.

    Usage:
        manager = BrowserManager(headless=True)
        page = await manager.launch()
        try:
            ...
        finally:
            await manager.close()
    """

    def __init__(
        self,
        headless: bool = True,
        navigation_timeout_ms: int = 30000,
        playwright_factory: Callable[[], Any] = async_playwright,
        events: PageEventQueue | None = None,
        close_timeout: float = 5.0,
    ) -> None:
        """Initialize the manager.

        Args:
            headless: Run Chromium without a window
            navigation_timeout_ms: Default navigation timeout for new pages
            playwright_factory: Returns an object whose ``start()`` yields a
                Playwright instance (``async_playwright`` in production)
            events: Queue that receives page events
            close_timeout: Upper bound in seconds for each close step
        """
        self._headless = headless
        self._navigation_timeout_ms = navigation_timeout_ms
        self._playwright_factory = playwright_factory
        self.events = events or PageEventQueue()
        self._close_timeout = close_timeout

        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._page: Page | None = None

    @property
    def is_open(self) -> bool:
        """True while a browser (or the Playwright driver) is alive."""
        return self._browser is not None or self._playwright is not None

    @property
    def page(self) -> Page | None:
        """The page of the live session, if any."""
        return self._page

    async def launch(self) -> Page:
        """Start a fresh session and return its page.

        A session left over from an earlier run is closed first.

        Raises:
            BrowserError: If Playwright or Chromium cannot be started
        """
        if self.is_open:
            logger.warning("Browser session already exists, closing it before launching a new one")
            await self.close()

        try:
            self._playwright = await self._playwright_factory().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self._headless,
                args=CHROMIUM_ARGS,
            )
            context = await self._browser.new_context(
                user_agent=USER_AGENT,
                ignore_https_errors=True,
            )
            page = await context.new_page()
        except Exception as e:
            error = BrowserError("Failed to launch browser", details={"headless": self._headless}, cause=e)
            logger.log(error.severity.log_level, "%s: %s", error, e)
            await self.close()
            raise error from e

        page.set_default_navigation_timeout(self._navigation_timeout_ms)
        self.events.attach(page)
        self._page = page
        logger.debug("Browser session started (headless=%s)", self._headless)
        return page

    async def close(self) -> None:
        """Release the session. Never raises; references are always cleared.

        Closing the browser and stopping the driver are each bounded by
        ``close_timeout``, so a wedged Chromium cannot stall shutdown.
        """
        if self._browser is not None:
            logger.debug("Closing browser")
            try:
                await asyncio.wait_for(self._browser.close(), timeout=self._close_timeout)
            except asyncio.TimeoutError:
                logger.error("Browser did not close within %.1fs, abandoning it", self._close_timeout)
            except Exception as e:
                logger.error("Error closing browser: %s", e)
            finally:
                self._browser = None
                self._page = None

        if self._playwright is not None:
            try:
                await asyncio.wait_for(self._playwright.stop(), timeout=self._close_timeout)
            except asyncio.TimeoutError:
                logger.error("Playwright did not stop within %.1fs", self._close_timeout)
            except Exception as e:
                logger.error("Error stopping Playwright: %s", e)
            finally:
                self._playwright = None

        self._page = None
