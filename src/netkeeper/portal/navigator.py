"""Captive portal authentication.

One ``authenticate()`` call runs LAUNCH, NAVIGATE/DETECT, FILL, SETTLE and
CLOSE in that order. Detection walks a list of plain-HTTP URLs until one of
them lands somewhere that looks like a login page; if none does, the form is
attempted on whatever page is loaded. The browser is always closed before
the call returns.
"""

import logging
from dataclasses import dataclass
from typing import Sequence
from urllib.parse import urlsplit

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from ..core.clock import Clock, SYSTEM_CLOCK
from ..core.config import PortalConfig
from .browser import BrowserManager
from .forms import FormFillEngine, PortalFormData
from .snapshots import SnapshotSink

logger = logging.getLogger(__name__)

# Plain-HTTP endpoints a portal will redirect, tried after the configured URL
TRIGGER_URLS: tuple[str, ...] = (
    "http://neverssl.com",
    "http://captive.apple.com",
    "http://detectportal.firefox.com/success.txt",
    "http://connectivitycheck.gstatic.com/generate_204",
)

PORTAL_PATH_TOKENS: tuple[str, ...] = ("login", "auth", "hotspot", "portal", "captive")


def candidate_urls(auth_url: str | None, trigger_urls: Sequence[str] = TRIGGER_URLS) -> list[str]:
    """Configured auth URL first, then the trigger URLs, without blanks or repeats."""
    urls: list[str] = []
    for url in (auth_url, *trigger_urls):
        if url and url not in urls:
            urls.append(url)
    return urls


def expected_status(url: str) -> int:
    """Status an unobstructed request to ``url`` should produce."""
    return 204 if "generate_204" in url else 200


def _same_site(requested_host: str, final_host: str) -> bool:
    if requested_host == final_host:
        return True
    # neverssl.com -> www.neverssl.com and the like
    return final_host.endswith("." + requested_host) or requested_host.endswith("." + final_host)


def is_portal_like(requested_url: str, final_url: str, status: int) -> bool:
    """Heuristic: does this navigation outcome look like a portal login page?

    True when the final host is a different site, the final path or query
    carries a login-style token, or the status is not what the check
    should return.
    """
    requested = urlsplit(requested_url)
    final = urlsplit(final_url)

    if not _same_site((requested.hostname or "").lower(), (final.hostname or "").lower()):
        return True

    path_and_query = f"{final.path}?{final.query}".lower()
    if any(token in path_and_query for token in PORTAL_PATH_TOKENS):
        return True

    return status != expected_status(requested_url)


@dataclass(frozen=True)
class Landing:
    """Where a candidate URL ended up."""

    requested_url: str
    final_url: str
    status: int


class PortalNavigator:
    """Drive a browser to the portal and submit the login form.

    Usage:
        navigator = PortalNavigator.from_config(config.portal)
        ok = await navigator.authenticate()
    """

    def __init__(
        self,
        form_data: PortalFormData,
        auth_url: str | None = None,
        browser: BrowserManager | None = None,
        form_engine: FormFillEngine | None = None,
        snapshots: SnapshotSink | None = None,
        trigger_urls: Sequence[str] = TRIGGER_URLS,
        navigation_timeout_ms: int = 15000,
        settle_seconds: float = 10.0,
        clock: Clock = SYSTEM_CLOCK,
    ) -> None:
        self._form_data = form_data
        self._candidates = candidate_urls(auth_url, trigger_urls)
        self._browser = browser or BrowserManager()
        self._form_engine = form_engine or FormFillEngine(clock=clock)
        self._snapshots = snapshots or SnapshotSink("snapshots")
        self._navigation_timeout_ms = navigation_timeout_ms
        self._settle_seconds = settle_seconds
        self._clock = clock

        self.last_target_url: str | None = None

    @classmethod
    def from_config(cls, config: PortalConfig, clock: Clock = SYSTEM_CLOCK) -> "PortalNavigator":
        return cls(
            form_data=PortalFormData.from_identity(config.identity),
            auth_url=config.auth_url,
            browser=BrowserManager(
                headless=config.headless, navigation_timeout_ms=config.navigation_timeout_ms
            ),
            form_engine=FormFillEngine(keystroke_delay_ms=config.keystroke_delay_ms, clock=clock),
            snapshots=SnapshotSink(config.snapshot_dir, config.max_html_bytes),
            navigation_timeout_ms=config.navigation_timeout_ms,
            settle_seconds=config.settle_seconds,
            clock=clock,
        )

    @property
    def candidates(self) -> list[str]:
        return list(self._candidates)

    @property
    def has_live_session(self) -> bool:
        return self._browser.is_open

    async def authenticate(self) -> bool:
        """Run one authentication attempt. Never raises.

        Returns:
            True if the form was submitted (best-effort success)
        """
        logger.info("Launching browser for portal authentication")
        self.last_target_url = None
        success = False

        try:
            page = await self._browser.launch()
            self._drain_events("launch")

            landing = await self._detect_portal(page)
            self._drain_events("navigate")

            self.last_target_url = landing.final_url if landing else page.url
            logger.info("Attempting form interaction on %s", self.last_target_url)

            await self._snapshots.capture(page, "before_fill")
            report = await self._form_engine.fill_and_submit(page, self._form_data)
            self._drain_events("fill")

            if report.submitted:
                logger.info(
                    "Form submitted, waiting %.0fs for the portal to settle",
                    self._settle_seconds,
                )
                await self._clock.sleep(self._settle_seconds)
                await self._snapshots.capture(page, "after_submit")
                success = True
            else:
                logger.warning("Could not submit the portal form")
                await self._snapshots.capture(page, "fill_failed")

        except Exception as e:
            logger.error("Portal authentication failed: %s", e, exc_info=True)
            page = self._browser.page
            if page is not None:
                await self._snapshots.capture(page, "on_error")

        finally:
            await self._browser.close()
            self._drain_events("close")

        return success

    async def close(self) -> None:
        """Release any live browser session (used during shutdown)."""
        await self._browser.close()

    async def _detect_portal(self, page: Page) -> Landing | None:
        """Navigate candidates until one lands on a portal-like page."""
        for url in self._candidates:
            logger.debug("Trying navigation to %s", url)
            try:
                response = await page.goto(
                    url, wait_until="load", timeout=self._navigation_timeout_ms
                )
            except PlaywrightError as e:
                logger.warning("Error navigating to %s: %s. Trying next URL", url, e)
                if "ERR_BLOCKED_BY_CLIENT" in str(e):
                    logger.error(
                        "Navigation to %s blocked by client, check local security software", url
                    )
                await self._clock.sleep(0.5)
                continue

            final_url = page.url
            status = response.status if response is not None else 0

            if is_portal_like(url, final_url, status):
                logger.info("Possible captive portal detected at %s (status %d)", final_url, status)
                return Landing(requested_url=url, final_url=final_url, status=status)

            logger.debug(
                "%s resulted in %s (status %d), not identified as portal, trying next",
                url,
                final_url,
                status,
            )

        logger.warning(
            "Could not reliably detect the captive portal page, using current page %s", page.url
        )
        return None

    def _drain_events(self, phase: str) -> None:
        """Log browser events queued since the previous phase."""
        queue = self._browser.events
        for event in queue.drain():
            if event.kind == "console":
                logger.debug("[%s] Browser console error: %s", phase, event.text)
            else:
                logger.warning("[%s] %s: %s", phase, event.kind, event.text)
                if event.detail:
                    logger.debug("[%s] %s detail: %s", phase, event.kind, event.detail)
        if queue.dropped:
            logger.warning("[%s] %d browser events dropped", phase, queue.dropped)
            queue.dropped = 0
