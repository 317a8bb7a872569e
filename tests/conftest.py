"""Shared fixtures: in-memory stand-ins for time, the browser and the link."""

import asyncio
from pathlib import Path

import pytest
from playwright.async_api import Error as PlaywrightError

from netkeeper.core.clock import Clock
from netkeeper.core.config import Config
from netkeeper.network.connectivity import ConnectivityStatus
from netkeeper.portal.forms import PortalFormData


# =============================================================================
# Time
# =============================================================================


class FakeClock(Clock):
    """Clock that advances only when slept on.

    ``fail_on`` maps a sleep duration to an exception raised when that exact
    duration is requested, to simulate failures inside a given phase.
    """

    def __init__(self, start: float = 1000.0, fail_on: dict | None = None):
        self.t = start
        self.sleeps: list[float] = []
        self.fail_on = fail_on or {}

    def monotonic(self) -> float:
        return self.t

    def now(self) -> float:
        return 1_700_000_000.0 + self.t

    def advance(self, seconds: float) -> None:
        self.t += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        if seconds in self.fail_on:
            raise self.fail_on[seconds]
        if seconds > 0:
            self.t += seconds


# =============================================================================
# Browser
# =============================================================================


class FakeElement:
    def __init__(self, visible=True, enabled=True, error: Exception | None = None):
        self.visible = visible
        self.enabled = enabled
        self.error = error
        self.value = ""
        self.keys: list[str] = []
        self.typed_delay = None
        self.clicked = False

    async def is_visible(self):
        if self.error:
            raise self.error
        return self.visible

    async def is_enabled(self):
        return self.enabled

    async def focus(self):
        pass

    async def press(self, key):
        self.keys.append(key)
        if key == "Backspace":
            self.value = ""

    async def type(self, text, delay=0):
        self.value += text
        self.typed_delay = delay

    async def evaluate(self, expression, arg=None):
        if arg is not None:
            return any(self is other for other in arg)
        self.clicked = True


class FakeResponse:
    def __init__(self, status: int):
        self.status = status


class FakePage:
    """Synthetic DOM keyed by selector plus a routing table for ``goto``.

    An ``elements`` value may be a list when a selector matches several
    elements; the same element may answer several selectors.

    ``routes`` maps a requested URL to ``(final_url, status)`` or to an
    exception to raise. Unrouted URLs load in place with the status a clean
    network would give.
    """

    def __init__(self, elements=None, routes=None, query_error: Exception | None = None):
        self.elements = dict(elements or {})
        self.routes = dict(routes or {})
        self.query_error = query_error
        self.url = "about:blank"
        self.queried: list[str] = []
        self.visited: list[str] = []
        self.handlers: dict[str, list] = {}
        self.screenshots: list[str] = []
        self.navigation_timeout = None

    async def query_selector(self, selector):
        self.queried.append(selector)
        if self.query_error:
            raise self.query_error
        return self.elements.get(selector)

    async def query_selector_all(self, selector):
        self.queried.append(selector)
        if self.query_error:
            raise self.query_error
        found = self.elements.get(selector)
        if found is None:
            return []
        return list(found) if isinstance(found, list) else [found]

    async def goto(self, url, wait_until=None, timeout=None):
        self.visited.append(url)
        route = self.routes.get(url)
        if isinstance(route, BaseException):
            raise route
        if route is None:
            route = (url, 204 if "generate_204" in url else 200)
        self.url, status = route
        return FakeResponse(status)

    def on(self, event, handler):
        self.handlers.setdefault(event, []).append(handler)

    def emit(self, event, payload):
        for handler in self.handlers.get(event, []):
            handler(payload)

    def set_default_navigation_timeout(self, timeout):
        self.navigation_timeout = timeout

    async def screenshot(self, path, full_page=False):
        self.screenshots.append(Path(path).name)
        Path(path).write_bytes(b"\x89PNG")

    async def content(self):
        return "<html><body>portal</body></html>"


class FakeContext:
    def __init__(self, page):
        self._page = page

    async def new_page(self):
        return self._page


class FakeBrowser:
    def __init__(self, page, close_error: Exception | None = None, close_delay: float = 0):
        self._page = page
        self.close_error = close_error
        self.close_delay = close_delay
        self.closed = False

    async def new_context(self, **kwargs):
        return FakeContext(self._page)

    async def close(self):
        if self.close_delay:
            await asyncio.sleep(self.close_delay)
        self.closed = True
        if self.close_error:
            raise self.close_error


class FakeChromium:
    def __init__(self, factory):
        self._factory = factory

    async def launch(self, headless=True, args=None):
        if self._factory.launch_error:
            raise self._factory.launch_error
        browser = FakeBrowser(
            self._factory.page, self._factory.close_error, self._factory.close_delay
        )
        self._factory.browsers.append(browser)
        return browser


class FakePlaywright:
    def __init__(self, factory):
        self._factory = factory
        self.chromium = FakeChromium(factory)

    async def stop(self):
        self._factory.live -= 1


class FakePlaywrightFactory:
    """Drop-in for ``async_playwright`` that counts live sessions."""

    def __init__(self, page=None, launch_error=None, close_error=None, close_delay=0):
        self.page = page or FakePage()
        self.launch_error = launch_error
        self.close_error = close_error
        self.close_delay = close_delay
        self.browsers: list[FakeBrowser] = []
        self.live = 0
        self.max_live = 0
        self.starts = 0

    def __call__(self):
        return self

    async def start(self):
        self.starts += 1
        self.live += 1
        self.max_live = max(self.max_live, self.live)
        return FakePlaywright(self)


# =============================================================================
# Monitor collaborators
# =============================================================================


class FakeLink:
    def __init__(self, mac="aa:bb:cc:dd:ee:ff", join_result=True):
        self.mac = mac
        self.join_result = join_result
        self.joins: list[tuple] = []
        self.leaves = 0

    async def join(self, ssid, password=None):
        self.joins.append((ssid, password))
        return self.join_result

    async def leave(self):
        self.leaves += 1
        return True

    async def local_mac_address(self):
        return self.mac


class ScriptedClassifier:
    """Returns the given statuses in order; exceptions in the script are raised."""

    def __init__(self, script):
        self._script = list(script)
        self.calls = 0

    async def classify(self):
        item = self._script[self.calls]
        self.calls += 1
        if isinstance(item, Exception):
            raise item
        return item


class FakeAuthenticator:
    def __init__(self, result=True):
        self.result = result
        self.calls = 0

    async def authenticate(self):
        self.calls += 1
        return self.result


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def link():
    return FakeLink()


@pytest.fixture
def form_data():
    return PortalFormData(
        id_number="12345678901",
        first_name="Ada",
        last_name="Lovelace",
        birth_year="1990",
    )


@pytest.fixture
def config_data():
    return {
        "wifi": {"ssid": "CampusWiFi", "password": "supersecret"},
        "portal": {
            "auth_url": "http://10.0.0.1/login",
            "identity": {
                "id_number": "12345678901",
                "first_name": "Ada",
                "last_name": "Lovelace",
                "birth_year": 1990,
            },
        },
    }


@pytest.fixture
def config(config_data):
    return Config.model_validate(config_data)


def playwright_error(message="boom"):
    return PlaywrightError(message)


ONLINE = ConnectivityStatus.ONLINE
OFFLINE = ConnectivityStatus.OFFLINE
PORTAL = ConnectivityStatus.CAPTIVE_PORTAL
