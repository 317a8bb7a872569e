"""Portal form filling.

Portal markup is unknown and differs per deployment, so each logical field
has an ordered list of selectors, most specific first. One resolver walks a
list and uses the first selector that yields a visible, enabled element
not already filled for an earlier field.
Filling is best effort: only a missing submit control counts as failure.
"""

import logging
from dataclasses import dataclass, field
from typing import Mapping, Sequence

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import ElementHandle, Page

from ..core.clock import Clock, SYSTEM_CLOCK
from ..core.config import IdentityConfig
from ..core.logging import mask_value

logger = logging.getLogger(__name__)

_IS_ONE_OF = "(el, others) => others.includes(el)"


@dataclass(frozen=True)
class PortalFormData:
    """Values typed into the portal form, in fill order."""

    id_number: str
    first_name: str
    last_name: str
    birth_year: str

    @classmethod
    def from_identity(cls, identity: IdentityConfig) -> "PortalFormData":
        return cls(
            id_number=identity.id_number,
            first_name=identity.first_name,
            last_name=identity.last_name,
            birth_year=identity.birth_year,
        )


FORM_FIELDS = ("id_number", "first_name", "last_name", "birth_year")

FIELD_SELECTORS: Mapping[str, tuple[str, ...]] = {
    "id_number": (
        "#idnumber",
        'input[name="idnumber"]',
        'input[name*="tc" i]',
        'input[name*="kimlik" i]',
        'input[placeholder*="TC"]',
        'input[placeholder*="Kimlik" i]',
        'input[aria-label*="TC"]',
        'input[aria-label*="Kimlik" i]',
        'input[type="text"][name*="user" i]',
        'input[type="number"]',
    ),
    "first_name": (
        "#name",
        'input[name="name"]',
        'input[name*="ad" i]',
        'input[name*="first" i]',
        'input[placeholder*="Ad"]',
        'input[placeholder*="İsim"]',
        'input[placeholder*="First Name" i]',
        'input[aria-label*="Ad"]',
        'input[aria-label*="İsim"]',
        'input[type="text"]:not([name*="user" i]):not([name*="pass" i])',
    ),
    "last_name": (
        "#surname",
        'input[name="surname"]',
        'input[name*="soyad" i]',
        'input[name*="last" i]',
        'input[placeholder*="Soyad"]',
        'input[placeholder*="Last Name" i]',
        'input[aria-label*="Soyad"]',
        'input[type="text"]:not([name*="user" i]):not([name*="pass" i])',
    ),
    "birth_year": (
        "#birthyear",
        'input[name="birthyear"]',
        'input[name*="yil" i]',
        'input[name*="year" i]',
        'input[placeholder*="Doğum Yılı"]',
        'input[placeholder*="Birth Year" i]',
        'input[placeholder*="YYYY"]',
        'input[aria-label*="Yıl"]',
        'input[aria-label*="Year" i]',
        'input[type="number"]',
        'input[type="tel"]',
    ),
}

SUBMIT_SELECTORS: tuple[str, ...] = (
    'button[type="submit"]',
    'input[type="submit"]',
    'button[id*="submit" i]',
    'button[name*="submit" i]',
    'button[id*="connect" i]',
    'button[name*="connect" i]',
    'input[id*="connect" i]',
    'button[id*="login" i]',
    'button[name*="login" i]',
    'input[id*="login" i]',
    'button:has-text("Login")',
    'button:has-text("Giriş")',
    'button:has-text("Submit")',
    'button:has-text("Connect")',
    'button:has-text("Accept")',
    'button:has-text("Onayla")',
    'a[href*="javascript:void(0)"]',
    "a.button",
)


@dataclass
class FillReport:
    """Outcome of one fill-and-submit run."""

    filled: list[str] = field(default_factory=list)
    not_found: list[str] = field(default_factory=list)
    submit_selector: str | None = None

    @property
    def submitted(self) -> bool:
        return self.submit_selector is not None

    def __bool__(self) -> bool:
        return self.submitted


class FormFillEngine:
    """Fill the portal form and press its submit control.

    Usage:
        engine = FormFillEngine()
        report = await engine.fill_and_submit(page, form_data)
        if report.submitted:
            ...
    """

    def __init__(
        self,
        field_selectors: Mapping[str, Sequence[str]] = FIELD_SELECTORS,
        submit_selectors: Sequence[str] = SUBMIT_SELECTORS,
        keystroke_delay_ms: int = 50,
        field_pause: float = 0.1,
        pre_submit_pause: float = 2.0,
        post_submit_pause: float = 3.0,
        clock: Clock = SYSTEM_CLOCK,
    ) -> None:
        self._field_selectors = field_selectors
        self._submit_selectors = submit_selectors
        self._keystroke_delay_ms = keystroke_delay_ms
        self._field_pause = field_pause
        self._pre_submit_pause = pre_submit_pause
        self._post_submit_pause = post_submit_pause
        self._clock = clock

    async def fill_and_submit(self, page: Page, form_data: PortalFormData) -> FillReport:
        """Fill every field that can be found, then activate a submit control.

        Returns:
            FillReport; truthy iff a submit control was activated
        """
        logger.debug("Filling portal form")
        report = FillReport()

        # Broad fallback selectors can match an input an earlier field already used
        used: list[ElementHandle] = []

        for name in FORM_FIELDS:
            value = getattr(form_data, name)
            if await self._fill_field(page, name, value, used):
                report.filled.append(name)
            else:
                report.not_found.append(name)
            await self._clock.sleep(self._field_pause)

        logger.info(
            "Form fields filled: %d/%d%s",
            len(report.filled),
            len(FORM_FIELDS),
            f" (not found: {', '.join(report.not_found)})" if report.not_found else "",
        )

        # Let per-field validators catch up before submitting
        await self._clock.sleep(self._pre_submit_pause)

        report.submit_selector = await self._click_submit(page)
        if report.submitted:
            logger.info("Submit control activated via %s", report.submit_selector)
            await self._clock.sleep(self._post_submit_pause)
        else:
            logger.warning("Could not find a suitable submit control")

        return report

    async def _fill_field(
        self, page: Page, name: str, value: str, used: list[ElementHandle]
    ) -> bool:
        """Type ``value`` into the first usable element for field ``name``.

        Elements in ``used`` belong to earlier fields and are skipped; the
        element filled here is appended to it.
        """
        for selector in self._field_selectors.get(name, ()):
            try:
                element = await self._first_usable(
                    await page.query_selector_all(selector), used
                )
                if element is None:
                    continue

                await element.focus()
                await element.press("Control+A")
                await element.press("Backspace")
                await element.type(value, delay=self._keystroke_delay_ms)

            except PlaywrightError as e:
                logger.debug("Selector %s for %s failed: %s", selector, name, e)
                continue

            used.append(element)
            logger.debug("Filled %s via %s with %s", name, selector, mask_value(value))
            return True

        logger.warning("Field %s not found with any selector", name)
        return False

    @staticmethod
    async def _first_usable(
        candidates: Sequence[ElementHandle], used: list[ElementHandle]
    ) -> ElementHandle | None:
        """First visible, enabled candidate not already filled in this run."""
        for element in candidates:
            if not (await element.is_visible() and await element.is_enabled()):
                continue
            if used and await element.evaluate(_IS_ONE_OF, used):
                continue
            return element
        return None

    async def _click_submit(self, page: Page) -> str | None:
        """Click the first visible submit control, returning its selector."""
        for selector in self._submit_selectors:
            try:
                element = await page.query_selector(selector)
                if element is None or not await element.is_visible():
                    continue
                # DOM-level click, immune to overlays intercepting pointer events
                await element.evaluate("el => el.click()")
            except PlaywrightError as e:
                logger.debug("Submit selector %s failed: %s", selector, e)
                continue
            return selector
        return None
