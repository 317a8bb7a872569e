"""Diagnostic page snapshots.

Each stage of an authentication attempt (before_fill, after_submit,
fill_failed, on_error) overwrites ``portal_<stage>.png`` and
``portal_<stage>.html`` in the snapshot directory, so the directory always
shows the most recent attempt.
"""

import asyncio
import logging
from pathlib import Path

from playwright.async_api import Page

logger = logging.getLogger(__name__)


class SnapshotSink:
    """Writes full-page screenshots and HTML dumps to a directory."""

    def __init__(self, directory: str | Path, max_html_bytes: int = 65536) -> None:
        self._directory = Path(directory).expanduser()
        self._max_html_bytes = max_html_bytes

    @property
    def directory(self) -> Path:
        return self._directory

    async def capture(self, page: Page, stage: str) -> Path | None:
        """Save a snapshot of ``page`` for ``stage``.

        Failures are logged and swallowed; a missing snapshot never affects
        the authentication attempt.

        Returns:
            Path of the screenshot, or None if it could not be written
        """
        screenshot_path = self._directory / f"portal_{stage}.png"
        html_path = self._directory / f"portal_{stage}.html"

        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            await page.screenshot(path=str(screenshot_path), full_page=True)
        except Exception as e:
            logger.warning("Failed to save %s screenshot: %s", stage, e)
            return None

        if self._max_html_bytes:
            try:
                html = await page.content()
                payload = html.encode("utf-8", errors="ignore")[: self._max_html_bytes]
                await asyncio.to_thread(html_path.write_bytes, payload)
            except Exception as e:
                logger.warning("Failed to save %s HTML: %s", stage, e)

        logger.debug("Saved %s snapshot to %s", stage, screenshot_path)
        return screenshot_path
