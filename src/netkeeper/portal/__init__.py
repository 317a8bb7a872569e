"""Captive portal module.

Provides:
- BrowserManager for the single Playwright session
- FormFillEngine and its selector tables
- PortalNavigator for the full authentication attempt
- SnapshotSink for diagnostic captures
"""

from .browser import BrowserManager, PageEvent, PageEventQueue
from .forms import FIELD_SELECTORS, SUBMIT_SELECTORS, FillReport, FormFillEngine, PortalFormData
from .navigator import PortalNavigator, candidate_urls, is_portal_like
from .snapshots import SnapshotSink

__all__ = [
    "BrowserManager",
    "PageEvent",
    "PageEventQueue",
    "FIELD_SELECTORS",
    "SUBMIT_SELECTORS",
    "FillReport",
    "FormFillEngine",
    "PortalFormData",
    "PortalNavigator",
    "candidate_urls",
    "is_portal_like",
    "SnapshotSink",
]
