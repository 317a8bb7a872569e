"""netkeeper: keep a host online behind a captive portal.

- Checks connectivity and tells offline from intercepted
- Re-joins the Wi-Fi network when the link drops
- Logs in to the captive portal with a headless browser
"""

__version__ = "1.0.0"
