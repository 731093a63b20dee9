"""URL navigation adapter — implements NavigationPort over a location string.

Mirrors a browser's ``history.replaceState``: clearing params keeps the
path and drops the query string, without any reload.
"""

from __future__ import annotations

from urllib.parse import parse_qs, urlsplit, urlunsplit


class UrlNavigation:
    """NavigationPort backed by a mutable URL."""

    def __init__(self, url: str) -> None:
        self.url = url

    def get_param(self, name: str) -> str | None:
        values = parse_qs(urlsplit(self.url).query).get(name)
        if not values:
            return None
        return values[0]

    def clear_params(self) -> None:
        parts = urlsplit(self.url)
        self.url = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
