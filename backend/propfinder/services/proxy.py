"""Proxy endpoint supply for the page fetcher."""

from __future__ import annotations

import itertools

from propfinder.config import settings
from propfinder.utils.exceptions import ProxyError


class ProxyRotator:
    """Round-robin over configured proxy URLs.

    With no proxies configured every request goes out directly.
    """

    def __init__(self, proxy_urls: list[str] | None = None) -> None:
        if proxy_urls is None:
            proxy_urls = [p.strip() for p in settings.proxy_urls.split(",") if p.strip()]
        self._proxy_urls = proxy_urls
        self._cycle = itertools.cycle(proxy_urls) if proxy_urls else None

    @property
    def enabled(self) -> bool:
        return self._cycle is not None

    def next_proxy(self) -> str:
        """Return the next proxy URL or raise ProxyError."""
        if self._cycle is None:
            raise ProxyError("No proxy URLs configured")
        return next(self._cycle)

    def proxy_or_direct(self) -> str | None:
        """Next proxy, or None (direct connection) when none are configured."""
        return self.next_proxy() if self.enabled else None
