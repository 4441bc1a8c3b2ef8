"""HTTP page fetcher with retries, header overrides and proxy rotation."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from types import TracebackType

import httpx

from propfinder.config import settings
from propfinder.services.proxy import ProxyRotator
from propfinder.utils.exceptions import FetchError

logger = logging.getLogger(__name__)

_ACCEPT_HTML = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"


@dataclass(frozen=True)
class FetchResult:
    url: str
    status: int
    body: str


def _is_retryable(status: int) -> bool:
    return status == 429 or status >= 500


class PageFetcher:
    """Fetches HTML pages over ``httpx``.

    Used as an async context manager the fetcher keeps one shared
    ``httpx.AsyncClient`` per proxy for the whole crawl::

        async with PageFetcher() as fetcher:
            page = await fetcher.fetch(url)

    Outside the context manager a one-off client is created per request.
    Transport errors, timeouts, 429 and 5xx responses are retried with
    exponential backoff; anything else non-2xx fails at once. Either way the
    caller sees a ``FetchError``, never an empty result.
    """

    def __init__(
        self,
        *,
        proxy_rotator: ProxyRotator | None = None,
        max_retries: int | None = None,
        timeout: float | None = None,
        retry_backoff: float | None = None,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._proxies = proxy_rotator or ProxyRotator()
        self._max_retries = (
            settings.max_request_retries if max_retries is None else max_retries
        )
        if self._max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self._timeout = timeout or settings.request_timeout
        self._retry_backoff = (
            settings.retry_backoff if retry_backoff is None else retry_backoff
        )
        self._headers = httpx.Headers(
            {
                "User-Agent": settings.user_agent,
                "Accept": _ACCEPT_HTML,
                "Accept-Language": settings.accept_language,
            }
        )
        if headers:
            self._headers.update(headers)
        self._transport = transport
        # Shared clients keyed by proxy URL (None = direct), set while in context
        self._clients: dict[str | None, httpx.AsyncClient] | None = None

    # -- async context manager -------------------------------------------------

    async def __aenter__(self) -> PageFetcher:
        if self._clients is not None:
            raise RuntimeError("PageFetcher context manager is not reentrant")
        self._clients = {}
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._clients is not None:
            clients, self._clients = self._clients, None
            for client in clients.values():
                await client.aclose()

    # -- public API ------------------------------------------------------------

    async def fetch(
        self,
        url: str,
        headers: dict[str, str] | None = None,
    ) -> FetchResult:
        """
        GET ``url`` and return its status and decoded body.

        Args:
            url: Absolute page URL
            headers: Per-request overrides on top of the default headers

        Raises:
            FetchError: when every attempt failed.
        """
        request_headers = httpx.Headers(self._headers)
        if headers:
            request_headers.update(headers)

        attempts = self._max_retries + 1
        status: int | None = None
        last_error = ""
        for attempt in range(attempts):
            proxy = self._proxies.proxy_or_direct()
            try:
                async with self._http_client(proxy) as http:
                    response = await http.get(url, headers=request_headers)
            except httpx.RequestError as e:
                last_error = f"{type(e).__name__}: {e}"
                logger.warning(
                    "Fetch attempt %d/%d failed for %s: %s",
                    attempt + 1, attempts, url, last_error,
                )
            else:
                status = response.status_code
                if response.is_success:
                    return FetchResult(
                        url=str(response.url),
                        status=status,
                        body=response.text,
                    )
                if not _is_retryable(status):
                    logger.error("HTTP %d for %s, not retrying", status, url)
                    raise FetchError(url, f"HTTP {status}", status=status)
                last_error = f"HTTP {status}"
                logger.warning(
                    "Fetch attempt %d/%d got HTTP %d for %s",
                    attempt + 1, attempts, status, url,
                )

            if attempt < attempts - 1 and self._retry_backoff > 0:
                await asyncio.sleep(self._retry_backoff * (2 ** attempt))

        raise FetchError(
            url,
            f"Giving up after {attempts} attempts, last error: {last_error}",
            status=status,
        )

    # -- internals -------------------------------------------------------------

    def _new_client(self, proxy: str | None) -> httpx.AsyncClient:
        kwargs: dict = {"timeout": self._timeout, "follow_redirects": True}
        if self._transport is not None:
            kwargs["transport"] = self._transport
        elif proxy is not None:
            kwargs["proxy"] = proxy
        return httpx.AsyncClient(**kwargs)

    @contextlib.asynccontextmanager
    async def _http_client(self, proxy: str | None) -> AsyncIterator[httpx.AsyncClient]:
        """Yield the shared client for ``proxy``, or a temporary one-off client."""
        if self._clients is not None:
            client = self._clients.get(proxy)
            if client is None:
                client = self._clients[proxy] = self._new_client(proxy)
            yield client
        else:
            async with self._new_client(proxy) as http:
                yield http
