import asyncio
from typing import Optional

import httpx

from formx.core.config import settings
from formx.core.logging import get_logger

logger = get_logger(__name__)

_IDEMPOTENT = {"GET", "HEAD", "OPTIONS"}


def default_timeout() -> httpx.Timeout:
    t = settings.HTTP_TIMEOUT_SECONDS
    return httpx.Timeout(connect=min(5.0, t), read=t, write=t, pool=t)


class RetryTransport(httpx.AsyncHTTPTransport):
    """Retry idempotent requests on connect/read timeout with exponential backoff."""
    def __init__(self, retries: Optional[int] = None, backoff: float = 0.2, transport: Optional[httpx.AsyncBaseTransport] = None, **kw):
        super().__init__(**kw)
        self.retries = settings.HTTP_RETRIES if retries is None else retries
        self.backoff = backoff
        self._inner = transport

    async def _send(self, request):
        if self._inner is not None:
            return await self._inner.handle_async_request(request)
        return await super().handle_async_request(request)

    async def handle_async_request(self, request):
        for attempt in range(self.retries + 1):
            try:
                return await self._send(request)
            except (httpx.ConnectError, httpx.ReadTimeout) as ex:
                if request.method not in _IDEMPOTENT or attempt == self.retries:
                    raise
                logger.debug(f"[DATASOURCE] Retrying {request.method} {request.url} after {type(ex).__name__} (attempt {attempt + 1})")
                await asyncio.sleep(self.backoff * (2 ** attempt))


def build_http_client(transport: Optional[httpx.AsyncBaseTransport] = None, base_url: Optional[str] = None) -> httpx.AsyncClient:
    """
    Client used for remote dataview loads. `transport` wraps an inner
    transport (tests pass an `httpx.MockTransport`) in the retry layer.
    """
    return httpx.AsyncClient(
        base_url=base_url if base_url is not None else settings.DATAVIEW_BASE_URL,
        timeout=default_timeout(),
        transport=RetryTransport(transport=transport),
        follow_redirects=True,
    )

