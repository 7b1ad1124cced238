from __future__ import annotations
# invoicehub/services/cache.py
import logging

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type, before_sleep_log

from invoicehub.config import settings
from invoicehub.exceptions import InvoiceHubError

_std_logger = logging.getLogger(__name__)

# Shared client, one connection pool for every Upstash call.
_http = httpx.AsyncClient(
    timeout=settings.CACHE_TIMEOUT_SECONDS,
    limits=httpx.Limits(max_connections=20, max_keepalive_connections=10, keepalive_expiry=30),
)


class CacheError(InvoiceHubError):
    """Upstash returned an error payload or the request failed."""


class _CacheTransientError(CacheError):
    """Network failure or 5xx; retried once."""


@retry(
    retry=retry_if_exception_type(_CacheTransientError),
    stop=stop_after_attempt(2),
    wait=wait_exponential(multiplier=0.1, min=0.1, max=0.5),
    before_sleep=before_sleep_log(_std_logger, logging.WARNING),
    reraise=True,
)
async def _post(http: httpx.AsyncClient, url: str, headers: dict, body: list) -> httpx.Response:
    try:
        r = await http.post(url, headers=headers, json=body)
    except httpx.TransportError as e:
        raise _CacheTransientError(str(e)) from e
    if r.status_code >= 500:
        raise _CacheTransientError(f"Upstash returned {r.status_code}")
    return r


class UpstashClient:
    """
    Minimal Upstash Redis REST client.

    Commands are POSTed as JSON arrays (["SET", key, value, "EX", 60]) so
    values may hold arbitrary JSON without URL escaping.
    """

    def __init__(self, url: str | None = None, token: str | None = None, http: httpx.AsyncClient | None = None):
        self.url = (url if url is not None else settings.UPSTASH_REDIS_REST_URL).rstrip("/")
        token = token if token is not None else settings.UPSTASH_REDIS_REST_TOKEN
        self.headers = {"Authorization": f"Bearer {token}"}
        self._http = http or _http

    @property
    def configured(self) -> bool:
        return bool(self.url)

    async def command(self, *args):
        if not self.configured:
            raise CacheError("UPSTASH_REDIS_REST_URL is not configured")
        r = await _post(self._http, self.url, self.headers, [str(a) for a in args])
        if r.status_code >= 400:
            raise CacheError(f"Upstash returned {r.status_code}")
        payload = r.json()
        if "error" in payload:
            raise CacheError(payload["error"])
        return payload.get("result")

    async def get(self, key: str) -> str | None:
        return await self.command("GET", key)

    async def set(self, key: str, value: str, ex: int = 300):
        await self.command("SET", key, value, "EX", ex)

    async def incr(self, key: str) -> int:
        return int(await self.command("INCR", key) or 0)

    async def expire(self, key: str, seconds: int):
        await self.command("EXPIRE", key, seconds)

    async def delete(self, key: str):
        await self.command("DEL", key)

    async def ping(self) -> bool:
        return await self.command("PING") == "PONG"


cache = UpstashClient()
