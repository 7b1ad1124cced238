"""
Async HTTP client for the InvoiceHub API.

Besides one method per invoice operation, search_invoices() implements the
list-screen behaviour: calls are debounced, and every request carries a
sequence number so a response that arrives after a newer request was issued
is dropped instead of overwriting fresher results.
"""

import asyncio
from typing import Any, Dict, Optional

import httpx
import structlog

from invoicehub.exceptions import InvoiceHubError

logger = structlog.get_logger()

SEARCH_DEBOUNCE_SECONDS = 0.3


class InvoiceHubAPIError(InvoiceHubError):
    def __init__(self, status_code: int, code: str, message: str, details: Any = None):
        super().__init__(f"{status_code} {code}: {message}")
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details


class RequestSequencer:
    """Monotonic request counter; only the most recently issued number is current."""

    def __init__(self):
        self._issued = 0

    def next(self) -> int:
        self._issued += 1
        return self._issued

    @property
    def latest(self) -> int:
        return self._issued

    def is_current(self, seq: int) -> bool:
        return seq == self._issued


class InvoiceHubClient:
    def __init__(
        self,
        base_url: str,
        token: str,
        http: Optional[httpx.AsyncClient] = None,
        search_debounce: float = SEARCH_DEBOUNCE_SECONDS,
        timeout: float = 10.0,
    ):
        self._headers = {"Authorization": f"Bearer {token}"}
        self._http = http or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._owns_http = http is None
        self.search_debounce = search_debounce
        self.sequencer = RequestSequencer()

    async def __aenter__(self) -> "InvoiceHubClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        if self._owns_http:
            await self._http.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        r = await self._http.request(method, path, headers=self._headers, **kwargs)
        if r.status_code >= 400:
            try:
                error = r.json().get("error", {})
            except ValueError:
                error = {}
            raise InvoiceHubAPIError(
                r.status_code,
                error.get("code", "HTTP_ERROR"),
                error.get("message", r.reason_phrase),
                error.get("details"),
            )
        return r

    # ---------- invoice operations ----------

    async def list_invoices(self, **params) -> Dict[str, Any]:
        query = {k: v for k, v in params.items() if v is not None}
        r = await self._request("GET", "/api/v1/invoices", params=query)
        return r.json()

    async def get_invoice(self, invoice_id: str) -> Optional[Dict[str, Any]]:
        try:
            r = await self._request("GET", f"/api/v1/invoices/{invoice_id}")
        except InvoiceHubAPIError as e:
            if e.status_code == 404:
                return None
            raise
        return r.json()

    async def create_invoice(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        r = await self._request("POST", "/api/v1/invoices", json=payload)
        return r.json()

    async def update_invoice(self, invoice_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        r = await self._request("PATCH", f"/api/v1/invoices/{invoice_id}", json=changes)
        return r.json()

    async def delete_invoice(self, invoice_id: str) -> None:
        await self._request("DELETE", f"/api/v1/invoices/{invoice_id}")

    async def duplicate_invoice(self, invoice_id: str) -> Dict[str, Any]:
        r = await self._request("POST", f"/api/v1/invoices/{invoice_id}/duplicate")
        return r.json()

    async def export_invoices(self, **params) -> str:
        query = {k: v for k, v in params.items() if v is not None}
        r = await self._request("GET", "/api/v1/invoices/export", params=query)
        return r.text

    # ---------- list screen ----------

    async def search_invoices(self, search: str, **params) -> Optional[Dict[str, Any]]:
        """
        Debounced, sequence-checked list call. Returns None when a newer
        search superseded this one, either during the debounce window or
        while the request was in flight.
        """
        seq = self.sequencer.next()
        if self.search_debounce > 0:
            await asyncio.sleep(self.search_debounce)
            if not self.sequencer.is_current(seq):
                logger.debug("invoice_search_debounced", seq=seq)
                return None

        result = await self.list_invoices(search=search or None, **params)
        if not self.sequencer.is_current(seq):
            logger.debug("invoice_search_stale", seq=seq, latest=self.sequencer.latest)
            return None
        return result
