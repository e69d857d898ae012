"""HTTP client for the Atera REST API."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

import requests

from .config import DEFAULT_BASE_URL, ConfigurationError
from .records import Collection, format_iso

LOGGER = logging.getLogger(__name__)

PAGE_SIZE = 50
MAX_PAGES = 40
ALERT_PAGE_SIZE = 100

QueryParams = Mapping[str, Any]


class UpstreamError(RuntimeError):
    """Raised when the Atera API answers with a non-success status."""

    def __init__(self, status: int, body: str, *, url: Optional[str] = None) -> None:
        self.status = status
        self.body = body
        self.url = url
        super().__init__(f"Atera API error ({status}): {body}")


class AteraClient:
    """Read-only wrapper around the Atera API used for tickets and alerts."""

    def __init__(
        self,
        *,
        api_key: Optional[str],
        base_url: str = DEFAULT_BASE_URL,
        timeout: int = 30,
        page_size: int = PAGE_SIZE,
        max_pages: int = MAX_PAGES,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not api_key or not api_key.strip():
            raise ConfigurationError("Missing required Atera API key")
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "Content-Type": "application/json",
            "X-API-KEY": api_key.strip(),
        })
        self.timeout = timeout
        self.page_size = max(1, page_size)
        self.max_pages = max(1, max_pages)

    # -- Low level request helpers -------------------------------------------------
    def query(self, path: str, params: Optional[QueryParams] = None) -> Any:
        """Issue a GET request and return the decoded JSON body.

        Parameters whose value is ``None`` are omitted from the query string.
        """
        url = self._build_url(path)
        query_params = _encode_params(params or {})
        LOGGER.debug("HTTP GET %s params=%s", url, query_params)
        response = self.session.get(url, params=query_params, timeout=self.timeout)
        LOGGER.debug("Response status=%s", response.status_code)
        if not 200 <= response.status_code < 300:
            body = response.text or getattr(response, "reason", "") or ""
            raise UpstreamError(response.status_code, body, url=url)
        if response.content:
            return response.json()
        return {}

    def _build_url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    # -- Pagination ----------------------------------------------------------------
    def drain(
        self,
        path: str,
        params: Optional[QueryParams] = None,
        *,
        page_size: Optional[int] = None,
        max_pages: Optional[int] = None,
        progress_callback: Optional[Callable[[int, Optional[int]], None]] = None,
    ) -> Collection[Dict[str, Any]]:
        """Exhaust a paginated collection.

        Pages ``1..max_pages`` are requested until the accumulated count
        reaches the declared ``totalItemCount``, a page comes back empty or
        short, or ``max_pages`` runs out. The API has no cursor, so anything
        beyond ``max_pages`` is silently left out. The resolved total is the
        declared total when one was seen, else the accumulated count.
        """
        size = page_size or self.page_size
        limit = max_pages or self.max_pages
        items: List[Dict[str, Any]] = []
        declared_total: Optional[int] = None
        terminated = False

        for page in range(1, limit + 1):
            payload = self.query(path, {**(params or {}), "page": page, "itemsInPage": size})
            page_items = _page_items(payload)
            items.extend(page_items)

            total_value = payload.get("totalItemCount") if isinstance(payload, dict) else None
            if isinstance(total_value, int) and not isinstance(total_value, bool) and total_value >= 0:
                declared_total = total_value

            LOGGER.debug("Fetched %s items from %s page %s", len(page_items), path, page)
            if progress_callback:
                progress_callback(len(items), declared_total)

            fetched_all_by_total = declared_total is not None and len(items) >= declared_total
            reached_end = len(page_items) < size
            if fetched_all_by_total or reached_end:
                terminated = True
                break

        if not terminated:
            LOGGER.warning(
                "Stopped draining %s after %s pages with %s items (declared total %s)",
                path,
                limit,
                len(items),
                declared_total,
            )
        total = declared_total if declared_total is not None else len(items)
        LOGGER.info("Collected %s items from %s (total %s)", len(items), path, total)
        return Collection(items=tuple(items), total_count=total)

    # -- Public API ----------------------------------------------------------------
    def fetch_tickets(self, *, max_pages: Optional[int] = None) -> Collection[Dict[str, Any]]:
        return self.drain("/tickets", max_pages=max_pages)

    def fetch_tickets_modified_since(
        self,
        since: datetime,
        *,
        max_pages: Optional[int] = None,
    ) -> Collection[Dict[str, Any]]:
        return self.drain(
            "/tickets/lastmodified",
            {"date": format_iso(since), "includeComments": False},
            max_pages=max_pages,
        )

    def fetch_open_alerts(self, *, max_pages: Optional[int] = None) -> Collection[Dict[str, Any]]:
        return self.drain(
            "/alerts",
            {"alertStatus": "Open"},
            page_size=ALERT_PAGE_SIZE,
            max_pages=max_pages,
        )

    def fetch_work_hours(self, ticket_id: int) -> List[Dict[str, Any]]:
        payload = self.query(f"/tickets/{ticket_id}/workhoursrecords")
        return _page_items(payload)


def _encode_params(params: QueryParams) -> Dict[str, str]:
    encoded: Dict[str, str] = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            encoded[key] = "true" if value else "false"
        else:
            encoded[key] = str(value)
    return encoded


def _page_items(payload: Any) -> List[Dict[str, Any]]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        items = payload.get("items")
        if isinstance(items, list):
            return items
    return []
