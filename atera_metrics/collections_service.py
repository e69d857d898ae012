"""Cache-aware retrieval of ticket and alert collections."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from .atera_client import AteraClient
from .cache import TTLCache
from .records import AlertRecord, Collection, TicketRecord, format_iso

LOGGER = logging.getLogger(__name__)

OPEN_TICKETS_KEY = "tickets:open"
OPEN_ALERTS_KEY = "alerts:open"


def modified_since_key(since: datetime, max_pages: Optional[int] = None) -> str:
    """Key one drain shape; a page-capped drain never serves a deeper one."""
    limit = max_pages if max_pages is not None else "default"
    return f"tickets:lastmodified:{format_iso(since)}:{limit}"


class CollectionFetcher:
    """Read-through access to upstream collections.

    A cached collection is returned while its entry is live; otherwise the
    collection is drained, parsed into typed records and cached. Nothing is
    written to the cache when the drain raises.
    """

    def __init__(
        self,
        client: AteraClient,
        cache: TTLCache,
        *,
        ttl_seconds: float = 30.0,
    ) -> None:
        self.client = client
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    def open_tickets(self, *, use_cache: bool = True) -> Collection[TicketRecord]:
        """All tickets; the cache key predates the open-status filter applied downstream."""
        return self._fetch(
            OPEN_TICKETS_KEY,
            lambda: self.client.fetch_tickets(),
            TicketRecord.from_api,
            use_cache=use_cache,
        )

    def tickets_modified_since(
        self,
        since: datetime,
        *,
        max_pages: Optional[int] = None,
        use_cache: bool = True,
    ) -> Collection[TicketRecord]:
        return self._fetch(
            modified_since_key(since, max_pages),
            lambda: self.client.fetch_tickets_modified_since(since, max_pages=max_pages),
            TicketRecord.from_api,
            use_cache=use_cache,
        )

    def open_alerts(self, *, use_cache: bool = True) -> Collection[AlertRecord]:
        return self._fetch(
            OPEN_ALERTS_KEY,
            lambda: self.client.fetch_open_alerts(),
            AlertRecord.from_api,
            use_cache=use_cache,
        )

    def _fetch(
        self,
        key: str,
        drain: Callable[[], Collection[Dict[str, Any]]],
        parse: Callable[[Dict[str, Any]], Any],
        *,
        use_cache: bool,
    ) -> Collection[Any]:
        if use_cache:
            cached = self.cache.get(key)
            if cached is not None:
                return cached
        raw = drain()
        collection = Collection(items=tuple(parse(item) for item in raw.items), total_count=raw.total_count)
        self.cache.set(key, collection, self.ttl_seconds)
        return collection
