"""Remote Entity Directory adapter — implements EntityDirectory over HTTP."""

from __future__ import annotations

import logging
import time
import uuid
from collections import OrderedDict
from collections.abc import Callable, Hashable

import httpx

from ruc_ownership.application.ports.entity_directory import EntityDirectory
from ruc_ownership.config import settings
from ruc_ownership.domain.entities.entity_ref import EntityRef

logger = logging.getLogger(__name__)

SEARCH_PAGE_SIZE = 500


def _to_entity(item: dict) -> EntityRef:
    return EntityRef(
        id=uuid.UUID(str(item["id"])),
        tax_id=str(item["tax_id"]),
        name=item.get("name") or "",
        district=item.get("district") or "",
    )


class _TtlCache:
    """LRU cache whose entries expire ``ttl_seconds`` after they were stored."""

    def __init__(
        self,
        maxsize: int,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.maxsize = maxsize
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[Hashable, tuple[float, EntityRef]] = OrderedDict()

    def get(self, key: Hashable) -> EntityRef | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return value

    def set(self, key: Hashable, value: EntityRef) -> None:
        self._entries[key] = (self._clock() + self.ttl_seconds, value)
        self._entries.move_to_end(key)
        while len(self._entries) > self.maxsize:
            self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)


class HttpEntityDirectory(EntityDirectory):
    """Entity Directory served by an external HTTP service.

    Endpoints (relative to ``base_url``):
      POST /entities/resolve   {"tax_ids": [...]}     →  {"items": [...]}
      POST /entities/lookup    {"ids": [...]}         →  {"items": [...]}
      GET  /entities/search?q=&offset=&limit=         →  {"items": [...]}

    Resolved entities are cached for ``cache_ttl`` seconds (at most
    ``cache_size`` of them) so renamed entities are picked up again. Search
    results are never served from the cache. Transport errors propagate so the
    caller can tell "unknown" from "unreachable".
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        cache_ttl: float | None = None,
        cache_size: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._base_url = (base_url or settings.entity_directory_url).rstrip("/")
        self._timeout = timeout or settings.entity_directory_timeout
        self._transport = transport
        ttl = settings.entity_directory_cache_ttl if cache_ttl is None else cache_ttl
        size = settings.entity_directory_cache_size if cache_size is None else cache_size
        self._by_tax_id = _TtlCache(size, ttl, clock)
        self._by_id = _TtlCache(size, ttl, clock)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url, timeout=self._timeout, transport=self._transport
        )

    def _remember(self, entities: list[EntityRef]) -> None:
        for e in entities:
            self._by_tax_id.set(e.tax_id, e)
            self._by_id.set(e.id, e)

    async def _post_items(self, path: str, payload: dict) -> list[EntityRef]:
        try:
            async with self._client() as client:
                response = await client.post(path, json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError:
            logger.exception("Entity directory call %s failed", path)
            raise
        entities = [_to_entity(item) for item in data.get("items", [])]
        self._remember(entities)
        return entities

    async def resolve_tax_ids(self, tax_ids: list[str]) -> dict[str, EntityRef]:
        found: dict[str, EntityRef] = {}
        wanted: list[str] = []
        for t in dict.fromkeys(tax_ids):
            cached = self._by_tax_id.get(t)
            if cached is None:
                wanted.append(t)
            else:
                found[t] = cached
        if wanted:
            fetched = await self._post_items("/entities/resolve", {"tax_ids": wanted})
            logger.info("Entity directory resolved %d of %d tax ids", len(fetched), len(wanted))
            found.update({e.tax_id: e for e in fetched})
        return {t: found[t] for t in tax_ids if t in found}

    async def get_many(self, entity_ids: list[uuid.UUID]) -> dict[uuid.UUID, EntityRef]:
        found: dict[uuid.UUID, EntityRef] = {}
        wanted: list[uuid.UUID] = []
        for i in dict.fromkeys(entity_ids):
            cached = self._by_id.get(i)
            if cached is None:
                wanted.append(i)
            else:
                found[i] = cached
        if wanted:
            fetched = await self._post_items("/entities/lookup", {"ids": [str(i) for i in wanted]})
            found.update({e.id: e for e in fetched})
        return {i: found[i] for i in entity_ids if i in found}

    async def search(self, term: str, limit: int | None = None) -> list[EntityRef]:
        """Every match for *term*, fetched page by page until the service runs out."""
        term = (term or "").strip()
        if not term:
            return []
        matches: list[EntityRef] = []
        try:
            async with self._client() as client:
                while limit is None or len(matches) < limit:
                    page_size = SEARCH_PAGE_SIZE if limit is None else min(
                        SEARCH_PAGE_SIZE, limit - len(matches)
                    )
                    response = await client.get(
                        "/entities/search",
                        params={"q": term, "offset": len(matches), "limit": page_size},
                    )
                    response.raise_for_status()
                    page = [_to_entity(item) for item in response.json().get("items", [])]
                    matches.extend(page)
                    if len(page) < page_size:
                        break
        except httpx.HTTPError:
            logger.exception("Entity directory search for '%s' failed", term)
            raise
        self._remember(matches)
        return matches
