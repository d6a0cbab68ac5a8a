"""The store: an identity map of records plus a cache of in-flight requests.

Records are kept once per (type, id); every response synchronized into the
store updates those instances in place. Reads (``fetch``, ``fetch_all`` and
GET ``request``) are de-duplicated through a cache of ``asyncio.Task``
objects keyed by operation, type, id or URL, and a digest of the request
options.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from functools import partial
from typing import TYPE_CHECKING, Any, Self

from cachetools import LRUCache, TTLCache  # type: ignore[import-untyped]

from . import network
from .client import HttpTransport
from .config import ClientSettings
from .log_config import logger
from .record import Record, RecordKind
from .types import Document, FetchRequest, RecordId, RequestOptions, WireRecord

if TYPE_CHECKING:
    from .models import Transport
    from .resources import ResourceClient
    from .response import Response

CacheKey = tuple[str, str | None, str | None, str]


def _key(id: RecordId) -> str:
    return str(id)


def _resolved_types(task: asyncio.Task) -> set[str]:
    """Record types in the data of a cached task that completed successfully."""
    if not task.done() or task.cancelled() or task.exception() is not None:
        return set()
    data = task.result().data
    records = data if isinstance(data, list) else [data]
    return {record.type for record in records if isinstance(record, Record)}


class Store:
    """Identity map and request cache bound to one transport.

    Args:
        transport: The transport performing requests. When omitted an
            :class:`~recordfabric.client.HttpTransport` is created (and owned,
            so :meth:`aclose` closes it).
        settings: Settings for the default transport. Ignored when a
            transport is given; the store always uses ``transport.settings``.
        kinds: Record kinds to register up front.
        cache: Overrides ``settings.enable_caching`` for this store.
    """

    def __init__(
        self,
        transport: "Transport | None" = None,
        *,
        settings: ClientSettings | None = None,
        kinds: Iterable[RecordKind] = (),
        cache: bool | None = None,
    ):
        self._owns_transport = transport is None
        self._transport: "Transport" = transport or HttpTransport(settings)
        self.settings: ClientSettings = self._transport.settings

        self._records: dict[str, dict[str, Record]] = {}
        self._kinds: dict[str, RecordKind] = {}
        for kind in kinds:
            self.register(kind)

        caching = self.settings.enable_caching if cache is None else cache
        self._cache: LRUCache | TTLCache | None = None
        if caching:
            if self.settings.cache_ttl_seconds:
                self._cache = TTLCache(
                    maxsize=self.settings.cache_max_size,
                    ttl=self.settings.cache_ttl_seconds,
                )
            else:
                self._cache = LRUCache(maxsize=self.settings.cache_max_size)
        logger.debug(
            f"Store initialized. caching={caching}, "
            f"max_size={self.settings.cache_max_size}, "
            f"ttl={self.settings.cache_ttl_seconds}"
        )

    @property
    def transport(self) -> "Transport":
        return self._transport

    @property
    def caching(self) -> bool:
        return self._cache is not None

    # --- Record kinds ---

    def register(self, kind: RecordKind) -> RecordKind:
        """Register per-type configuration (endpoint, id generation)."""
        self._kinds[kind.type] = kind
        for record in self._records.get(kind.type, {}).values():
            record._kind = kind
        return kind

    def kind_for(self, type: str) -> RecordKind | None:
        return self._kinds.get(type)

    def resource(self, type: str) -> "ResourceClient":
        """Return a resource client for ``type`` backed by this store."""
        from .resources import ResourceClient

        return ResourceClient(self, type)

    # --- Identity map ---

    def sync(self, document: Document | None) -> Record | list[Record] | None:
        """Merge a JSON:API document into the store.

        Included resources are merged as well. Returns the record (or list
        of records) for the document's primary data.
        """
        if not document:
            return None
        for wire in document.get("included") or []:
            self._merge_wire(wire)
        primary = document.get("data")
        if isinstance(primary, list):
            return [self._merge_wire(wire) for wire in primary]
        if primary:
            return self._merge_wire(primary)
        return None

    def _merge_wire(self, wire: WireRecord) -> Record:
        existing = None
        if wire.get("id") is not None:
            existing = self.find(wire["type"], wire["id"])
        if existing is not None:
            return existing._sync_wire(wire)
        record = Record.from_wire(wire, kind=self.kind_for(wire["type"]))
        return self._attach(record)

    def _attach(self, record: Record) -> Record:
        kind = self.kind_for(record.type)
        if kind is not None:
            record._kind = kind
        record._store = self
        self._records.setdefault(record.type, {})[_key(record.id)] = record
        return record

    def add(self, records: Record | list[Record]) -> Record | list[Record]:
        """Insert record(s); a record whose (type, id) is taken is merged into
        the existing instance, which is returned instead."""
        if isinstance(records, list):
            return [self._add_one(record) for record in records]
        return self._add_one(records)

    def _add_one(self, record: Record) -> Record:
        existing = self.find(record.type, record.id)
        if existing is None or existing is record:
            return self._attach(record)
        return existing.update(record)

    def find(self, type: str, id: RecordId) -> Record | None:
        return self._records.get(type, {}).get(_key(id))

    def find_all(self, type: str) -> list[Record]:
        return list(self._records.get(type, {}).values())

    def remove(self, type: str, id: RecordId) -> None:
        """Forget one record and any cached ``fetch`` of it."""
        record = self._records.get(type, {}).pop(_key(id), None)
        if record is not None and record._store is self:
            record._store = None
            record._transport = self._transport
        self._purge(
            lambda key, task: key[0] == "fetch" and key[1] == type and key[2] == _key(id)
        )

    def remove_all(self, type: str) -> None:
        """Forget every record of ``type`` and every cached request for it.

        Cached ``request`` calls are purged too when their URL points at the
        type's endpoint or their resolved data holds records of ``type``.
        """
        for record in self._records.pop(type, {}).values():
            if record._store is self:
                record._store = None
                record._transport = self._transport
        endpoint = network.build_url(
            type, kind=self.kind_for(type), base_url=self.settings.base_url
        )

        def stale(key: CacheKey, task: asyncio.Task) -> bool:
            if key[1] == type:
                return True
            if key[0] != "request" or key[2] is None:
                return False
            url = key[2]
            if url == endpoint or url.startswith((f"{endpoint}/", f"{endpoint}?")):
                return True
            return type in _resolved_types(task)

        self._purge(stale)

    def rekey(self, previous_type: str, previous_id: RecordId, record: Record) -> None:
        """Move ``record`` from the slot it was stored under to its current key."""
        slot = self._records.get(previous_type, {})
        if slot.get(_key(previous_id)) is record:
            del slot[_key(previous_id)]
        self._attach(record)

    # --- Request cache ---

    def clear_cache(self) -> None:
        if self._cache is not None:
            self._cache.clear()
            logger.debug("Request cache cleared")

    def _purge(self, predicate) -> None:
        if self._cache is None:
            return
        stale = [key for key, task in list(self._cache.items()) if predicate(key, task)]
        for key in stale:
            self._cache.pop(key, None)
        if stale:
            logger.debug(f"Evicted {len(stale)} cached request(s)")

    def _evict(self, key: CacheKey, task: asyncio.Task) -> None:
        if self._cache is not None and self._cache.get(key) is task:
            self._cache.pop(key, None)
            logger.debug(f"Evicted failed request from cache: {key}")

    def _evict_cancelled(self, key: CacheKey, task: asyncio.Task) -> None:
        if task.cancelled():
            self._evict(key, task)

    async def _evict_on_error(
        self, key: CacheKey, call: Callable[[], Awaitable["Response"]]
    ) -> "Response":
        try:
            return await call()
        except BaseException:
            self._evict(key, asyncio.current_task())
            raise

    async def _cached(
        self,
        key: CacheKey | None,
        call: Callable[[], Awaitable["Response"]],
        force: bool = False,
    ) -> "Response":
        if self._cache is None or key is None:
            return await call()

        task = None if force else self._cache.get(key)
        if task is not None:
            logger.debug(f"Cache hit: {key}")
        else:
            logger.debug(f"Cache {'refresh' if force else 'miss'}: {key}")
            task = asyncio.get_running_loop().create_task(
                self._evict_on_error(key, call)
            )
            # A task cancelled before it starts never reaches its except clause.
            task.add_done_callback(partial(self._evict_cancelled, key))
            self._cache[key] = task
        return await asyncio.shield(task)

    def _request(
        self,
        url: str,
        method: str,
        body: Any | None,
        options: RequestOptions,
    ) -> Awaitable["Response"]:
        return network.fetch(
            FetchRequest(
                url=url,
                method=method,
                body=body,
                headers=options.headers,
                store=self,
                options=options,
                transport=self._transport,
            )
        )

    async def fetch(
        self,
        type: str,
        id: RecordId,
        force: bool = False,
        options: RequestOptions | None = None,
    ) -> "Response":
        """Fetch one record.

        Concurrent and repeated calls with the same arguments share one
        request and resolve to the same Response, unless ``force`` is set.

        Raises:
            TransportError, MalformedResponseError, DocumentError: On failure.
                Failed calls are never cached.
        """
        options = options or RequestOptions()
        url = network.build_url(
            type,
            id,
            kind=self.kind_for(type),
            options=options,
            base_url=self.settings.base_url,
        )
        key: CacheKey = ("fetch", type, _key(id), options.cache_key())
        return await self._cached(
            key, partial(self._request, url, "GET", None, options), force
        )

    async def fetch_all(
        self,
        type: str,
        force: bool = False,
        options: RequestOptions | None = None,
    ) -> "Response":
        """Fetch the collection of ``type``; cached like :meth:`fetch`."""
        options = options or RequestOptions()
        url = network.build_url(
            type,
            kind=self.kind_for(type),
            options=options,
            base_url=self.settings.base_url,
        )
        key: CacheKey = ("fetch_all", type, None, options.cache_key())
        return await self._cached(
            key, partial(self._request, url, "GET", None, options), force
        )

    async def request(
        self,
        url: str,
        method: str = "GET",
        data: Any | None = None,
        options: RequestOptions | None = None,
    ) -> "Response":
        """Send an arbitrary request; relative URLs are prefixed with ``base_url``.

        Only GET requests are cached.
        """
        options = options or RequestOptions()
        method = method.upper()
        full_url = network.with_query(
            network.prefix_url(url, self.settings.base_url), options
        )
        key: CacheKey | None = None
        if method == "GET":
            key = ("request", None, full_url, options.cache_key())
        return await self._cached(
            key, partial(self._request, full_url, method, data, options)
        )

    # --- Record operations ---

    async def save(
        self, record: Record, options: RequestOptions | None = None
    ) -> Record:
        """Add ``record`` to the store and save it."""
        record = self.add(record)
        return await record.save(options)

    async def destroy(
        self, type: str, id: RecordId, options: RequestOptions | None = None
    ) -> bool:
        """Delete a record on the server (if persisted) and from the store.

        Unknown records are ignored.
        """
        record = self.find(type, id)
        if record is None:
            logger.debug(f"destroy({type!r}, {id!r}): record not in store")
            return True
        return await record.remove(options)

    # --- Lifecycle ---

    async def aclose(self) -> None:
        """Close the transport if the store created it."""
        if self._owns_transport and isinstance(self._transport, HttpTransport):
            await self._transport.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object | None,
    ) -> None:
        await self.aclose()
