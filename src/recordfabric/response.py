"""Immutable snapshots of one JSON:API exchange.

A :class:`Response` synchronizes the document it wraps into a store (or
builds a standalone record), exposes the document's side members, and turns
every entry of the document's ``links`` into a lazily started, memoized
fetch of another Response.
"""

import asyncio
from typing import TYPE_CHECKING, Any

import httpx

from .exceptions import ConfigurationError
from .log_config import logger
from .network import fetch_link
from .record import Record
from .types import Link, RawResponse, RequestOptions

if TYPE_CHECKING:
    from .models import Transport
    from .store import Store


class Response:
    """The result of one request, synchronized with the store.

    Depending on what is supplied the primary data is handled in one of
    three ways:

    * with a store and no override, the document is merged into the store's
      identity map and the merged record(s) become ``data``;
    * with a store and an override, the override record(s) are added to the
      store instead of the parsed data;
    * without a store, a single standalone record is built (or the override
      is used). A plural result is rejected with :class:`ConfigurationError`.

    Every attribute is read-only once the constructor returns. Link names
    found in ``links`` can be read as attributes (``response.next``,
    ``response.related``) or through :meth:`fetch_link`; each returns an
    ``asyncio.Task`` that is started on first access and shared afterwards.
    ``first``, ``prev``, ``next`` and ``last`` are always available and
    resolve to an empty result when the server did not send them.

    Attributes:
        data: The synchronized record, list of records, or None.
        meta: Top-level ``meta`` of the document.
        links: Top-level ``links`` of the document.
        jsonapi: The ``jsonapi`` member of the document.
        headers: Response headers.
        request_headers: Headers that were sent.
        error: The document's ``errors`` list or the transport error, if any.
        status: HTTP status code.
    """

    __slots__ = (
        "_raw",
        "_store",
        "_options",
        "_transport",
        "_data",
        "_meta",
        "_links",
        "_jsonapi",
        "_error",
        "_link_cache",
    )

    def __init__(
        self,
        raw: RawResponse,
        store: "Store | None" = None,
        options: RequestOptions | None = None,
        override: Record | list[Record] | None = None,
        *,
        transport: "Transport | None" = None,
    ):
        init = object.__setattr__
        init(self, "_raw", raw)
        init(self, "_store", store)
        init(self, "_options", options if options is not None else RequestOptions())
        init(
            self,
            "_transport",
            transport or (store.transport if store is not None else None),
        )

        document = raw.data or {}
        if store is not None:
            data = store.add(override) if override is not None else store.sync(raw.data)
        else:
            primary = document.get("data")
            if isinstance(primary, list):
                raise ConfigurationError(
                    "A plural result is invalid outside a store; "
                    "fetch collections through a Store"
                )
            if override is not None:
                data = override
            elif primary:
                data = Record.from_wire(primary, transport=self._transport)
            else:
                data = None

        init(self, "_data", data)
        init(self, "_meta", document.get("meta") or {})
        init(self, "_links", document.get("links") or {})
        init(self, "_jsonapi", document.get("jsonapi") or {})
        init(self, "_error", document.get("errors") or raw.error)
        init(self, "_link_cache", {})

    @classmethod
    def empty(
        cls,
        store: "Store | None" = None,
        options: RequestOptions | None = None,
        *,
        transport: "Transport | None" = None,
    ) -> "Response":
        """An empty-sequence result, used when a requested link is missing."""
        return cls(RawResponse(status=204), store, options, [], transport=transport)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"{self.__class__.__name__} is immutable")

    def __delattr__(self, name: str) -> None:
        raise AttributeError(f"{self.__class__.__name__} is immutable")

    def __getattr__(self, name: str) -> "asyncio.Task[Response]":
        if name.startswith("_"):
            raise AttributeError(name)
        if name in self._links:
            return self.fetch_link(name)
        raise AttributeError(
            f"{self.__class__.__name__!r} object has no attribute or link {name!r}"
        )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} status={self.status} data={self._data!r}>"

    @property
    def data(self) -> Record | list[Record] | None:
        return self._data

    @property
    def meta(self) -> dict[str, Any]:
        return self._meta

    @property
    def links(self) -> dict[str, Link]:
        return self._links

    @property
    def jsonapi(self) -> dict[str, Any]:
        return self._jsonapi

    @property
    def headers(self) -> httpx.Headers:
        return self._raw.headers

    @property
    def request_headers(self) -> dict[str, str]:
        return self._raw.request_headers

    @property
    def error(self) -> list[dict[str, Any]] | Exception | None:
        return self._error

    @property
    def status(self) -> int:
        return self._raw.status

    @property
    def store(self) -> "Store | None":
        return self._store

    @property
    def options(self) -> RequestOptions:
        return self._options

    @property
    def first(self) -> "asyncio.Task[Response]":
        return self.fetch_link("first")

    @property
    def prev(self) -> "asyncio.Task[Response]":
        return self.fetch_link("prev")

    @property
    def next(self) -> "asyncio.Task[Response]":
        return self.fetch_link("next")

    @property
    def last(self) -> "asyncio.Task[Response]":
        return self.fetch_link("last")

    def fetch_link(self, name: str) -> "asyncio.Task[Response]":
        """Return the shared task resolving the link called ``name``.

        The task is created, and cached, before anything is awaited, so
        concurrent accesses to the same name share one request.
        """
        task = self._link_cache.get(name)
        if task is None:
            link = self._links.get(name)
            logger.debug(f"Resolving link {name!r} (present: {link is not None})")
            task = asyncio.get_running_loop().create_task(
                fetch_link(
                    link,
                    self._store,
                    self.request_headers,
                    self._options,
                    self._transport,
                )
            )
            self._link_cache[name] = task
        return task

    def replace_data(self, record: Record) -> "Response":
        """Swap ``record`` in as this response's data, keeping its identity.

        The current record's fields are copied onto ``record`` and ``record``
        takes over the current record's id and its slot in the store, so any
        reference already held to ``record`` stays valid.

        Returns:
            Response: ``self`` if ``record`` already is the data, otherwise a
                new Response built from the same raw response.
        """
        current = self._data
        if record is current:
            return self
        if not isinstance(current, Record):
            raise ConfigurationError(
                "replace_data needs a response holding a single record"
            )

        if self._store is not None:
            self._store.remove(current.type, current.id)

        previous_type, previous_id = record.type, record.id
        record.update(current)
        record._set_id(current.id)
        if self._store is not None:
            self._store.rekey(previous_type, previous_id, record)

        return Response(
            self._raw, self._store, self._options, record, transport=self._transport
        )
