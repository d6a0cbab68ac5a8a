"""Flat records and per-type record configuration."""

import asyncio
import itertools
import uuid
from collections.abc import Callable, Iterator, Mapping
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import ConfigurationError
from .log_config import logger
from .normalize import map_items, normalize
from .types import FetchRequest, Link, RecordId, RequestOptions, WireRecord

if TYPE_CHECKING:
    from .models import Transport
    from .response import Response
    from .store import Store

_local_ids = itertools.count(1)


class RecordKind(BaseModel):
    """Configuration for one resource type, supplied when registering it.

    Attributes:
        type: The JSON:API resource type.
        endpoint: Path (or callable returning a path) used instead of the
            type name when building URLs.
        use_autogenerated_ids: Assign ids client-side and send them on create.
        auto_id_function: Produces ids when ``use_autogenerated_ids`` is set.
        relationship_types: Target type per relationship name, used when
            serializing a relationship the server never typed (for example
            one first seen as an empty list).
    """

    type: str
    endpoint: str | Callable[[], str] | None = None
    use_autogenerated_ids: bool = False
    auto_id_function: Callable[[], str] = Field(default=lambda: str(uuid.uuid4()))
    relationship_types: dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    def resolve_endpoint(self) -> str:
        """Return the URL path segment for this type."""
        if self.endpoint is None:
            return self.type
        if callable(self.endpoint):
            return self.endpoint()
        return self.endpoint


def _relationship_type(data: Any) -> str | None:
    if isinstance(data, list):
        return next((item.get("type") for item in data if item), None)
    return data.get("type") if data else None


class Record:
    """A JSON:API resource held as a flat mapping of fields.

    ``id`` and ``type`` live alongside the attributes; relationships are
    stored as the referenced id (or list of ids) under the relationship name,
    see :func:`recordfabric.normalize.normalize`. A record belongs to at most
    one store; records outside a store are standalone and need a transport
    of their own for network operations.

    Records are compared by identity: the store guarantees a single instance
    per (type, id), and every refetch updates that instance in place.
    """

    def __init__(
        self,
        data: Mapping[str, Any] | None = None,
        *,
        kind: RecordKind | None = None,
        persisted: bool = False,
        transport: "Transport | None" = None,
    ):
        fields = dict(data or {})
        if not fields.get("type") and kind is None:
            raise ConfigurationError("A record needs a 'type'")
        fields["type"] = fields.get("type") or kind.type
        self._kind = kind or RecordKind(type=fields["type"])

        self._local_id = False
        if fields.get("id") is None:
            if self._kind.use_autogenerated_ids:
                fields["id"] = self._kind.auto_id_function()
            else:
                fields["id"] = -next(_local_ids)
                self._local_id = True

        self._data: dict[str, Any] = fields
        self._persisted = persisted
        self._meta: dict[str, Any] = {}
        self._links: dict[str, Link] = {}
        self._relationship_types: dict[str, str | None] = {}
        self._store: "Store | None" = None
        self._transport = transport
        self._link_cache: dict[str, asyncio.Task["Response"]] = {}
        self._queue_for: "Record | None" = None

    @classmethod
    def from_wire(
        cls,
        wire: WireRecord,
        *,
        kind: RecordKind | None = None,
        transport: "Transport | None" = None,
    ) -> "Record":
        """Create a persisted record from a wire-format resource object."""
        record = cls(normalize(wire), kind=kind, persisted=True, transport=transport)
        record._absorb_wire_state(wire)
        return record

    # --- Mapping-style access ---

    @property
    def id(self) -> RecordId:
        return self._data["id"]

    @property
    def type(self) -> str:
        return self._data["type"]

    @property
    def kind(self) -> RecordKind:
        return self._kind

    @property
    def meta(self) -> dict[str, Any]:
        """Resource-level ``meta`` as last received from the server."""
        return self._meta

    @property
    def links(self) -> dict[str, Link]:
        """Resource-level ``links`` as last received from the server."""
        return self._links

    @property
    def is_persisted(self) -> bool:
        return self._persisted

    @property
    def store(self) -> "Store | None":
        return self._store

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._data[key] = value

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def to_dict(self) -> dict[str, Any]:
        """A shallow copy of every field, ``id`` and ``type`` included."""
        return dict(self._data)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.type}:{self.id}>"

    # --- Synchronization ---

    def update(self, data: "Mapping[str, Any] | Record") -> "Record":
        """Merge fields into this record in place.

        When given another record, its server-side state (meta, links,
        relationship types, persisted flag) is adopted as well.
        """
        if isinstance(data, Record):
            self._data.update(data.to_dict())
            self._meta = dict(data._meta)
            self._links = dict(data._links)
            self._relationship_types.update(data._relationship_types)
            self._persisted = self._persisted or data._persisted
            self._local_id = data._local_id
        else:
            self._data.update(data)
        return self

    def _absorb_wire_state(self, wire: WireRecord) -> None:
        self._meta = dict(wire.get("meta") or {})
        self._links = dict(wire.get("links") or {})
        for key, relationship in (wire.get("relationships") or {}).items():
            rel_type = _relationship_type((relationship or {}).get("data"))
            if rel_type or key not in self._relationship_types:
                self._relationship_types[key] = rel_type
        self._persisted = True
        if wire.get("id") is not None:
            self._local_id = False

    def _sync_wire(self, wire: WireRecord) -> "Record":
        self._data.update(normalize(wire))
        self._absorb_wire_state(wire)
        return self

    def _set_id(self, id: RecordId) -> None:
        self._data["id"] = id
        self._local_id = False

    def to_wire_format(self) -> WireRecord:
        """Serialize the record as a JSON:API resource object.

        Locally numbered records that were never saved are sent without an
        ``id``; client-generated ids are always sent.
        """
        declared = self._kind.relationship_types
        relationships = dict(self._relationship_types)
        for key in declared:
            if key in self._data and key not in relationships:
                relationships[key] = None
        relationship_keys = set(relationships)
        link_keys = {f"{key}Links" for key in relationship_keys}

        wire: WireRecord = {"type": self.type, "attributes": {}}
        if not self._local_id:
            wire["id"] = self.id

        for key, value in self._data.items():
            if key in ("id", "type") or key in relationship_keys or key in link_keys:
                continue
            wire["attributes"][key] = value

        if relationship_keys:
            wire["relationships"] = {}
            for key, rel_type in relationships.items():
                target_type = rel_type or declared.get(key) or key

                def identifier(ref_id: Any, target_type: str = target_type) -> Any:
                    return None if ref_id is None else {"type": target_type, "id": ref_id}

                wire["relationships"][key] = {
                    "data": map_items(self._data.get(key), identifier)
                }
        return wire

    # --- Network operations ---

    def _current_transport(self) -> "Transport | None":
        return self._store.transport if self._store is not None else self._transport

    def _resolve_transport(self) -> "Transport":
        transport = self._current_transport()
        if transport is None:
            raise ConfigurationError(
                f"{self!r} is not attached to a store and has no transport"
            )
        return transport

    def _url(self, transport: "Transport", options: RequestOptions | None = None) -> str:
        from .network import build_url, link_href, with_query

        if self._persisted and self._links.get("self"):
            return with_query(link_href(self._links["self"]), options)
        return build_url(
            self.type,
            self.id if self._persisted else None,
            kind=self._kind,
            options=options,
            base_url=transport.settings.base_url,
        )

    async def save(self, options: RequestOptions | None = None) -> "Record":
        """Create (POST) or update (PATCH) the record on the server.

        Returns:
            Record: This record, carrying the server's fields and id. For a
                202 Accepted answer the returned queue record is given
                instead; poll it with ``fetch_link("self", force=True)``.

        Raises:
            TransportError, MalformedResponseError, DocumentError: When the
                write fails. The record is left unchanged.
        """
        from .network import fetch

        options = options or RequestOptions()
        transport = self._resolve_transport()
        method = "PATCH" if self._persisted else "POST"
        logger.debug(f"Saving {self!r} with {method}")

        response = await fetch(
            FetchRequest(
                url=self._url(transport, options),
                method=method,
                body={"data": self.to_wire_format()},
                headers=options.headers,
                store=self._store,
                options=options,
                transport=transport,
            )
        )

        if response.status == 204:
            if method == "POST" and self._local_id:
                logger.warning(
                    f"Server answered 204 to the creation of {self!r} without "
                    "assigning an id; the record stays unsaved"
                )
                return self
            self._persisted = True
            if self._store is not None:
                self._store.add(self)
            return self

        if response.status == 202 and isinstance(response.data, Record):
            queue = response.data
            queue._queue_for = self
            logger.info(f"Save of {self!r} was queued as {queue!r}")
            return queue

        self._persisted = True
        if not isinstance(response.data, Record):
            return self
        return response.replace_data(self).data

    async def remove(self, options: RequestOptions | None = None) -> bool:
        """Delete the record on the server (when persisted) and from its store."""
        from .network import fetch

        if self._persisted:
            options = options or RequestOptions()
            transport = self._resolve_transport()
            await fetch(
                FetchRequest(
                    url=self._url(transport, options),
                    method="DELETE",
                    headers=options.headers,
                    store=self._store,
                    options=options,
                    transport=transport,
                )
            )
        if self._store is not None:
            self._store.remove(self.type, self.id)
        return True

    async def fetch_link(
        self, name: str, options: RequestOptions | None = None, force: bool = False
    ) -> "Response":
        """Resolve one of the record's own links, memoized per link name.

        A name missing from ``links`` resolves to an empty result.
        """
        return await self._cached_link(name, self._links.get(name), options, force)

    async def fetch_relationship_link(
        self,
        relationship: str,
        name: str,
        options: RequestOptions | None = None,
        force: bool = False,
    ) -> "Response":
        """Resolve a link of one relationship, e.g. ``("image", "related")``."""
        links = self._data.get(f"{relationship}Links") or {}
        return await self._cached_link(
            f"{relationship}.{name}", links.get(name), options, force
        )

    async def _cached_link(
        self,
        cache_name: str,
        link: Link | None,
        options: RequestOptions | None,
        force: bool,
    ) -> "Response":
        from .network import fetch_link

        task = self._link_cache.get(cache_name)
        if task is None or force:
            options = options or RequestOptions()
            transport = (
                self._resolve_transport() if link is not None else self._current_transport()
            )
            task = asyncio.get_running_loop().create_task(
                fetch_link(link, self._store, options.headers, options, transport)
            )
            self._link_cache[cache_name] = task
        response = await asyncio.shield(task)
        if self._queue_for is not None:
            return self._settle_queue(response)
        return response

    def _settle_queue(self, response: "Response") -> "Response":
        related = self._queue_for
        record = response.data
        if (
            isinstance(record, Record)
            and record.type != self.type
            and record.type == related.type
        ):
            logger.info(f"Queued save of {related!r} finished as {record!r}")
            related._persisted = True
            return response.replace_data(related)
        return response
