"""Resource clients for the recordfabric store.

This module provides small, composable mixins for the read operations most
callers need on one resource type: getting a single record, listing a page
of records, and iterating over every record of a paginated collection by
following the collection's ``next`` links. They sit on top of a
:class:`~recordfabric.store.Store`, so every result is synchronized into the
store's identity map and de-duplicated by its request cache.

A client for a type is usually obtained with ``store.resource("books")``.
"""

from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any, Protocol

from .exceptions import ConfigurationError
from .log_config import logger
from .record import Record
from .types import RecordId, RequestOptions

if TYPE_CHECKING:
    from .response import Response
    from .store import Store


class ResourceClientProtocol(Protocol):
    """Protocol that defines the interface expected by resource mixins."""

    _store: "Store"
    _type: str  # The JSON:API resource type, e.g. "books"


def _options(query: dict[str, Any]) -> RequestOptions:
    """Build request options from keyword arguments.

    Known option names (``filter``, ``sort``, ``include``, ``fields``,
    ``headers``, ``params``) are used as such; anything else becomes a plain
    query parameter.
    """
    known = set(RequestOptions.model_fields)
    options = {key: value for key, value in query.items() if key in known}
    extra = {key: value for key, value in query.items() if key not in known}
    if extra:
        options["params"] = {**options.get("params", {}), **extra}
    return RequestOptions(**options)


def _records(response: "Response") -> list[Record]:
    data = response.data
    if data is None:
        return []
    if isinstance(data, Record):
        return [data]
    return list(data)


class BaseResourceClient:
    """Base class for all resource clients.

    Attributes:
        _store: The store every request goes through.
        _type: The resource type this client reads.
    """

    def __init__(self, store: "Store", type: str):
        """Initialize the base resource client.

        Args:
            store: The store to read through.
            type: The JSON:API resource type.
        """
        if not type:
            raise ConfigurationError(f"{self.__class__.__name__} needs a resource type")
        self._store = store
        self._type = type
        logger.debug(f"{self.__class__.__name__} initialized for type {type!r}")

    @property
    def type(self) -> str:
        return self._type

    @property
    def store(self) -> "Store":
        return self._store


class GettableMixin:
    """Mixin that provides get() for retrieving a single record by id."""

    async def get(
        self: ResourceClientProtocol,
        id: RecordId,
        force: bool = False,
        **query: Any,
    ) -> Record:
        """Retrieve a single record.

        Args:
            id: The record id.
            force: Bypass the request cache.
            **query: Request options (``include``, ``fields``, ...) or extra
                query parameters.

        Returns:
            Record: The record, as held by the store.

        Raises:
            TransportError: If the server answers with a non-2xx status, e.g.
                404 for an unknown id.
            DocumentError: If the document carries errors.
        """
        logger.info(f"Fetching {self._type} with ID: {id}")
        response = await self._store.fetch(self._type, id, force, _options(query))
        if not isinstance(response.data, Record):
            raise ConfigurationError(
                f"Expected a single {self._type!r} record for id {id!r}, "
                f"got {type(response.data).__name__}"
            )
        return response.data


class ListableMixin:
    """Mixin that provides list() for fetching one page of a collection."""

    async def list(
        self: ResourceClientProtocol,
        force: bool = False,
        **query: Any,
    ) -> "Response":
        """Fetch the collection (its first page, for paginated servers).

        Returns:
            Response: The response; ``data`` holds the records and the
                ``next``/``prev`` link accessors lead to the other pages.
        """
        options = _options(query)
        logger.info(f"Listing {self._type}: params={options.query_params()}")
        return await self._store.fetch_all(self._type, force, options)


class PageIterableMixin:
    """Mixin that provides iterate() over every page of a collection.

    Iteration starts with ``fetch_all`` and follows each page's ``next`` link
    until a page is empty or has no ``next`` link.
    """

    async def iterate(
        self: ResourceClientProtocol,
        **query: Any,
    ) -> AsyncIterator[Record]:
        """Iterate through all records of the collection.

        Yields:
            Record: Every record of every page, in server order.
        """
        options = _options(query)
        logger.info(f"Iterating {self._type}: params={options.query_params()}")

        response = await self._store.fetch_all(self._type, False, options)
        page = 1
        while True:
            records = _records(response)
            if not records:
                logger.debug(f"Page {page} of {self._type} is empty, stopping iteration.")
                break

            for record in records:
                yield record

            if "next" not in response.links or response.links["next"] is None:
                logger.debug(f"No next link for {self._type}, stopping iteration.")
                break

            page += 1
            logger.debug(f"Following next link of {self._type} to page {page}")
            response = await response.next


class ResourceClient(BaseResourceClient, GettableMixin, ListableMixin, PageIterableMixin):
    """Read access to one resource type through a store."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} type={self._type!r}>"
