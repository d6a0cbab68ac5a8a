# recordfabric/models.py
"""JSON:API wire models and collaborator protocols.

The pydantic models describe the JSON:API document envelope closely enough
for the transport to tell a well-formed document from an arbitrary JSON
body; they are used for validation only, the library keeps working on the
plain dictionaries the server sent.

The protocols describe the two collaborators the core talks to: the
transport that performs HTTP exchanges and the identity map records are
synchronized into.

Reference: https://jsonapi.org/format/
"""

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from .config import ClientSettings
    from .types import RawResponse, RecordId


class LinkObject(BaseModel):
    """A link given as an object rather than a bare URL."""

    href: str
    meta: dict[str, Any] | None = None

    model_config = ConfigDict(extra="allow")


LinkValue = str | LinkObject | None


class ResourceIdentifier(BaseModel):
    """A ``{type, id}`` pair referencing another resource."""

    type: str
    id: str | int | None = None
    meta: dict[str, Any] | None = None

    model_config = ConfigDict(extra="allow")


class RelationshipObject(BaseModel):
    """A relationship member of a resource object."""

    data: ResourceIdentifier | list[ResourceIdentifier] | None = None
    links: dict[str, LinkValue] | None = None
    meta: dict[str, Any] | None = None

    model_config = ConfigDict(extra="allow")


class ResourceObject(BaseModel):
    """A single JSON:API resource object."""

    type: str
    id: str | int | None = None
    attributes: dict[str, Any] = Field(default_factory=dict)
    relationships: dict[str, RelationshipObject] | None = None
    links: dict[str, LinkValue] | None = None
    meta: dict[str, Any] | None = None

    model_config = ConfigDict(extra="allow")


class ErrorObject(BaseModel):
    """A single JSON:API error object."""

    id: str | int | None = None
    status: str | int | None = None
    code: str | None = None
    title: str | None = None
    detail: str | None = None
    source: dict[str, Any] | None = None
    links: dict[str, LinkValue] | None = None
    meta: dict[str, Any] | None = None

    model_config = ConfigDict(extra="allow")


class JsonApiObject(BaseModel):
    """The ``jsonapi`` member describing the server implementation."""

    version: str | None = None
    meta: dict[str, Any] | None = None

    model_config = ConfigDict(extra="allow")


class JsonApiDocument(BaseModel):
    """A top-level JSON:API document."""

    data: ResourceObject | list[ResourceObject] | None = None
    errors: list[ErrorObject] | None = None
    included: list[ResourceObject] | None = None
    meta: dict[str, Any] | None = None
    links: dict[str, LinkValue] | None = None
    jsonapi: JsonApiObject | None = None

    model_config = ConfigDict(extra="allow")


@runtime_checkable
class Transport(Protocol):
    """Protocol for the component that performs HTTP exchanges.

    A transport never raises for HTTP-level failures: a non-2xx status or an
    unreadable body is reported through ``RawResponse.error`` so the caller
    can still see status and headers. Connection-level failures (DNS,
    refused connections, timeouts) are raised.
    """

    settings: "ClientSettings"

    async def read(
        self,
        url: str,
        *,
        method: str = "GET",
        body: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> "RawResponse":
        """Perform one request and return its raw outcome.

        Args:
            url: Absolute URL including the query string.
            method: HTTP method.
            body: JSON-serializable request body for writes.
            headers: Per-request headers, merged over the configured defaults.

        Returns:
            RawResponse: Status, parsed document, headers and any error.
        """
        ...


@runtime_checkable
class IdentityMap(Protocol):
    """Protocol for the per-store mapping of (type, id) to record instances."""

    def sync(self, document: dict[str, Any] | None) -> Any:
        """Merge a document's resources and return its primary record(s)."""
        ...

    def add(self, records: Any) -> Any:
        """Insert record(s), merging into any existing entry with the same key."""
        ...

    def remove(self, type: str, id: "RecordId") -> None:
        """Forget the record stored under (type, id), if any."""
        ...
