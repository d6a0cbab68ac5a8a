# recordfabric/types.py
"""Core type definitions and data structures for recordfabric.

This module defines the wire-level aliases used throughout the library, the
request options that shape JSON:API queries, the raw outcome of one HTTP
exchange, and the request object handed to the pluggable store-fetch
strategy.
"""

import hashlib
import json
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

RecordId = int | str
Link = str | dict[str, Any]
WireRecord = dict[str, Any]
Document = dict[str, Any]
FlatRecord = dict[str, Any]


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list | tuple):
        return ",".join(_stringify(item) for item in value)
    return str(value)


def _flatten(prefix: str, value: Any):
    if isinstance(value, Mapping):
        for key, nested in value.items():
            yield from _flatten(f"{prefix}.{key}" if prefix else str(key), nested)
    else:
        yield prefix, value


class RequestOptions(BaseModel):
    """Per-request options: extra headers and JSON:API query parameters.

    ``filter`` may be nested; nested keys are joined with dots, so
    ``{"bar": {"id": 2}}`` becomes ``filter[bar.id]=2``. List values for
    ``sort``, ``include`` and ``fields`` are joined with commas.
    """

    headers: dict[str, str] = Field(default_factory=dict)
    filter: dict[str, Any] | None = None
    sort: str | list[str] | None = None
    include: str | list[str] | None = None
    fields: dict[str, str | list[str]] | None = None
    params: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")

    def query_params(self) -> list[tuple[str, str]]:
        """Render the options as an ordered list of query parameters."""
        query: list[tuple[str, str]] = []
        if self.filter:
            for key, value in _flatten("", self.filter):
                query.append((f"filter[{key}]", _stringify(value)))
        if self.sort:
            query.append(("sort", _stringify(self.sort)))
        if self.include:
            query.append(("include", _stringify(self.include)))
        if self.fields:
            for key, value in self.fields.items():
                query.append((f"fields[{key}]", _stringify(value)))
        for key, value in self.params.items():
            query.append((key, _stringify(value)))
        return query

    def cache_key(self) -> str:
        """A canonical digest of every option, used to key the request cache."""
        canonical = json.dumps(
            self.model_dump(exclude_none=True),
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )
        return hashlib.md5(canonical.encode("utf-8")).hexdigest()


class RawResponse(BaseModel):
    """The outcome of one HTTP exchange before it is turned into a Response.

    ``data`` holds the parsed JSON:API document (``None`` for 204 or failed
    requests). ``error`` carries a transport or parsing error; document-level
    errors stay inside ``data``.
    """

    status: int
    data: dict[str, Any] | None = None
    headers: httpx.Headers = Field(default_factory=httpx.Headers)
    request_headers: dict[str, str] = Field(default_factory=dict)
    error: Exception | None = None

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    @field_validator("headers", mode="before")
    @classmethod
    def _coerce_headers(cls, value: Any) -> httpx.Headers:
        if isinstance(value, httpx.Headers):
            return value
        return httpx.Headers(value or {})


class RequestData(BaseModel):
    """Encapsulates data for a single HTTP request attempt."""

    method: str
    url: str
    json_data: Any | None = None
    headers: dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(extra="allow")

    def build_request(self, client: httpx.AsyncClient) -> httpx.Request:
        """Builds an httpx.Request through ``client`` so its default headers apply."""
        return client.build_request(
            method=self.method,
            url=self.url,
            json=self.json_data,
            headers=self.headers,
        )


class FetchRequest(BaseModel):
    """Everything the store-fetch strategy needs to perform one request.

    Attributes:
        url: Fully resolved URL, query string included.
        method: HTTP method.
        body: JSON body for writes.
        headers: Per-request headers (merged over the transport defaults).
        store: The owning store, or None for standalone records.
        options: The options the caller supplied.
        transport: The transport that will perform the request.
    """

    url: str
    method: str = "GET"
    body: Any | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    store: Any | None = None
    options: RequestOptions = Field(default_factory=RequestOptions)
    transport: Any

    model_config = ConfigDict(arbitrary_types_allowed=True)


StoreFetch = Callable[[FetchRequest], Awaitable[Any]]
"""Type alias for the pluggable store-fetch strategy.

The strategy receives a :class:`FetchRequest` and must return (awaitably) a
``recordfabric.response.Response``. Replacing it through
``ClientSettings.store_fetch`` lets callers intercept, mock or reroute every
request without changing cache semantics.
"""

PreRequestHook = Callable[[str, str, httpx.Headers], None]
"""Type alias for a pre-request hook.

Args:
    method (str): The HTTP method of the request (e.g., "GET", "POST").
    url (str): The full URL of the request.
    headers (httpx.Headers): A mutable `httpx.Headers` object. Hooks can
        modify this object in place.
Return:
    None: Hooks are expected to modify arguments in-place or perform side effects.
"""

PostRequestHook = Callable[[httpx.Response, dict[str, Any] | None, int], None]
"""Type alias for a post-request hook.

Args:
    response (httpx.Response): The raw `httpx.Response` object.
    document (dict[str, Any] | None): The parsed JSON:API document, or None
        for 204 responses.
    attempts (int): The number of attempts made to get the response.
Return:
    None: Hooks are expected to perform side effects.
"""
