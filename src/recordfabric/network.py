"""Request plumbing shared by stores, records and responses.

Every request in the library goes through :func:`fetch`, which hands a
:class:`~recordfabric.types.FetchRequest` to the configured store-fetch
strategy and turns error outcomes into exceptions. The default strategy,
:func:`store_fetch`, asks the transport for a raw response and wraps it in a
:class:`~recordfabric.response.Response`.
"""

from typing import TYPE_CHECKING, Any

import httpx

from .exceptions import ConfigurationError, DocumentError
from .log_config import logger
from .types import FetchRequest, Link, RecordId, RequestOptions

if TYPE_CHECKING:
    from .models import Transport
    from .record import RecordKind
    from .response import Response
    from .store import Store


def prefix_url(url: str, base_url: str) -> str:
    """Prepend ``base_url`` to a relative URL; absolute URLs are kept."""
    if httpx.URL(url).is_absolute_url or not base_url:
        return url
    return f"{base_url.rstrip('/')}/{url.lstrip('/')}"


def with_query(url: str, options: RequestOptions | None) -> str:
    """Append the JSON:API query parameters described by ``options``."""
    params = options.query_params() if options is not None else []
    if not params:
        return url
    return str(httpx.URL(url).copy_merge_params(params))


def build_url(
    type: str,
    id: RecordId | None = None,
    *,
    kind: "RecordKind | None" = None,
    options: RequestOptions | None = None,
    base_url: str = "",
) -> str:
    """Build the URL of a collection (``id=None``) or of one resource."""
    endpoint = (kind.resolve_endpoint() if kind is not None else type).strip("/")
    path = endpoint if id is None else f"{endpoint}/{id}"
    return with_query(prefix_url(path, base_url), options)


def link_href(link: Link) -> str:
    """Return the URL of a link given as a string or as ``{href, meta}``."""
    if isinstance(link, str):
        return link
    return link["href"]


def raise_for_error(error: Any) -> None:
    """Raise the exception matching a Response's ``error`` value."""
    if isinstance(error, BaseException):
        raise error
    raise DocumentError(list(error))


async def store_fetch(request: FetchRequest) -> "Response":
    """Default store-fetch strategy: one transport read, one Response."""
    from .response import Response

    raw = await request.transport.read(
        request.url,
        method=request.method,
        body=request.body,
        headers=request.headers,
    )
    return Response(raw, request.store, request.options, transport=request.transport)


async def fetch(request: FetchRequest) -> "Response":
    """Run a request through the configured strategy.

    Returns:
        Response: The successful response.

    Raises:
        TransportError: Non-2xx status.
        MalformedResponseError: Unreadable body.
        DocumentError: The document carries an ``errors`` array.
    """
    strategy = request.transport.settings.store_fetch or store_fetch
    response = await strategy(request)
    if response.error:
        logger.debug(f"{request.method} {request.url} resolved with an error")
        raise_for_error(response.error)
    return response


async def fetch_link(
    link: Link | None,
    store: "Store | None",
    headers: dict[str, str] | None,
    options: RequestOptions | None,
    transport: "Transport | None",
) -> "Response":
    """Follow a link and wrap the result in a Response.

    A missing link (``None``) is not an error: it resolves to an empty
    result so pagination can run off the end of a collection.
    """
    from .response import Response

    if link is None:
        logger.debug("Requested link is not present, resolving to an empty result")
        return Response.empty(store, options, transport=transport)

    if transport is None:
        raise ConfigurationError("Cannot follow a link without a transport")

    url = link_href(link)
    logger.debug(f"Following link {url}")
    return await fetch(
        FetchRequest(
            url=url,
            method="GET",
            headers=dict(headers or {}),
            store=store,
            options=options if options is not None else RequestOptions(),
            transport=transport,
        )
    )
