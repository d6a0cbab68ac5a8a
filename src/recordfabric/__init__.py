"""Recordfabric: an asynchronous JSON:API client with an identity-mapped store.

This package turns JSON:API documents into flat, mutable records kept once
per (type, id) in a store, wraps every exchange in an immutable Response
with lazily resolved links, and de-duplicates identical reads through a
request cache.

The library logs through loguru but stays silent until
:func:`recordfabric.log_config.configure_logging` is called.
"""

__version__ = "0.1.0"

from .log_config import logger

logger.disable("recordfabric")

from . import client, config, exceptions, log_config, models, network, normalize, types  # noqa: E402
from .client import HttpTransport  # noqa: E402
from .config import ClientSettings, get_settings  # noqa: E402
from .exceptions import (  # noqa: E402
    ConfigurationError,
    DocumentError,
    MalformedResponseError,
    NetworkError,
    RecordfabricError,
    RecordfabricRequestError,
    TimeoutError,
    TransportError,
)
from .log_config import configure_logging  # noqa: E402
from .normalize import normalize as flatten_record  # noqa: E402
from .record import Record, RecordKind  # noqa: E402
from .resources import ResourceClient  # noqa: E402
from .response import Response  # noqa: E402
from .store import Store  # noqa: E402
from .types import RequestOptions  # noqa: E402

__all__ = [
    "__version__",
    "client",
    "config",
    "exceptions",
    "log_config",
    "models",
    "network",
    "normalize",
    "types",
    "ClientSettings",
    "ConfigurationError",
    "DocumentError",
    "HttpTransport",
    "MalformedResponseError",
    "NetworkError",
    "Record",
    "RecordKind",
    "RecordfabricError",
    "RecordfabricRequestError",
    "RequestOptions",
    "ResourceClient",
    "Response",
    "Store",
    "TimeoutError",
    "TransportError",
    "configure_logging",
    "flatten_record",
    "get_settings",
]
