"""Custom exception classes for the recordfabric library.

Three failure modes of a JSON:API exchange are kept apart because the
request cache treats them differently from a successful response:

* :class:`TransportError` - the server answered with a non-2xx status.
* :class:`MalformedResponseError` - the body is not a JSON:API document.
* :class:`DocumentError` - the document carries a top-level ``errors`` array.

:class:`ConfigurationError` marks invalid usage of the library itself and is
never retried.
"""

from typing import Any

import httpx


class RecordfabricError(Exception):
    """Base exception class for all recordfabric errors."""

    def __init__(
        self,
        message: str,
        *,
        response: httpx.Response | None = None,
        request: httpx.Request | None = None,
    ):
        """Initializes the base exception.

        Args:
            message: The error message.
            response: Optional httpx.Response object associated with the error.
            request: Optional httpx.Request object associated with the error.
        """
        super().__init__(message)
        self.message = message
        self.response = response
        self.request = request

    def __str__(self) -> str:
        if self.response is not None:
            url_info = getattr(getattr(self.response, "request", None), "url", "N/A")
            return (
                f"{self.message} (Status: {self.response.status_code}, URL: {url_info})"
            )
        if isinstance(self.request, httpx.Request):
            return f"{self.message} (URL: {self.request.url})"
        return self.message


class TransportError(RecordfabricError):
    """The server answered with a status outside the 2xx range."""

    def __init__(
        self,
        status: int,
        *,
        response: httpx.Response | None = None,
        request: httpx.Request | None = None,
    ):
        super().__init__(
            f"Invalid HTTP status: {status}", response=response, request=request
        )
        self.status = status


class MalformedResponseError(RecordfabricError):
    """The response body could not be read as a JSON:API document.

    Attributes:
        type: ``"invalid-json"`` when the body is not JSON at all,
            ``"invalid-document"`` when it is JSON of the wrong shape.
    """

    INVALID_JSON = "invalid-json"
    INVALID_DOCUMENT = "invalid-document"

    def __init__(
        self,
        message: str,
        *,
        error_type: str = INVALID_JSON,
        response: httpx.Response | None = None,
        request: httpx.Request | None = None,
    ):
        super().__init__(message, response=response, request=request)
        self.type = error_type

    @property
    def name(self) -> str:
        return self.__class__.__name__


class DocumentError(RecordfabricError):
    """The server returned a JSON:API document with an ``errors`` array.

    Attributes:
        errors: The raw error objects exactly as received.
    """

    def __init__(self, errors: list[dict[str, Any]]):
        self.errors = errors
        first = errors[0] if errors else {}
        summary = first.get("detail") or first.get("title") or "JSON:API error"
        super().__init__(f"{summary} ({len(errors)} error(s))")


class ConfigurationError(RecordfabricError):
    """Represents invalid usage or configuration of the library."""

    def __init__(self, message: str):
        super().__init__(message, response=None)


class RecordfabricRequestError(RecordfabricError):
    """Represents an error during the HTTP request process itself."""


class TimeoutError(RecordfabricRequestError):
    """Represents a request timeout error."""

    def __init__(self, message: str, *, request: httpx.Request | None = None):
        super().__init__(message, request=request, response=None)


class NetworkError(RecordfabricRequestError):
    """Represents a network connection error (DNS failure, connection refused)."""

    def __init__(self, message: str, *, request: httpx.Request | None = None):
        super().__init__(message, request=request, response=None)
