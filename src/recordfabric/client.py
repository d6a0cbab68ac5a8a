"""HTTP transport for recordfabric.

This module provides the HttpTransport class, the default implementation of
the :class:`~recordfabric.models.Transport` protocol. It sends JSON:API
requests through httpx, classifies the outcome (success, no content, HTTP
error, malformed body) and hands back a :class:`~recordfabric.types.RawResponse`.
"""

import json
import ssl
from http import HTTPStatus
from typing import Any, Self

import certifi
import httpx
import tenacity
from pydantic import ValidationError
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from .config import ClientSettings, get_settings
from .exceptions import (
    MalformedResponseError,
    NetworkError,
    RecordfabricError,
    RecordfabricRequestError,
    TimeoutError,
    TransportError,
)
from .log_config import logger
from .models import JsonApiDocument
from .types import RawResponse, RequestData


class HttpTransport:
    """Asynchronous JSON:API transport built on httpx.

    The transport is thin: it merges default and per-request
    headers, runs request hooks, sends the request and parses the body. It
    does not know about stores, records or caching.

    HTTP-level failures are returned, not raised: a non-2xx status becomes a
    :class:`TransportError` and an unreadable body a
    :class:`MalformedResponseError`, both stored in ``RawResponse.error``.
    Connection failures and timeouts are raised as :class:`NetworkError` and
    :class:`TimeoutError`. When ``settings.max_retries`` is above zero those,
    and responses with a retryable status, are retried with exponential
    backoff.

    Attributes:
        settings: The settings this transport (and any store using it) runs with.
        _retryable_status_codes: HTTP status codes that trigger a retry.
        _http_client: The underlying httpx.AsyncClient for making requests.
        _should_close_client: Flag indicating if this instance owns the _http_client.
    """

    DEFAULT_RETRYABLE_STATUS_CODES: frozenset[int] = frozenset([429, 502, 503, 504])
    """Default set of HTTP status codes considered retryable."""

    def __init__(
        self,
        settings: ClientSettings | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        retryable_status_codes: frozenset[int] = DEFAULT_RETRYABLE_STATUS_CODES,
    ):
        """Initialize the HttpTransport.

        Args:
            settings: Configuration settings. Defaults to ``get_settings()``.
            http_client: Optional pre-configured httpx.AsyncClient instance.
            retryable_status_codes: Set of HTTP status codes to retry on.
        """
        self.settings = settings or get_settings()
        self._retryable_status_codes = retryable_status_codes

        self._should_close_client = http_client is None
        self._http_client = http_client or self._create_default_http_client()

        logger.debug(
            f"HttpTransport initialized. base_url={self.settings.base_url!r}, "
            f"max_retries={self.settings.max_retries}"
        )

    def _create_default_http_client(self) -> httpx.AsyncClient:
        """Create a default httpx.AsyncClient with configured settings.

        Returns:
            httpx.AsyncClient: Configured HTTP client with SSL verification,
                timeout settings, and user agent header.
        """
        try:
            ssl_context = ssl.create_default_context(cafile=certifi.where())
            verify_ssl: ssl.SSLContext | bool = ssl_context
            logger.debug("Using certifi SSL context.")
        except Exception:
            verify_ssl = True
            logger.warning(
                "certifi not found or failed to load. Using default SSL verification."
            )

        return httpx.AsyncClient(
            timeout=self.settings.request_timeout,
            verify=verify_ssl,
            headers={"User-Agent": self.settings.user_agent},
        )

    def _parse_document(
        self, response: httpx.Response, request: httpx.Request
    ) -> dict[str, Any] | None:
        """Parse a successful response body into a JSON:API document.

        Returns:
            dict[str, Any] | None: The document, or None for 204 No Content.

        Raises:
            MalformedResponseError: If the body is not JSON or not a document.
        """
        if response.status_code == HTTPStatus.NO_CONTENT:
            return None

        try:
            body = json.loads(response.content)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedResponseError(
                f"Response body is not valid JSON: {e}",
                error_type=MalformedResponseError.INVALID_JSON,
                response=response,
                request=request,
            ) from e

        if not isinstance(body, dict):
            raise MalformedResponseError(
                f"Expected a JSON:API document object, got {type(body).__name__}",
                error_type=MalformedResponseError.INVALID_DOCUMENT,
                response=response,
                request=request,
            )
        try:
            JsonApiDocument.model_validate(body)
        except ValidationError as e:
            raise MalformedResponseError(
                f"Response body is not a JSON:API document: {e}",
                error_type=MalformedResponseError.INVALID_DOCUMENT,
                response=response,
                request=request,
            ) from e
        return body

    async def _execute_single_request(
        self, request_data: RequestData
    ) -> tuple[httpx.Response, dict[str, Any] | None]:
        """Execute a single HTTP request attempt, run hooks, and parse the body.

        Args:
            request_data: The request data including method, URL, body and headers.

        Returns:
            tuple[httpx.Response, dict[str, Any] | None]: The HTTP response and
                the parsed document.

        Raises:
            TransportError: For responses outside the 2xx range.
            MalformedResponseError: If a 2xx body is not a JSON:API document.
            TimeoutError: If the request times out.
            NetworkError: For network-related errors.
            RecordfabricError: For other unexpected errors.
        """
        hook_headers = httpx.Headers(request_data.headers)
        if self.settings.pre_request_hooks:
            logger.debug(
                f"Executing {len(self.settings.pre_request_hooks)} pre-request hooks "
                f"for {request_data.method} {request_data.url}"
            )
            for hook in self.settings.pre_request_hooks:
                try:
                    hook(request_data.method, request_data.url, hook_headers)
                except Exception as e:
                    logger.error(
                        f"Error executing pre-request hook {getattr(hook, '__name__', str(hook))}: {e}"
                    )
            request_data.headers = {k: v for k, v in hook_headers.items()}

        request = request_data.build_request(self._http_client)

        try:
            logger.debug(f"Sending request: {request.method} {request.url}")
            logger.trace(f"Request Headers: {request.headers}")
            if request.content:
                logger.trace(f"Request Body: {request.content.decode()}")

            response = await self._http_client.send(request)

            logger.debug(f"Received response: {response.status_code} for {request.url}")
            logger.trace(f"Response Headers: {response.headers}")

            if not HTTPStatus.OK <= response.status_code < HTTPStatus.MULTIPLE_CHOICES:
                raise TransportError(
                    response.status_code, response=response, request=request
                )

            document = self._parse_document(response, request)

            if self.settings.post_request_hooks:
                logger.debug(
                    f"Executing {len(self.settings.post_request_hooks)} post-request hooks "
                    f"for {request.method} {request.url}"
                )
                for hook in self.settings.post_request_hooks:
                    try:
                        hook(response, document, 1)
                    except Exception as e:
                        logger.error(
                            f"Error executing post-request hook {getattr(hook, '__name__', str(hook))}: {e}"
                        )

            return response, document

        except httpx.TimeoutException as e:
            logger.error(f"Request timed out: {request.url}")
            raise TimeoutError("Request timed out", request=request) from e
        except httpx.NetworkError as e:
            logger.error(f"Network error occurred for {request.url}: {e}")
            raise NetworkError(
                f"Network error for {request.url}: {e}", request=request
            ) from e
        except httpx.RequestError as e:
            logger.error(f"HTTP request error for {request.url}: {e}")
            raise RecordfabricRequestError(
                f"HTTP request error for {request.url}: {e}", request=request
            ) from e
        except RecordfabricError:
            raise
        except Exception as e:
            logger.exception(
                f"Unexpected error during single request execution to {request.url}: {e}"
            )
            raise RecordfabricError(
                f"An unexpected error occurred during request execution: {e}",
                request=request,
            ) from e

    def _should_retry_request(self, retry_state: tenacity.RetryCallState) -> bool:
        """Predicate for tenacity: should we retry this request?

        Args:
            retry_state: The current retry state from tenacity.

        Returns:
            bool: True if the request should be retried, False otherwise.
        """
        outcome = retry_state.outcome
        if not outcome or not outcome.failed:
            return False

        exc = outcome.exception()
        url = str(getattr(getattr(exc, "request", None), "url", "N/A"))

        if isinstance(exc, TimeoutError | NetworkError):
            logger.warning(f"Retrying due to {type(exc).__name__} for {url}")
            return True
        if (
            isinstance(exc, TransportError)
            and exc.status in self._retryable_status_codes
        ):
            logger.warning(f"Retrying due to status code {exc.status} for {url}")
            return True
        return False

    async def _before_retry_sleep(self, retry_state: tenacity.RetryCallState) -> None:
        """Log details before tenacity sleeps between retries."""
        if not retry_state.outcome:
            return

        exc = retry_state.outcome.exception()
        sleep_time = (
            getattr(retry_state.next_action, "sleep", 0)
            if retry_state.next_action
            else 0
        )
        logger.info(
            f"Retrying request in {sleep_time:.2f} seconds after "
            f"{retry_state.attempt_number} attempt(s) due to: {type(exc).__name__} - {exc}"
        )

    async def _request_with_retry(
        self, request_data: RequestData
    ) -> tuple[httpx.Response, dict[str, Any] | None, int]:
        """Send a request, retrying transient failures as configured.

        Returns:
            tuple[httpx.Response, dict[str, Any] | None, int]: The HTTP
                response, the parsed document and the number of attempts made.
        """
        retry_strategy = AsyncRetrying(
            stop=stop_after_attempt(self.settings.max_retries + 1),
            wait=wait_exponential(multiplier=self.settings.backoff_factor),
            retry=self._should_retry_request,
            reraise=True,
            before_sleep=self._before_retry_sleep,
        )
        response, document = await retry_strategy(
            self._execute_single_request, request_data
        )
        return response, document, retry_strategy.statistics["attempt_number"]

    async def read(
        self,
        url: str,
        *,
        method: str = "GET",
        body: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> RawResponse:
        """Perform one JSON:API request.

        Args:
            url: Absolute URL including the query string.
            method: HTTP method (GET, POST, PATCH, DELETE, ...).
            body: JSON-serializable request body.
            headers: Per-request headers; they override ``default_headers``.

        Returns:
            RawResponse: The outcome. HTTP errors and malformed bodies are
                reported through ``error``.

        Raises:
            TimeoutError: If the request times out (after retries).
            NetworkError: If the connection fails (after retries).
        """
        request_headers = {**self.settings.default_headers, **(headers or {})}
        request_data = RequestData(
            method=method.upper(),
            url=url,
            json_data=body,
            headers=request_headers,
        )

        try:
            response, document, attempts = await self._request_with_retry(
                request_data
            )
        except (TransportError, MalformedResponseError) as e:
            logger.info(f"{method.upper()} {url} failed: {e.message}")
            status = e.response.status_code if e.response is not None else 0
            return RawResponse(
                status=status,
                headers=e.response.headers if e.response is not None else None,
                request_headers=request_data.headers,
                error=e,
            )

        logger.debug(f"{method.upper()} {url} completed after {attempts} attempt(s)")
        return RawResponse(
            status=response.status_code,
            data=document,
            headers=response.headers,
            request_headers=request_data.headers,
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this transport created it."""
        if self._should_close_client and not self._http_client.is_closed:
            await self._http_client.aclose()
            logger.info(f"HttpTransport internal HTTP client closed. ID: {id(self)}.")

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object | None,
    ) -> None:
        await self.aclose()
