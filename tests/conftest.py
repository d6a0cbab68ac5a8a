"""Shared fixtures: an in-memory transport and sample JSON:API documents."""

import asyncio
import copy
from dataclasses import dataclass
from typing import Any

import httpx
import pytest

from recordfabric.config import ClientSettings, get_settings
from recordfabric.exceptions import MalformedResponseError, TransportError
from recordfabric.store import Store
from recordfabric.types import RawResponse

BASE_URL = "https://api.test"


@dataclass
class Call:
    method: str
    url: str
    body: Any
    headers: dict[str, str]

    @property
    def params(self) -> httpx.QueryParams:
        return httpx.URL(self.url).params


class FakeTransport:
    """Transport double serving canned RawResponses.

    Responses are registered per (method, url). A URL registered without a
    query string also matches requests to the same path with any query.
    Several responses for one route are served in order; the last one is
    reused for any further request.
    """

    def __init__(self, settings: ClientSettings | None = None):
        self.settings = settings or ClientSettings(_env_file=None, base_url=BASE_URL)
        self.routes: dict[tuple[str, str], list[RawResponse]] = {}
        self.calls: list[Call] = []

    @staticmethod
    def _route(method: str, url: str) -> tuple[str, str]:
        return method.upper(), str(httpx.URL(url))

    def add(
        self,
        url: str,
        document: dict[str, Any] | None = None,
        *,
        method: str = "GET",
        status: int = 200,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.routes.setdefault(self._route(method, url), []).append(
            RawResponse(
                status=status,
                data=copy.deepcopy(document),
                headers=headers or {"content-type": "application/vnd.api+json"},
            )
        )

    def add_status(self, url: str, status: int, *, method: str = "GET") -> None:
        self.routes.setdefault(self._route(method, url), []).append(
            RawResponse(status=status, error=TransportError(status))
        )

    def add_malformed(self, url: str, *, method: str = "GET") -> None:
        self.routes.setdefault(self._route(method, url), []).append(
            RawResponse(
                status=200,
                error=MalformedResponseError("Response body is not valid JSON"),
            )
        )

    def requests_to(self, url: str, method: str = "GET") -> list[Call]:
        path = url.split("?")[0]
        return [
            call
            for call in self.calls
            if call.method == method and call.url.split("?")[0] == path
        ]

    async def read(
        self,
        url: str,
        *,
        method: str = "GET",
        body: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> RawResponse:
        request_headers = {**self.settings.default_headers, **(headers or {})}
        self.calls.append(Call(method.upper(), url, body, request_headers))
        await asyncio.sleep(0)

        queue = self.routes.get(self._route(method, url))
        if not queue:
            path = url.split("?")[0]
            queue = self.routes.get(self._route(method, path))
        if not queue:
            raise AssertionError(f"No response registered for {method} {url}")
        raw = queue.pop(0) if len(queue) > 1 else queue[0]
        return raw.model_copy(update={"request_headers": request_headers})


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def store(transport: FakeTransport) -> Store:
    return Store(transport)


@pytest.fixture
def event_document() -> dict[str, Any]:
    return {
        "data": {
            "id": "12345",
            "type": "event",
            "attributes": {"title": "Test 1", "date": "2017-03-19"},
            "relationships": {
                "image": {
                    "data": {"type": "image", "id": "1"},
                    "links": {"related": f"{BASE_URL}/images/1"},
                },
                "organizers": {
                    "data": [
                        {"type": "person", "id": "7"},
                        {"type": "person", "id": "8"},
                    ]
                },
            },
            "links": {"self": f"{BASE_URL}/event/12345"},
            "meta": {"revision": 3},
        },
        "included": [
            {
                "id": "1",
                "type": "image",
                "attributes": {"name": "header.png"},
            }
        ],
        "meta": {"generated": "now"},
        "jsonapi": {"version": "1.0"},
    }


def _event(id: str, title: str) -> dict[str, Any]:
    return {"id": id, "type": "event", "attributes": {"title": title}}


@pytest.fixture
def events_page_1() -> dict[str, Any]:
    return {
        "data": [_event("1", "Test 1"), _event("2", "Test 2"), _event("3", "Test 3")],
        "links": {
            "self": f"{BASE_URL}/event",
            "next": f"{BASE_URL}/event?page=2",
            "last": f"{BASE_URL}/event?page=2",
        },
        "meta": {"total": 4},
    }


@pytest.fixture
def events_page_2() -> dict[str, Any]:
    return {
        "data": [_event("4", "Test 4")],
        "links": {
            "self": f"{BASE_URL}/event?page=2",
            "prev": f"{BASE_URL}/event",
            "first": f"{BASE_URL}/event",
        },
    }


@pytest.fixture
def make_transport():
    """Build a FakeTransport with custom settings."""

    def factory(**settings: Any) -> FakeTransport:
        settings.setdefault("base_url", BASE_URL)
        return FakeTransport(ClientSettings(_env_file=None, **settings))

    return factory
