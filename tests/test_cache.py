"""Tests for request de-duplication in the store."""

import asyncio

import pytest
from cachetools import LRUCache, TTLCache

from recordfabric.exceptions import DocumentError, MalformedResponseError, TransportError
from recordfabric.record import Record
from recordfabric.store import Store
from recordfabric.types import RequestOptions

EVENT_URL = "https://api.test/event/12345"
EVENTS_URL = "https://api.test/event"


@pytest.mark.asyncio
async def test_fetch_is_cached(store, transport, event_document):
    transport.add(EVENT_URL, event_document)

    first = await store.fetch("event", "12345")
    second = await store.fetch("event", "12345")

    assert second is first
    assert len(transport.calls) == 1


@pytest.mark.asyncio
async def test_concurrent_fetches_share_one_request(store, transport, event_document):
    transport.add(EVENT_URL, event_document)

    responses = await asyncio.gather(*(store.fetch("event", "12345") for _ in range(4)))

    assert all(response is responses[0] for response in responses)
    assert len(transport.calls) == 1


@pytest.mark.asyncio
async def test_fetch_all_is_cached(store, transport, events_page_1):
    transport.add(EVENTS_URL, events_page_1)

    first = await store.fetch_all("event")
    second = await store.fetch_all("event")

    assert second is first
    assert len(transport.calls) == 1


@pytest.mark.asyncio
async def test_different_options_are_cached_separately(store, transport, events_page_1):
    transport.add(EVENTS_URL, events_page_1)

    plain = await store.fetch_all("event")
    filtered = await store.fetch_all("event", options=RequestOptions(filter={"name": "a"}))
    with_headers = await store.fetch_all(
        "event", options=RequestOptions(headers={"x-tenant": "a"})
    )

    assert plain is not filtered
    assert with_headers is not plain
    assert len(transport.calls) == 3


@pytest.mark.asyncio
async def test_equal_options_share_the_cache(store, transport, events_page_1):
    transport.add(EVENTS_URL, events_page_1)

    first = await store.fetch_all("event", options=RequestOptions(sort=["a", "b"]))
    second = await store.fetch_all("event", options=RequestOptions(sort=["a", "b"]))

    assert first is second
    assert len(transport.calls) == 1


@pytest.mark.asyncio
async def test_force_bypasses_and_refreshes(store, transport, event_document):
    transport.add(EVENT_URL, event_document)

    first = await store.fetch("event", "12345")
    forced = await store.fetch("event", "12345", force=True)
    again = await store.fetch("event", "12345")

    assert forced is not first
    assert again is forced
    assert forced.data is first.data
    assert len(transport.calls) == 2


@pytest.mark.asyncio
async def test_fetch_all_force(store, transport, events_page_1):
    transport.add(EVENTS_URL, events_page_1)

    first = await store.fetch_all("event")
    forced = await store.fetch_all("event", force=True)

    assert forced is not first
    assert len(transport.calls) == 2


@pytest.mark.asyncio
async def test_remove_all_clears_cache(store, transport, event_document, events_page_1):
    transport.add(EVENT_URL, event_document)
    transport.add(EVENTS_URL, events_page_1)

    await store.fetch("event", "12345")
    await store.fetch_all("event")
    store.remove_all("event")
    await store.fetch("event", "12345")
    await store.fetch_all("event")

    assert len(transport.requests_to(EVENT_URL)) == 2
    assert len(transport.requests_to(EVENTS_URL)) == 2


@pytest.mark.asyncio
async def test_remove_all_clears_cached_requests_to_the_endpoint(
    store, transport, events_page_1
):
    transport.add(EVENTS_URL, events_page_1)

    first = await store.request("event")
    store.remove_all("event")
    second = await store.request("event")

    assert second is not first
    assert len(transport.requests_to(EVENTS_URL)) == 2
    assert store.find_all("event") == second.data


@pytest.mark.asyncio
async def test_remove_all_clears_cached_requests_holding_the_type(
    store, transport, events_page_1
):
    search_url = "https://api.test/search"
    transport.add(search_url, events_page_1)

    await store.request("search")
    store.remove_all("person")
    await store.request("search")
    assert len(transport.requests_to(search_url)) == 1

    store.remove_all("event")
    await store.request("search")
    assert len(transport.requests_to(search_url)) == 2


@pytest.mark.asyncio
async def test_cancelled_shared_request_is_evicted(store, transport, event_document):
    transport.add(EVENT_URL, event_document)

    waiter = asyncio.ensure_future(store.fetch("event", "12345"))
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    shared = next(iter(store._cache.values()))
    shared.cancel()

    with pytest.raises(asyncio.CancelledError):
        await waiter
    assert not store._cache

    response = await store.fetch("event", "12345")
    assert response.data.id == "12345"
    assert len(transport.requests_to(EVENT_URL)) == 2


@pytest.mark.asyncio
async def test_remove_all_keeps_other_types(store, transport, event_document):
    transport.add(EVENT_URL, event_document)
    transport.add("https://api.test/image/1", {"data": {"type": "image", "id": "1"}})

    await store.fetch("event", "12345")
    image = await store.fetch("image", "1")
    store.remove_all("event")

    assert await store.fetch("image", "1") is image


@pytest.mark.asyncio
async def test_remove_clears_fetch_of_that_record(store, transport, event_document):
    transport.add(EVENT_URL, event_document)

    first = await store.fetch("event", "12345")
    store.remove("event", "12345")
    second = await store.fetch("event", "12345")

    assert second is not first
    assert len(transport.calls) == 2


@pytest.mark.asyncio
async def test_store_without_cache(transport, event_document, events_page_1):
    store = Store(transport, cache=False)
    transport.add(EVENT_URL, event_document)
    transport.add(EVENTS_URL, events_page_1)

    assert await store.fetch("event", "12345") is not await store.fetch("event", "12345")
    assert await store.fetch_all("event") is not await store.fetch_all("event")
    assert len(transport.calls) == 4


@pytest.mark.asyncio
async def test_caching_disabled_in_settings(make_transport, event_document):
    transport = make_transport(enable_caching=False)
    store = Store(transport)
    transport.add(EVENT_URL, event_document)

    first = await store.fetch("event", "12345")
    second = await store.fetch("event", "12345")

    assert first is not second
    # The identity map still holds a single instance.
    assert first.data is second.data


@pytest.mark.asyncio
async def test_cache_flag_overrides_settings(make_transport, event_document):
    transport = make_transport(enable_caching=False)
    store = Store(transport, cache=True)
    transport.add(EVENT_URL, event_document)

    assert await store.fetch("event", "12345") is await store.fetch("event", "12345")


def test_cache_backend_follows_settings(make_transport):
    assert isinstance(Store(make_transport())._cache, LRUCache)

    ttl_store = Store(make_transport(cache_ttl_seconds=60, cache_max_size=10))
    assert isinstance(ttl_store._cache, TTLCache)
    assert ttl_store._cache.maxsize == 10


@pytest.mark.asyncio
async def test_document_errors_are_not_cached(store, transport, event_document):
    transport.add(EVENT_URL, {"errors": [{"status": "400", "title": "Bad"}]})
    transport.add(EVENT_URL, event_document)

    with pytest.raises(DocumentError):
        await store.fetch("event", "12345")
    response = await store.fetch("event", "12345")

    assert response.data["title"] == "Test 1"
    assert len(transport.calls) == 2


@pytest.mark.asyncio
async def test_http_errors_are_not_cached(store, transport, events_page_1):
    transport.add_status(EVENTS_URL, 500)
    transport.add(EVENTS_URL, events_page_1)

    with pytest.raises(TransportError):
        await store.fetch_all("event")
    response = await store.fetch_all("event")

    assert len(response.data) == 3
    assert len(transport.calls) == 2


@pytest.mark.asyncio
async def test_malformed_responses_are_not_cached(store, transport, events_page_1):
    transport.add_malformed(EVENTS_URL)
    transport.add(EVENTS_URL, events_page_1)

    with pytest.raises(MalformedResponseError):
        await store.fetch_all("event")
    await store.fetch_all("event")

    assert len(transport.calls) == 2


@pytest.mark.asyncio
async def test_concurrent_callers_all_see_the_error(store, transport):
    transport.add_status(EVENT_URL, 503)

    results = await asyncio.gather(
        store.fetch("event", "12345"),
        store.fetch("event", "12345"),
        return_exceptions=True,
    )

    assert all(isinstance(result, TransportError) for result in results)
    assert results[0] is results[1]
    assert len(transport.calls) == 1


@pytest.mark.asyncio
async def test_cancelled_caller_does_not_cancel_shared_fetch(
    store, transport, event_document
):
    transport.add(EVENT_URL, event_document)

    waiter = asyncio.ensure_future(store.fetch("event", "12345"))
    await asyncio.sleep(0)
    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter

    response = await store.fetch("event", "12345")
    assert response.data.id == "12345"
    assert len(transport.calls) == 1


@pytest.mark.asyncio
async def test_request_caches_get_only(store, transport, event_document):
    transport.add("https://api.test/event/1", event_document)
    transport.add("https://api.test/event/1", event_document, method="PATCH")

    assert await store.request("event/1") is await store.request("event/1")
    first = await store.request("event/1", "PATCH", {"data": {"type": "event"}})
    second = await store.request("event/1", "PATCH", {"data": {"type": "event"}})

    assert first is not second
    assert len(transport.calls) == 3


@pytest.mark.asyncio
async def test_clear_cache(store, transport, event_document):
    transport.add(EVENT_URL, event_document)

    first = await store.fetch("event", "12345")
    store.clear_cache()

    assert await store.fetch("event", "12345") is not first


@pytest.mark.asyncio
async def test_saving_a_record_does_not_touch_other_entries(store, transport, events_page_1):
    transport.add(EVENTS_URL, events_page_1)
    transport.add(
        EVENTS_URL,
        {"data": {"type": "event", "id": "9", "attributes": {"title": "New"}}},
        method="POST",
        status=201,
    )

    listing = await store.fetch_all("event")
    await store.save(Record({"type": "event", "title": "New"}))

    assert await store.fetch_all("event") is listing
