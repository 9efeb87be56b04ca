import asyncio
import json

import aiohttp
import pytest
from http_fakes import FakeResponse, FakeSession, tilejson

from core.exceptions import InvalidMetadataError, MetadataFetchError
from coverage_layers.services.metadata_service import MetadataResolver


@pytest.mark.asyncio
async def test_metadata_is_fetched_once_and_cached() -> None:
    session = FakeSession(get_responses=[FakeResponse(json_data=tilejson())])
    resolver = MetadataResolver(session=session)

    first = await resolver.get_metadata("apple")
    second = await resolver.get_metadata("apple")

    assert first is second
    assert first.zoom_limits() == (3, 16)
    assert len(session.requests) == 1
    _method, url, kwargs = session.requests[0]
    assert url.endswith("tiles.json")
    assert kwargs["headers"] == {"Accept": "application/json"}
    assert resolver.peek("apple") is first


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_request() -> None:
    session = FakeSession(
        get_responses=[FakeResponse(json_data=tilejson(), delay=0.01)],
    )
    resolver = MetadataResolver(session=session)

    results = await asyncio.gather(
        resolver.get_metadata("naver"),
        resolver.get_metadata("naver"),
        resolver.get_metadata("naver"),
    )

    assert len(session.requests) == 1
    assert results[0] is results[1] is results[2]


@pytest.mark.asyncio
async def test_cancelled_caller_does_not_cancel_shared_request() -> None:
    session = FakeSession(
        get_responses=[FakeResponse(json_data=tilejson(), delay=0.02)],
    )
    resolver = MetadataResolver(session=session)

    cancelled = asyncio.ensure_future(resolver.get_metadata("apple"))
    survivor = asyncio.ensure_future(resolver.get_metadata("apple"))
    await asyncio.sleep(0)
    cancelled.cancel()

    metadata = await survivor

    assert cancelled.cancelled()
    assert metadata.zoom_limits() == (3, 16)
    assert resolver.peek("apple") is metadata
    assert len(session.requests) == 1


@pytest.mark.asyncio
async def test_clear_cache_forces_a_new_request() -> None:
    session = FakeSession(
        get_responses=[
            FakeResponse(json_data=tilejson(maxzoom=16)),
            FakeResponse(json_data=tilejson(maxzoom=18)),
        ],
    )
    resolver = MetadataResolver(session=session)

    assert (await resolver.get_metadata("apple")).maxzoom == 16
    resolver.clear_cache("apple")
    assert resolver.peek("apple") is None
    assert (await resolver.get_metadata("apple")).maxzoom == 18
    assert len(session.requests) == 2


@pytest.mark.asyncio
async def test_clear_cache_during_fetch_does_not_repopulate() -> None:
    session = FakeSession(
        get_responses=[FakeResponse(json_data=tilejson(), delay=0.01)],
    )
    resolver = MetadataResolver(session=session)

    pending = asyncio.ensure_future(resolver.get_metadata("apple"))
    await asyncio.sleep(0)
    resolver.clear_cache()
    await pending

    assert resolver.peek("apple") is None


@pytest.mark.asyncio
async def test_http_error_raises_and_allows_retry() -> None:
    session = FakeSession(
        get_responses=[
            FakeResponse(status=503),
            FakeResponse(json_data=tilejson()),
        ],
    )
    resolver = MetadataResolver(session=session)

    with pytest.raises(MetadataFetchError) as raised:
        await resolver.get_metadata("apple")
    assert raised.value.status == 503
    assert resolver.peek("apple") is None

    metadata = await resolver.get_metadata("apple")
    assert metadata.minzoom == 3
    assert len(session.requests) == 2


@pytest.mark.asyncio
async def test_network_error_is_wrapped() -> None:
    session = FakeSession(get_responses=[aiohttp.ClientConnectionError("reset")])
    resolver = MetadataResolver(session=session)

    with pytest.raises(MetadataFetchError) as raised:
        await resolver.get_metadata("apple")
    assert raised.value.status is None


@pytest.mark.asyncio
async def test_unparseable_json_is_a_fetch_error() -> None:
    session = FakeSession(
        get_responses=[
            FakeResponse(json_error=json.JSONDecodeError("Expecting value", "<", 0)),
        ],
    )
    resolver = MetadataResolver(session=session)

    with pytest.raises(MetadataFetchError, match="not valid JSON"):
        await resolver.get_metadata("apple")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"tilejson": "2.2.0", "tiles": [], "minzoom": 3, "maxzoom": 16},
        {"tilejson": "2.2.0", "tiles": ["t"], "minzoom": None, "maxzoom": 16},
        ["not", "an", "object"],
    ],
)
async def test_invalid_payload_raises_invalid_metadata(payload) -> None:
    session = FakeSession(get_responses=[FakeResponse(json_data=payload)])
    resolver = MetadataResolver(session=session)

    with pytest.raises(InvalidMetadataError, match="Invalid TileJSON"):
        await resolver.get_metadata("apple")
    assert resolver.peek("apple") is None


@pytest.mark.asyncio
async def test_providers_without_endpoint_use_static_metadata() -> None:
    session = FakeSession()
    resolver = MetadataResolver(session=session)

    metadata = await resolver.get_metadata("bing")

    assert session.requests == []
    assert metadata.zoom_limits() == (0, 19)
    assert "{q}" in metadata.tile_url_template


@pytest.mark.asyncio
async def test_zoom_helpers() -> None:
    session = FakeSession(get_responses=[FakeResponse(json_data=tilejson())])
    resolver = MetadataResolver(session=session)

    assert await resolver.get_zoom_limits("apple") == (3, 16)
    assert await resolver.is_zoom_level_valid("apple", 10)
    assert not await resolver.is_zoom_level_valid("apple", 20)
    assert len(session.requests) == 1


@pytest.mark.asyncio
async def test_resolvers_do_not_share_state() -> None:
    session_a = FakeSession(get_responses=[FakeResponse(json_data=tilejson())])
    session_b = FakeSession(get_responses=[FakeResponse(json_data=tilejson(maxzoom=12))])

    a = await MetadataResolver(session=session_a).get_metadata("apple")
    b = await MetadataResolver(session=session_b).get_metadata("apple")

    assert a.maxzoom == 16
    assert b.maxzoom == 12
