from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Self

import aiohttp
from yarl import URL

if TYPE_CHECKING:
    from types import TracebackType


@dataclass
class FakeResponse:
    status: int = 200
    json_data: Any = None
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)
    method: str = "GET"
    url: str = "http://test"
    delay: float = 0.0
    json_error: Exception | None = None

    def __post_init__(self) -> None:
        self.request_info = aiohttp.RequestInfo(
            url=URL(self.url),
            method=self.method,
            headers={},
            real_url=URL(self.url),
        )
        self.history = ()

    async def json(self, **_kwargs: Any) -> Any:
        if self.json_error is not None:
            raise self.json_error
        return self.json_data

    async def read(self) -> bytes:
        return self.body

    async def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    async def __aenter__(self) -> Self:
        # Yield to the loop like a real request would.
        await asyncio.sleep(self.delay)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        return False


class FakeSession:
    """Queue-backed stand-in for aiohttp.ClientSession that records requests."""

    def __init__(
        self,
        *,
        get_responses: list[FakeResponse | Exception] | None = None,
    ) -> None:
        self._get_responses = list(get_responses or [])
        self.requests: list[tuple[str, str, dict[str, Any]]] = []

    @property
    def urls(self) -> list[str]:
        return [url for _method, url, _kwargs in self.requests]

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.requests.append(("GET", url, kwargs))
        return self._next(self._get_responses)

    def queue(self, *responses: FakeResponse | Exception) -> None:
        self._get_responses.extend(responses)

    @staticmethod
    def _next(queue: list[FakeResponse | Exception]) -> FakeResponse:
        if not queue:
            msg = "No fake responses available"
            raise AssertionError(msg)
        response = queue.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def tilejson(
    *,
    minzoom: int = 3,
    maxzoom: int = 16,
    template: str = "https://tiles.test/tiles/{z}/{x}/{y}.mvt",
) -> dict[str, Any]:
    return {
        "tilejson": "2.2.0",
        "tiles": [template],
        "minzoom": minzoom,
        "maxzoom": maxzoom,
        "attribution": "© Test",
    }


class RangeSession:
    """Serves byte ranges of one in-memory file like a static CDN would."""

    def __init__(
        self,
        data: bytes,
        *,
        status: int | None = None,
        honor_range: bool = True,
        error: Exception | None = None,
    ) -> None:
        self.data = data
        self.status = status
        self.honor_range = honor_range
        self.error = error
        self.requests: list[tuple[str, str, dict[str, Any]]] = []

    @property
    def urls(self) -> list[str]:
        return [url for _method, url, _kwargs in self.requests]

    @property
    def ranges(self) -> list[str | None]:
        return [
            kwargs.get("headers", {}).get("Range") for _m, _u, kwargs in self.requests
        ]

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.requests.append(("GET", url, kwargs))
        if self.error is not None:
            raise self.error
        if self.status is not None:
            return FakeResponse(status=self.status, url=url)
        header = kwargs.get("headers", {}).get("Range")
        if header is None or not self.honor_range:
            return FakeResponse(status=200, body=self.data, url=url)
        start, end = header.removeprefix("bytes=").split("-")
        body = self.data[int(start) : int(end) + 1]
        return FakeResponse(status=206, body=body, url=url)
