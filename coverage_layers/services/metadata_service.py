"""TileJSON metadata resolver.

Each provider's TileJSON is fetched at most once per resolver and kept until
``clear_cache`` is called. Concurrent callers for the same provider share a
single in-flight request.
Providers backed by a PMTiles archive take their TileJSON from the archive
header; the resolver also owns those archive readers.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp
import pydantic

from core.constants import JSON_CONTENT_TYPE
from core.exceptions import InvalidMetadataError, MetadataFetchError
from core.http.session import get_session
from coverage_layers.models import TileJSONMetadata
from coverage_layers.providers import ProviderConfig, ProviderKind, get_provider
from coverage_layers.services.pmtiles_source import PMTilesSource

logger = logging.getLogger(__name__)


class MetadataResolver:
    """Per-provider TileJSON cache with single-flight fetching.

    The resolver owns its cache, so independent instances (one per map, one
    per test) never see each other's state.
    """

    def __init__(self, session: Any | None = None) -> None:
        self._session = session
        self._cache: dict[ProviderConfig, TileJSONMetadata] = {}
        self._in_flight: dict[ProviderConfig, asyncio.Task[TileJSONMetadata]] = {}
        # Bumped by clear_cache so a fetch started before the clear cannot
        # repopulate the cache afterwards.
        self._generation: dict[ProviderConfig, int] = {}
        self._archives: dict[ProviderConfig, PMTilesSource] = {}

    async def _get_session(self) -> Any:
        if self._session is not None:
            return self._session
        return await get_session()

    def archive(self, provider: ProviderKind | str | ProviderConfig) -> PMTilesSource:
        """Return this resolver's reader for the provider's PMTiles archive."""
        cfg = get_provider(provider)
        if cfg.archive_url is None:
            msg = f"{cfg.kind} has no PMTiles archive configured"
            raise ValueError(msg)
        source = self._archives.get(cfg)
        if source is None:
            source = PMTilesSource(cfg.archive_url, session=self._session)
            self._archives[cfg] = source
        return source

    def peek(
        self, provider: ProviderKind | str | ProviderConfig
    ) -> TileJSONMetadata | None:
        """Return cached metadata without doing any I/O."""
        return self._cache.get(get_provider(provider))

    async def get_metadata(
        self, provider: ProviderKind | str | ProviderConfig
    ) -> TileJSONMetadata:
        cfg = get_provider(provider)

        cached = self._cache.get(cfg)
        if cached is not None:
            return cached

        if cfg.metadata_url is None and cfg.archive_url is None:
            metadata = cfg.default_metadata()
            self._cache[cfg] = metadata
            return metadata

        task = self._in_flight.get(cfg)
        if task is None:
            task = asyncio.ensure_future(
                self._fetch_and_cache(cfg, self._generation.get(cfg, 0))
            )
            self._in_flight[cfg] = task
        else:
            logger.debug("Joining in-flight TileJSON request for %s", cfg.kind)

        # Shielded: one cancelled caller must not cancel the shared request.
        return await asyncio.shield(task)

    async def _fetch_and_cache(
        self, cfg: ProviderConfig, generation: int
    ) -> TileJSONMetadata:
        current = asyncio.current_task()
        try:
            metadata = await self._fetch(cfg)
        except (MetadataFetchError, InvalidMetadataError) as e:
            logger.warning("Failed to load %s TileJSON: %s", cfg.kind, e.message)
            raise
        finally:
            if self._in_flight.get(cfg) is current:
                del self._in_flight[cfg]

        if self._generation.get(cfg, 0) == generation:
            self._cache[cfg] = metadata
        return metadata

    async def _fetch(self, cfg: ProviderConfig) -> TileJSONMetadata:
        if cfg.archive_url is not None:
            return await self.archive(cfg).tilejson()

        url = cfg.metadata_url
        session = await self._get_session()
        try:
            async with session.get(
                url, headers={"Accept": JSON_CONTENT_TYPE}
            ) as response:
                if response.status < 200 or response.status >= 300:
                    msg = f"TileJSON request failed: {response.status}"
                    raise MetadataFetchError(
                        msg, {"status": response.status, "url": url}
                    )
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            msg = f"TileJSON request failed: {e}"
            raise MetadataFetchError(msg, {"url": url}) from e
        except ValueError as e:
            msg = f"TileJSON response is not valid JSON: {e}"
            raise MetadataFetchError(msg, {"url": url}) from e

        return self._validate(data, url)

    @staticmethod
    def _validate(data: Any, url: str | None) -> TileJSONMetadata:
        if not isinstance(data, dict):
            msg = "Invalid TileJSON: expected a JSON object"
            raise InvalidMetadataError(msg, {"url": url})
        try:
            return TileJSONMetadata.model_validate(data)
        except pydantic.ValidationError as e:
            fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
            msg = f"Invalid TileJSON: bad or missing {', '.join(fields) or 'fields'}"
            raise InvalidMetadataError(msg, {"url": url, "errors": e.errors()}) from e

    def clear_cache(
        self, provider: ProviderKind | str | ProviderConfig | None = None
    ) -> None:
        """Forget cached and in-flight metadata for one provider, or all."""
        targets = (
            [get_provider(provider)]
            if provider is not None
            else list(
                self._cache.keys() | self._in_flight.keys() | self._archives.keys()
            )
        )
        for cfg in targets:
            self._cache.pop(cfg, None)
            self._in_flight.pop(cfg, None)
            self._archives.pop(cfg, None)
            self._generation[cfg] = self._generation.get(cfg, 0) + 1

    async def is_zoom_level_valid(
        self, provider: ProviderKind | str | ProviderConfig, z: int
    ) -> bool:
        metadata = await self.get_metadata(provider)
        return metadata.contains_zoom(z)

    async def get_zoom_limits(
        self, provider: ProviderKind | str | ProviderConfig
    ) -> tuple[int, int]:
        metadata = await self.get_metadata(provider)
        return metadata.zoom_limits()
