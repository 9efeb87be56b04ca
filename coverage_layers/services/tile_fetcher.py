"""Per-tile HTTP fetcher for coverage tiles.

A fetch never raises: every result, including transport failures, is
reported as a TileFetchOutcome so one bad tile cannot abort the rest of the
visible map. There are no retries; panning or zooming requests fresh tiles.
Providers with a PMTiles archive are read by byte range from that archive
instead of the per-tile URL.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from core.exceptions import (
    InvalidMetadataError,
    MetadataError,
    OutOfBoundsZoom,
    TileDecodeError,
    TileTransportError,
)
from core.http.session import get_session
from coverage_layers.models import (
    TileData,
    TileEmpty,
    TileFetchOutcome,
    TileJSONMetadata,
    TileOutOfBounds,
    TileTransportFailure,
)
from coverage_layers.providers import ProviderConfig, ProviderKind, get_provider
from coverage_layers.services.metadata_service import MetadataResolver

logger = logging.getLogger(__name__)


class TileFetcher:
    def __init__(
        self,
        resolver: MetadataResolver | None = None,
        session: Any | None = None,
    ) -> None:
        self._session = session
        self.resolver = resolver or MetadataResolver(session=session)

    async def _get_session(self) -> Any:
        if self._session is not None:
            return self._session
        return await get_session()

    async def resolve_bounds(self, cfg: ProviderConfig) -> TileJSONMetadata:
        """Resolve metadata, assuming the provider defaults if that fails."""
        try:
            return await self.resolver.get_metadata(cfg)
        except MetadataError as e:
            logger.warning(
                "Using default zoom bounds [%s, %s] for %s: %s",
                cfg.min_zoom,
                cfg.max_zoom,
                cfg.kind,
                e.message,
            )
            return cfg.default_metadata()

    def build_tile_url(
        self,
        provider: ProviderKind | str | ProviderConfig,
        x: int,
        y: int,
        z: int,
        *,
        metadata: TileJSONMetadata | None = None,
    ) -> str:
        cfg = get_provider(provider)
        template = (
            metadata.tile_url_template if metadata is not None else cfg.tile_url_template
        )
        return cfg.format_url(template, x, y, z)

    async def fetch_tile(
        self,
        provider: ProviderKind | str | ProviderConfig,
        x: int,
        y: int,
        z: int,
        *,
        metadata: TileJSONMetadata | None = None,
    ) -> TileFetchOutcome:
        cfg = get_provider(provider)
        if metadata is None:
            metadata = await self.resolve_bounds(cfg)

        try:
            metadata.check_zoom(z)
        except OutOfBoundsZoom as e:
            logger.debug("Skipping %s tile z=%s x=%s y=%s: %s", cfg.kind, z, x, y, e)
            return TileOutOfBounds()

        if cfg.archive_url is not None:
            return await self._fetch_from_archive(cfg, x, y, z)

        url = self.build_tile_url(cfg, x, y, z, metadata=metadata)
        try:
            session = await self._get_session()
            async with session.get(url, headers={"Accept": cfg.accept}) as response:
                status = response.status
                if status == 204:
                    return TileEmpty()
                if status == 404:
                    return TileOutOfBounds()
                if not 200 <= status < 300:
                    logger.debug("%s tile %s returned HTTP %s", cfg.kind, url, status)
                    return TileTransportFailure(
                        f"Tile request failed: HTTP {status}", status=status
                    )
                body = await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            logger.debug("%s tile %s failed: %s", cfg.kind, url, e)
            return TileTransportFailure(f"Tile request failed: {e!r}")

        if not body:
            return TileEmpty()
        return TileData(bytes(body))

    async def _fetch_from_archive(
        self, cfg: ProviderConfig, x: int, y: int, z: int
    ) -> TileFetchOutcome:
        rx, ry = cfg.remap(x, y, z)
        archive = self.resolver.archive(cfg)
        try:
            data = await archive.get_tile(z, rx, ry)
        except TileTransportError as e:
            logger.debug(
                "%s archive tile z=%s x=%s y=%s failed: %s", cfg.kind, z, rx, ry, e
            )
            return TileTransportFailure(e.message, status=e.details.get("status"))
        except (TileDecodeError, InvalidMetadataError) as e:
            logger.warning(
                "Unreadable %s archive %s: %s", cfg.kind, archive.url, e.message
            )
            return TileTransportFailure(e.message)

        if not data:
            return TileEmpty()
        return TileData(data)
