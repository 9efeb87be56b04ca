"""
Coverage tile-grid layer.

One CoverageGridLayer per provider plugs into a map engine's tile grid. The
engine asks for a tile with ``create_tile(coords, done)``; the layer returns
a transparent surface immediately and fills it on the running event loop.
``done(error, surface)`` is always called exactly once per request:

    REQUESTED -> RENDERING -> DELIVERED
              -> OUT_OF_RANGE            (blank, no request made)
              -> FAILED                  (blank, done() gets the error;
                                          also on cancellation)

The layer holds the map engine by composition through the small TileGrid
protocol rather than subclassing any engine type.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Protocol

import config
from core.exceptions import MetadataError, TileTransportError
from coverage_layers.models import (
    LineStyle,
    TileCoordinate,
    TileData,
    TileEmpty,
    TileJSONMetadata,
    TileOutOfBounds,
    TileState,
    TileSurface,
    TileTransportFailure,
)
from coverage_layers.providers import (
    ProviderConfig,
    ProviderKind,
    RenderMode,
    get_provider,
)
from coverage_layers.services.metadata_service import MetadataResolver
from coverage_layers.services.tile_fetcher import TileFetcher
from coverage_layers.services.tile_renderer import decode_and_render, render_raster

if TYPE_CHECKING:
    from collections.abc import Callable

    DoneCallback = Callable[[Exception | None, TileSurface], None]

logger = logging.getLogger(__name__)


class TileGrid(Protocol):
    """The part of a map engine's tile grid the layer talks back to."""

    def redraw(self) -> None: ...


class CoverageGridLayer:
    def __init__(
        self,
        provider: ProviderKind | str | ProviderConfig,
        *,
        style: LineStyle | None = None,
        tile_size: int = config.COVERAGE_TILE_SIZE,
        resolver: MetadataResolver | None = None,
        fetcher: TileFetcher | None = None,
        session: Any | None = None,
    ) -> None:
        self.provider = get_provider(provider)
        self.style = style or self.provider.style
        self.tile_size = tile_size
        if fetcher is None:
            fetcher = TileFetcher(
                resolver=resolver or MetadataResolver(session=session),
                session=session,
            )
        self.fetcher = fetcher
        self.resolver = fetcher.resolver
        self._grid: TileGrid | None = None
        self._tasks: set[asyncio.Task[TileSurface]] = set()

    def __repr__(self) -> str:
        return f"CoverageGridLayer(provider={self.provider.kind.value!r})"

    @property
    def attribution(self) -> str:
        metadata = self.resolver.peek(self.provider)
        if metadata is not None and metadata.attribution:
            return metadata.attribution
        return self.provider.attribution

    @property
    def pending_tiles(self) -> int:
        return len(self._tasks)

    # --- map engine integration -------------------------------------------

    def add_to(self, grid: TileGrid) -> CoverageGridLayer:
        self._grid = grid
        return self

    def remove(self) -> CoverageGridLayer:
        self._grid = None
        return self

    def redraw(self) -> None:
        if self._grid is not None:
            self._grid.redraw()

    async def initialize(self) -> TileJSONMetadata:
        """Resolve zoom bounds before tiles are requested, then redraw."""
        metadata = await self._ensure_metadata()
        self.redraw()
        return metadata

    def get_metadata(self) -> TileJSONMetadata | None:
        """Metadata the resolver currently holds for this provider, if any."""
        return self.resolver.peek(self.provider)

    def set_style(
        self,
        *,
        color: str | None = None,
        weight: float | None = None,
        opacity: float | None = None,
    ) -> CoverageGridLayer:
        self.style = self.style.merged(color=color, weight=weight, opacity=opacity)
        self.redraw()
        return self

    def create_tile(
        self,
        coords: TileCoordinate | tuple[int, int, int],
        done: DoneCallback,
    ) -> TileSurface:
        """Return a blank surface now and fill it asynchronously.

        Must be called from a running event loop.
        """
        if not isinstance(coords, TileCoordinate):
            coords = TileCoordinate(*coords)
        surface = TileSurface.blank(coords, self.tile_size)
        task = asyncio.get_running_loop().create_task(self._render(surface, done))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return surface

    async def load_tile(self, coords: TileCoordinate | tuple[int, int, int]) -> TileSurface:
        """Run the full tile pipeline and return the finished surface."""
        if not isinstance(coords, TileCoordinate):
            coords = TileCoordinate(*coords)
        surface = TileSurface.blank(coords, self.tile_size)
        return await self._render(surface, None)

    # --- pipeline ----------------------------------------------------------

    async def _ensure_metadata(self) -> TileJSONMetadata:
        try:
            return await self.resolver.get_metadata(self.provider)
        except MetadataError as e:
            logger.warning(
                "%s metadata unavailable, assuming zoom bounds [%s, %s]: %s",
                self.provider.kind,
                self.provider.min_zoom,
                self.provider.max_zoom,
                e.message,
            )
            # Not stored, so a later tile retries the metadata request.
            return self.provider.default_metadata()

    async def _render(
        self, surface: TileSurface, done: DoneCallback | None
    ) -> TileSurface:
        error: Exception | None = None
        coords = surface.coords
        surface.state = TileState.RENDERING
        try:
            metadata = await self._ensure_metadata()
            outcome = await self.fetcher.fetch_tile(
                self.provider, coords.x, coords.y, coords.z, metadata=metadata
            )
            match outcome:
                case TileData(content=content):
                    if self.provider.render_mode is RenderMode.VECTOR:
                        surface.strokes = decode_and_render(
                            content, surface.image, self.style
                        )
                    else:
                        render_raster(content, surface.image)
                    surface.state = TileState.DELIVERED
                case TileEmpty():
                    surface.state = TileState.DELIVERED
                case TileOutOfBounds():
                    surface.state = TileState.OUT_OF_RANGE
                case TileTransportFailure(message=message, status=status):
                    error = TileTransportError(
                        message,
                        {"status": status, "z": coords.z, "x": coords.x, "y": coords.y},
                    )
                    surface.state = TileState.FAILED
        except asyncio.CancelledError:
            surface.state = TileState.FAILED
            self._finish(
                surface,
                done,
                TileTransportError(
                    "Tile request cancelled",
                    {"z": coords.z, "x": coords.x, "y": coords.y},
                ),
            )
            raise
        except Exception as e:
            # A tile must always reach done(); never let one escape the task.
            logger.exception(
                "Unexpected failure rendering %s tile z=%s x=%s y=%s",
                self.provider.kind,
                coords.z,
                coords.x,
                coords.y,
            )
            error = e
            surface.state = TileState.FAILED

        self._finish(surface, done, error)
        return surface

    @staticmethod
    def _finish(
        surface: TileSurface, done: DoneCallback | None, error: Exception | None
    ) -> None:
        surface.error = error
        if done is None:
            return
        try:
            done(error, surface)
        except Exception:
            logger.exception("Tile completion callback raised")


def create_coverage_layer(
    provider: ProviderKind | str | ProviderConfig, **kwargs: Any
) -> CoverageGridLayer:
    """Factory for a provider's coverage layer."""
    return CoverageGridLayer(provider, **kwargs)
