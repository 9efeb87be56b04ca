"""
Provider registry for street-level imagery coverage tiles.

Every provider is served by the same fetch/render pipeline; what differs is
captured by a ProviderConfig: where tiles live (a URL template or a single
PMTiles archive), whether they are vector (MVT) or raster (PNG), how map
tile indices are remapped into the provider's own addressing, and the
default zoom bounds and style.
"""

from __future__ import annotations

import enum
from collections.abc import Callable
from dataclasses import dataclass, field

import config
from core.constants import MVT_CONTENT_TYPE, PNG_CONTENT_TYPE
from core.tiles import reproject_tile_to_alt_mercator, tile_to_quadkey
from coverage_layers.models import LineStyle, TileJSONMetadata

CoordinateTransform = Callable[[int, int, int], tuple[int, int]]


class ProviderKind(enum.StrEnum):
    GOOGLE = "google"
    BING = "bing"
    YANDEX = "yandex"
    APPLE = "apple"
    NAVER = "naver"
    JA = "ja"


class RenderMode(enum.StrEnum):
    RASTER = "raster"
    VECTOR = "vector"


@dataclass(frozen=True)
class ProviderConfig:
    kind: ProviderKind
    tile_url_template: str
    render_mode: RenderMode
    attribution: str
    metadata_url: str | None = None
    archive_url: str | None = None
    coordinate_transform: CoordinateTransform | None = None
    min_zoom: int = 0
    max_zoom: int = 19
    style: LineStyle = field(default_factory=LineStyle)

    @property
    def accept(self) -> str:
        if self.render_mode is RenderMode.VECTOR:
            return MVT_CONTENT_TYPE
        return PNG_CONTENT_TYPE

    def default_metadata(self) -> TileJSONMetadata:
        """Metadata assumed when no TileJSON endpoint exists or it fails."""
        return TileJSONMetadata(
            tiles=[self.tile_url_template],
            minzoom=self.min_zoom,
            maxzoom=self.max_zoom,
            attribution=self.attribution,
            name=self.kind.value,
        )

    def remap(self, x: int, y: int, z: int) -> tuple[int, int]:
        if self.coordinate_transform is None:
            return x, y
        return self.coordinate_transform(x, y, z)

    def format_url(self, template: str, x: int, y: int, z: int) -> str:
        """Substitute {x}, {y}, {z} and {q} (quadkey) into ``template``.

        The quadkey is computed from the remapped indices, like x and y.
        """
        rx, ry = self.remap(x, y, z)
        url = template.replace("{x}", str(rx)).replace("{y}", str(ry))
        url = url.replace("{z}", str(z))
        if "{q}" in url:
            url = url.replace("{q}", tile_to_quadkey(rx, ry, z))
        return url


PROVIDERS: dict[ProviderKind, ProviderConfig] = {
    ProviderKind.GOOGLE: ProviderConfig(
        kind=ProviderKind.GOOGLE,
        tile_url_template=config.GOOGLE_TILE_URL_TEMPLATE,
        render_mode=RenderMode.RASTER,
        attribution="© Google Street View",
        style=LineStyle(color="#4285F4", weight=2, opacity=0.9),
    ),
    ProviderKind.BING: ProviderConfig(
        kind=ProviderKind.BING,
        tile_url_template=config.BING_TILE_URL_TEMPLATE,
        render_mode=RenderMode.RASTER,
        attribution="© Microsoft Bing Streetside",
        style=LineStyle(color="#8E44AD", weight=2, opacity=0.9),
    ),
    ProviderKind.YANDEX: ProviderConfig(
        kind=ProviderKind.YANDEX,
        tile_url_template=config.YANDEX_TILE_URL_TEMPLATE,
        render_mode=RenderMode.RASTER,
        attribution="© Yandex Panoramas",
        coordinate_transform=reproject_tile_to_alt_mercator,
        style=LineStyle(color="#FFCC00", weight=2, opacity=0.9),
    ),
    ProviderKind.APPLE: ProviderConfig(
        kind=ProviderKind.APPLE,
        tile_url_template=config.APPLE_MVT_URL_TEMPLATE,
        render_mode=RenderMode.VECTOR,
        attribution="© Apple Look Around",
        metadata_url=config.APPLE_TILEJSON_URL,
        archive_url=config.APPLE_PMTILES_URL,
        min_zoom=3,
        max_zoom=16,
        style=LineStyle(color="#007AFF", weight=2, opacity=0.8),
    ),
    ProviderKind.NAVER: ProviderConfig(
        kind=ProviderKind.NAVER,
        tile_url_template=config.NAVER_MVT_URL_TEMPLATE,
        render_mode=RenderMode.VECTOR,
        attribution="© Naver Street View",
        metadata_url=config.NAVER_TILEJSON_URL,
        archive_url=config.NAVER_PMTILES_URL,
        min_zoom=3,
        max_zoom=16,
        style=LineStyle(color="#00C851", weight=2, opacity=0.8),
    ),
    ProviderKind.JA: ProviderConfig(
        kind=ProviderKind.JA,
        tile_url_template=config.JA_TILE_URL_TEMPLATE,
        render_mode=RenderMode.RASTER,
        attribution="© ja.is - Iceland Street View",
        metadata_url=config.JA_TILEJSON_URL,
        archive_url=config.JA_PMTILES_URL,
        style=LineStyle(color="#E74C3C", weight=2, opacity=0.8),
    ),
}


def get_provider(provider: ProviderKind | str | ProviderConfig) -> ProviderConfig:
    """Resolve a provider name, kind or config to its ProviderConfig."""
    if isinstance(provider, ProviderConfig):
        return provider
    try:
        return PROVIDERS[ProviderKind(provider)]
    except ValueError as exc:
        msg = f"Unknown coverage provider: {provider!r}"
        raise ValueError(msg) from exc
