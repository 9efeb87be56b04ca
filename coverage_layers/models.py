"""Models shared by the coverage tile services and the grid layer."""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from typing import Any

from PIL import Image, ImageColor
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from core.exceptions import OutOfBoundsZoom


@dataclass(frozen=True)
class TileCoordinate:
    """One tile of the slippy-map pyramid."""

    x: int
    y: int
    z: int

    def __post_init__(self) -> None:
        if self.z < 0:
            msg = f"Zoom must be non-negative, got {self.z}"
            raise ValueError(msg)
        size = 1 << self.z
        if not (0 <= self.x < size and 0 <= self.y < size):
            msg = f"Tile ({self.x}, {self.y}) outside the {size}x{size} grid at z={self.z}"
            raise ValueError(msg)


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lon: float

    def __post_init__(self) -> None:
        if not (-90 <= self.lat <= 90 and -180 <= self.lon <= 180):
            msg = f"Invalid coordinate lat={self.lat} lon={self.lon}"
            raise ValueError(msg)


class TileJSONMetadata(BaseModel):
    """TileJSON descriptor of a remote tile archive."""

    tilejson: str = "2.2.0"
    tiles: list[str] = Field(min_length=1)
    minzoom: int
    maxzoom: int
    attribution: str = ""
    name: str | None = None
    description: str | None = None
    version: str | None = None
    scheme: str | None = None
    bounds: list[float] | None = None
    center: list[float] | None = None
    vector_layers: list[dict[str, Any]] | None = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("tiles")
    @classmethod
    def _templates_not_blank(cls, value: list[str]) -> list[str]:
        if not value[0].strip():
            msg = "tile URL template is empty"
            raise ValueError(msg)
        return value

    @field_validator("minzoom", "maxzoom", mode="before")
    @classmethod
    def _numeric_zoom(cls, value: Any) -> Any:
        # bool is an int subclass and strings would be coerced; reject both.
        if isinstance(value, bool) or not isinstance(value, int | float):
            msg = "zoom level must be a number"
            raise ValueError(msg)
        return value

    @model_validator(mode="after")
    def _ordered_zoom_range(self) -> TileJSONMetadata:
        if self.minzoom > self.maxzoom:
            msg = f"minzoom {self.minzoom} > maxzoom {self.maxzoom}"
            raise ValueError(msg)
        return self

    @property
    def tile_url_template(self) -> str:
        return self.tiles[0]

    def contains_zoom(self, z: int) -> bool:
        return self.minzoom <= z <= self.maxzoom

    def zoom_limits(self) -> tuple[int, int]:
        return self.minzoom, self.maxzoom

    def check_zoom(self, z: int) -> None:
        """Raise OutOfBoundsZoom when ``z`` is outside the archive's range."""
        if not self.contains_zoom(z):
            raise OutOfBoundsZoom(z, self.minzoom, self.maxzoom)


class GeometryType(enum.IntEnum):
    """MVT geometry type codes."""

    UNKNOWN = 0
    POINT = 1
    LINESTRING = 2
    POLYGON = 3


@dataclass
class DecodedFeature:
    geometry_type: GeometryType
    rings: list[list[tuple[int, int]]]
    extent: int = 4096
    layer: str = ""


@dataclass(frozen=True)
class LineStyle:
    """Stroke style applied uniformly to every line of a tile."""

    color: str = "#007AFF"
    weight: float = 2.0
    opacity: float = 0.8

    def __post_init__(self) -> None:
        ImageColor.getrgb(self.color)
        if self.weight <= 0:
            msg = f"Stroke weight must be positive, got {self.weight}"
            raise ValueError(msg)
        if not 0.0 <= self.opacity <= 1.0:
            msg = f"Opacity must be within [0, 1], got {self.opacity}"
            raise ValueError(msg)

    def merged(self, **partial: Any) -> LineStyle:
        """Return a copy with the given non-None fields replaced."""
        return replace(self, **{k: v for k, v in partial.items() if v is not None})

    def rgba(self) -> tuple[int, int, int, int]:
        r, g, b = ImageColor.getrgb(self.color)[:3]
        return r, g, b, round(self.opacity * 255)


@dataclass(frozen=True)
class TileData:
    content: bytes


@dataclass(frozen=True)
class TileEmpty:
    pass


@dataclass(frozen=True)
class TileOutOfBounds:
    pass


@dataclass(frozen=True)
class TileTransportFailure:
    message: str
    status: int | None = None


TileFetchOutcome = TileData | TileEmpty | TileOutOfBounds | TileTransportFailure


class TileState(enum.Enum):
    REQUESTED = "requested"
    RENDERING = "rendering"
    DELIVERED = "delivered"
    OUT_OF_RANGE = "out_of_range"
    FAILED = "failed"


@dataclass
class TileSurface:
    """Drawable handle handed to the map engine for one tile request.

    The image starts fully transparent and is filled in asynchronously.
    """

    coords: TileCoordinate
    image: Image.Image
    state: TileState = TileState.REQUESTED
    error: Exception | None = None
    strokes: int = 0

    @classmethod
    def blank(cls, coords: TileCoordinate, tile_size: int) -> TileSurface:
        return cls(
            coords=coords,
            image=Image.new("RGBA", (tile_size, tile_size), (0, 0, 0, 0)),
        )

    def is_blank(self) -> bool:
        return self.image.getbbox() is None
