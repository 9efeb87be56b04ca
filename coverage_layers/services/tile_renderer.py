"""Vector tile decoding and rasterization.

Coverage tiles only carry street traces, so only LineString features are
drawn. Coordinates are in the layer's integer extent (usually 0..4096) and
are scaled onto the output tile with ``pixel = coord / extent * tile_size``.

Rendering a malformed tile never raises past ``decode_and_render`` or
``render_raster``: the surface stays blank or partially drawn.
"""

from __future__ import annotations

import io
import logging
from typing import TYPE_CHECKING, Any

import mapbox_vector_tile
from PIL import Image, ImageDraw, UnidentifiedImageError

from core.constants import DEFAULT_EXTENT
from core.exceptions import TileDecodeError
from coverage_layers.models import DecodedFeature, GeometryType, LineStyle

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

_GEOJSON_TYPES: dict[str, GeometryType] = {
    "Point": GeometryType.POINT,
    "MultiPoint": GeometryType.POINT,
    "LineString": GeometryType.LINESTRING,
    "MultiLineString": GeometryType.LINESTRING,
    "Polygon": GeometryType.POLYGON,
    "MultiPolygon": GeometryType.POLYGON,
}


def _to_rings(geom_type: str, coordinates: Any) -> list[list[tuple[int, int]]]:
    if geom_type == "Point":
        return [[(coordinates[0], coordinates[1])]]
    if geom_type in ("MultiPoint", "LineString"):
        return [[(pt[0], pt[1]) for pt in coordinates]]
    if geom_type in ("MultiLineString", "Polygon"):
        return [[(pt[0], pt[1]) for pt in part] for part in coordinates]
    if geom_type == "MultiPolygon":
        return [[(pt[0], pt[1]) for pt in ring] for poly in coordinates for ring in poly]
    return []


def decode_tile(data: bytes) -> list[DecodedFeature]:
    """Parse an MVT payload into features in tile-local coordinates."""
    try:
        decoded = mapbox_vector_tile.decode(
            bytes(data), default_options={"y_coord_down": True}
        )
    except Exception as e:
        # protobuf raises DecodeError, truncated varints surface as other types
        msg = f"Malformed vector tile: {e}"
        raise TileDecodeError(msg, {"size": len(data)}) from e

    features: list[DecodedFeature] = []
    try:
        for layer_name, layer in decoded.items():
            extent = int(layer.get("extent") or DEFAULT_EXTENT)
            for feature in layer.get("features", []):
                geometry = feature.get("geometry") or {}
                geom_type = geometry.get("type", "")
                features.append(
                    DecodedFeature(
                        geometry_type=_GEOJSON_TYPES.get(geom_type, GeometryType.UNKNOWN),
                        rings=_to_rings(geom_type, geometry.get("coordinates") or []),
                        extent=extent,
                        layer=layer_name,
                    )
                )
    except (AttributeError, IndexError, KeyError, TypeError, ValueError) as e:
        msg = f"Unexpected vector tile structure: {e}"
        raise TileDecodeError(msg) from e
    return features


def _stroke(
    draw: ImageDraw.ImageDraw,
    points: list[tuple[float, float]],
    fill: tuple[int, int, int, int],
    weight: float,
) -> None:
    width = max(1, round(weight))
    draw.line(points, fill=fill, width=width, joint="curve")
    if width > 1:
        # round caps
        r = weight / 2
        for px, py in (points[0], points[-1]):
            draw.ellipse((px - r, py - r, px + r, py + r), fill=fill)


def render_features(
    features: Iterable[DecodedFeature],
    image: Image.Image,
    style: LineStyle,
) -> int:
    """Draw every LineString ring with >= 2 points; returns strokes drawn."""
    draw = ImageDraw.Draw(image)
    fill = style.rgba()
    tile_size = image.width
    strokes = 0
    for feature in features:
        if feature.geometry_type is not GeometryType.LINESTRING:
            continue
        scale = tile_size / float(feature.extent or DEFAULT_EXTENT)
        for ring in feature.rings:
            if len(ring) < 2:
                continue
            _stroke(draw, [(x * scale, y * scale) for x, y in ring], fill, style.weight)
            strokes += 1
    return strokes


def decode_and_render(data: bytes, image: Image.Image, style: LineStyle) -> int:
    """Decode ``data`` and draw it onto ``image``; errors leave it as is."""
    try:
        return render_features(decode_tile(data), image, style)
    except TileDecodeError as e:
        logger.debug("Skipping undecodable tile: %s", e.message)
    except (OSError, TypeError, ValueError) as e:
        logger.debug("Failed to render vector tile: %s", e)
    return 0


def render_raster(data: bytes, image: Image.Image) -> bool:
    """Composite a PNG/JPEG tile onto ``image``; returns False on failure."""
    try:
        with Image.open(io.BytesIO(data)) as raw:
            tile = raw.convert("RGBA")
        if tile.size != image.size:
            tile = tile.resize(image.size, Image.Resampling.BILINEAR)
        image.alpha_composite(tile)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        logger.debug("Failed to render raster tile: %s", e)
        return False
    return True
