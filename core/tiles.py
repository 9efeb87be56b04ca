"""
Slippy-map tile helpers and provider coordinate codecs.

Coordinates:
- WGS84: lon/lat degrees (EPSG:4326)
- WebMercator: meters (EPSG:3857)
- World Mercator: meters on the WGS84 ellipsoid (EPSG:3395), used by Yandex
"""

from __future__ import annotations

import logging
import math
from typing import Final

import mercantile
import pyproj

from core.constants import (
    TILE_SIZE,
    WGS84_EQUATORIAL_RADIUS,
    YANDEX_REPROJECT_MIN_ZOOM,
)

logger = logging.getLogger(__name__)

_WEB_TO_WORLD_MERCATOR: Final = pyproj.Transformer.from_crs(
    "EPSG:3857",
    "EPSG:3395",
    always_xy=True,
)
_WORLD_CIRCUMFERENCE: Final[float] = 2 * math.pi * WGS84_EQUATORIAL_RADIUS


def tile_bounds_3857(z: int, x: int, y: int) -> tuple[float, float, float, float]:
    """Return tile bounds in EPSG:3857 meters as (minx, miny, maxx, maxy)."""
    b = mercantile.xy_bounds(x, y, z)
    return float(b.left), float(b.bottom), float(b.right), float(b.top)


def tile_to_lnglat(x: int, y: int, z: int) -> tuple[float, float]:
    """Return the (lon, lat) of a tile's upper-left corner."""
    ll = mercantile.ul(x, y, z)
    return float(ll.lng), float(ll.lat)


def tile_to_quadkey(x: int, y: int, z: int) -> str:
    """Encode a tile as a Bing quadkey.

    One base-4 digit per zoom level, coarsest first: bit ``i-1`` of ``x``
    contributes 1 and bit ``i-1`` of ``y`` contributes 2. ``z=0`` gives ``""``.
    """
    return mercantile.quadkey(x, y, z)


def quadkey_to_tile(quadkey: str) -> tuple[int, int, int]:
    """Decode a Bing quadkey back into (x, y, z)."""
    try:
        tile = mercantile.quadkey_to_tile(quadkey)
    except mercantile.QuadKeyError as exc:
        msg = f"Invalid quadkey: {quadkey!r}"
        raise ValueError(msg) from exc
    return tile.x, tile.y, tile.z


def reproject_tile_to_alt_mercator(x: int, y: int, z: int) -> tuple[int, int]:
    """Map a Web Mercator tile index onto the EPSG:3395 tile grid.

    Yandex serves its coverage on an ellipsoidal Mercator grid, so the same
    (x, y, z) lands slightly north of where a spherical Mercator map expects
    it. The tile's upper-left corner is projected into EPSG:3395 meters and
    re-binned into 256px tiles at the same zoom.

    The conversion is approximate. When pyproj fails, the input indices
    are returned and a warning is logged.
    """
    if z < YANDEX_REPROJECT_MIN_ZOOM:
        return x, y

    try:
        mx, _, _, my = tile_bounds_3857(z, x, y)
        wx, wy = _WEB_TO_WORLD_MERCATOR.transform(mx, my, errcheck=True)

        meters_per_pixel = _WORLD_CIRCUMFERENCE / (TILE_SIZE * 2**z)
        px = (wx + _WORLD_CIRCUMFERENCE / 2) / meters_per_pixel
        py = (_WORLD_CIRCUMFERENCE / 2 - wy) / meters_per_pixel
        if not (math.isfinite(px) and math.isfinite(py)):
            msg = f"non-finite pixel ({px}, {py})"
            raise ValueError(msg)

        return math.floor(px / TILE_SIZE), math.floor(py / TILE_SIZE)
    except (pyproj.exceptions.ProjError, ValueError, OverflowError) as e:
        logger.warning(
            "EPSG:3395 reprojection failed for tile z=%s x=%s y=%s, "
            "using unprojected indices: %s",
            z,
            x,
            y,
            e,
        )
        return x, y
