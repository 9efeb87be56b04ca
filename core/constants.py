"""Global constants for the core package.

This module contains shared constants used across the coverage tile stack.
"""

from typing import Final

# HTTP Client Constants
HTTP_CONNECTION_LIMIT: Final[int] = 16
HTTP_TIMEOUT_CONNECT: Final[float] = 10.0
HTTP_TIMEOUT_SOCK_READ: Final[float] = 30.0
HTTP_TIMEOUT_TOTAL: Final[float] = 60.0

# Tile geometry
TILE_SIZE: Final[int] = 256
DEFAULT_EXTENT: Final[int] = 4096

# Below this zoom the EPSG:3857 / EPSG:3395 offset is sub-pixel.
YANDEX_REPROJECT_MIN_ZOOM: Final[int] = 5
WGS84_EQUATORIAL_RADIUS: Final[float] = 6378137.0

# Content types
MVT_CONTENT_TYPE: Final[str] = "application/x-protobuf"
PNG_CONTENT_TYPE: Final[str] = "image/png"
JSON_CONTENT_TYPE: Final[str] = "application/json"
