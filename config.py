"""Centralized configuration for environment variables and tile endpoints.

This module is the single source of truth for configuration used across the
coverage layers. Import constants from here rather than calling os.getenv
directly in multiple places.
"""

from __future__ import annotations

import os
from typing import Final

from dotenv import load_dotenv

# Load environment variables from .env if present
load_dotenv()


# --- StreetRadar tile CDN ---
TILES_BASE_URL: Final[str] = os.getenv(
    "STREETRADAR_TILES_BASE_URL",
    "https://tiles.streetradar.app",
).rstrip("/")

# Apple Look Around (vector tiles)
APPLE_TILEJSON_URL: Final[str] = os.getenv(
    "APPLE_TILEJSON_URL",
    f"{TILES_BASE_URL}/tiles.json",
)
APPLE_MVT_URL_TEMPLATE: Final[str] = os.getenv(
    "APPLE_MVT_URL_TEMPLATE",
    f"{TILES_BASE_URL}/tiles/{{z}}/{{x}}/{{y}}.mvt",
)
# Set to read tiles from a single .pmtiles archive by range requests instead.
APPLE_PMTILES_URL: Final[str | None] = os.getenv("APPLE_PMTILES_URL") or None

# Naver Street View (vector tiles)
NAVER_TILEJSON_URL: Final[str] = os.getenv(
    "NAVER_TILEJSON_URL",
    f"{TILES_BASE_URL}/naver/tiles.json",
)
NAVER_MVT_URL_TEMPLATE: Final[str] = os.getenv(
    "NAVER_MVT_URL_TEMPLATE",
    f"{TILES_BASE_URL}/naver/tiles/{{z}}/{{x}}/{{y}}.mvt",
)
NAVER_PMTILES_URL: Final[str | None] = os.getenv("NAVER_PMTILES_URL") or None

# ja.is (raster tiles)
JA_TILEJSON_URL: Final[str] = os.getenv(
    "JA_TILEJSON_URL",
    f"{TILES_BASE_URL}/tiles/ja.json",
)
JA_TILE_URL_TEMPLATE: Final[str] = os.getenv(
    "JA_TILE_URL_TEMPLATE",
    f"{TILES_BASE_URL}/tiles/ja/{{z}}/{{x}}/{{y}}.png",
)
JA_PMTILES_URL: Final[str | None] = os.getenv("JA_PMTILES_URL") or None

# --- Third-party raster coverage tiles ---
GOOGLE_TILE_URL_TEMPLATE: Final[str] = os.getenv(
    "GOOGLE_TILE_URL_TEMPLATE",
    "https://maps.googleapis.com/maps/vt?pb=!1m7!8m6!1m3!1i{z}!2i{x}!3i{y}"
    "!2i9!3x1!2m8!1e2!2ssvv!4m2!1scc!2s*211m3*211e2*212b1*213e2*212b1*214b1"
    "!4m2!1ssvl!2s*211b0*212b1!3m8!2sen!3sus!5e1105!12m4!1e68!2m2!1sset"
    "!2sRoadmap!4e0!5m4!1e0!8m2!1e1!1e1!6m6!1e12!2i2!11e0!39b0!44e0!50e0",
)
BING_TILE_URL_TEMPLATE: Final[str] = os.getenv(
    "BING_TILE_URL_TEMPLATE",
    "https://t.ssl.ak.dynamic.tiles.virtualearth.net/comp/ch/{q}"
    "?mkt=en-US&it=Z,HC&n=t&og=2651&sv=9.36",
)
YANDEX_TILE_URL_TEMPLATE: Final[str] = os.getenv(
    "YANDEX_TILE_URL_TEMPLATE",
    "https://04.core-stv-renderer.maps.yandex.net/2.x/tiles"
    "?l=stv,sta&x={x}&y={y}&z={z}&scale=1&lang=en_US&format=png"
    "&client_id=yandex-web-maps",
)

# --- Rendering ---
COVERAGE_TILE_SIZE: Final[int] = int(os.getenv("COVERAGE_TILE_SIZE", "256"))


__all__ = [
    "APPLE_MVT_URL_TEMPLATE",
    "APPLE_PMTILES_URL",
    "APPLE_TILEJSON_URL",
    "BING_TILE_URL_TEMPLATE",
    "COVERAGE_TILE_SIZE",
    "GOOGLE_TILE_URL_TEMPLATE",
    "JA_PMTILES_URL",
    "JA_TILEJSON_URL",
    "JA_TILE_URL_TEMPLATE",
    "NAVER_MVT_URL_TEMPLATE",
    "NAVER_PMTILES_URL",
    "NAVER_TILEJSON_URL",
    "TILES_BASE_URL",
    "YANDEX_TILE_URL_TEMPLATE",
]
