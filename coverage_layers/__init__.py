"""
Street-level imagery coverage layers.

This package provides:
- providers.py: per-provider tile addressing, render mode and defaults
- services/: TileJSON resolution, tile fetching and tile rendering
- grid_layer.py: the tile-grid layer handed to the map engine
"""

from coverage_layers.grid_layer import (
    CoverageGridLayer,
    TileGrid,
    create_coverage_layer,
)
from coverage_layers.providers import PROVIDERS, ProviderKind, get_provider

__all__ = [
    "PROVIDERS",
    "CoverageGridLayer",
    "ProviderKind",
    "TileGrid",
    "create_coverage_layer",
    "get_provider",
]
