"""
Centralized exception hierarchy for coverage-layer errors.

Metadata errors are loud and propagate to whoever asked for the metadata.
Tile errors are routine and are converted into blank tiles by the layer, so
they never reach the user as an application error.
"""


class StreetRadarError(Exception):
    """Base exception for all application-specific errors."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(StreetRadarError):
    """Exception raised when data validation fails."""


class ExternalServiceError(StreetRadarError):
    """Exception raised when a remote tile or metadata service call fails."""


class MetadataFetchError(ExternalServiceError):
    """TileJSON could not be retrieved (HTTP status, network or JSON error)."""

    @property
    def status(self) -> int | None:
        return self.details.get("status")


class InvalidMetadataError(ValidationError):
    """TileJSON was retrieved but does not describe a usable tile archive."""


class TileTransportError(ExternalServiceError):
    """A single tile request failed at the HTTP or network level."""


class TileDecodeError(ValidationError):
    """A tile payload could not be parsed as a vector tile."""


class OutOfBoundsZoom(StreetRadarError):
    """Requested zoom lies outside the archive's zoom range.

    Not a failure: the tile is known to be absent and is rendered blank
    without a network request.
    """

    def __init__(self, z: int, minzoom: int, maxzoom: int) -> None:
        super().__init__(
            f"Zoom {z} outside [{minzoom}, {maxzoom}]",
            {"z": z, "minzoom": minzoom, "maxzoom": maxzoom},
        )
        self.z = z
        self.minzoom = minzoom
        self.maxzoom = maxzoom


MetadataError = (MetadataFetchError, InvalidMetadataError)
