"""Read coverage tiles out of a single remote PMTiles v3 archive.

The archive is never downloaded whole. The first request reads the header
and, in the common case, the root directory in one 16 KiB range; later reads
fetch leaf directories and individual tile payloads by byte range. Parsing is
done with the ``pmtiles`` package, the I/O with the shared aiohttp session.
"""

from __future__ import annotations

import asyncio
import gzip
import json
import logging
import zlib
from typing import Any

import aiohttp
import pydantic
from pmtiles.tile import (
    Compression,
    Entry,
    deserialize_directory,
    deserialize_header,
    find_tile,
    zxy_to_tileid,
)

from core.exceptions import (
    InvalidMetadataError,
    MetadataFetchError,
    TileDecodeError,
    TileTransportError,
)
from core.http.session import get_session
from coverage_layers.models import TileJSONMetadata

logger = logging.getLogger(__name__)

PMTILES_MAGIC = b"PMTiles"
PMTILES_VERSION = 3
HEADER_LENGTH = 127
INITIAL_FETCH_LENGTH = 16384
MAX_DIRECTORY_DEPTH = 4


def _decompress(data: bytes, compression: Compression) -> bytes:
    if compression in (Compression.NONE, Compression.UNKNOWN):
        return data
    if compression is Compression.GZIP:
        try:
            return gzip.decompress(data)
        except (OSError, EOFError, zlib.error) as e:
            msg = f"Corrupt gzip data in archive: {e}"
            raise TileDecodeError(msg) from e
    msg = f"Unsupported archive compression: {compression.name}"
    raise TileDecodeError(msg)


class PMTilesSource:
    """Range-request reader for one ``.pmtiles`` URL.

    The header and every directory read are cached for the life of the
    source; drop the source to pick up a redeployed archive.
    """

    def __init__(self, url: str, session: Any | None = None) -> None:
        self.url = url
        self._session = session
        self._header: dict[str, Any] | None = None
        self._header_lock = asyncio.Lock()
        self._directories: dict[tuple[int, int], list[Entry]] = {}

    def __repr__(self) -> str:
        return f"PMTilesSource({self.url!r})"

    async def _get_session(self) -> Any:
        if self._session is not None:
            return self._session
        return await get_session()

    async def _read(self, offset: int, length: int) -> bytes:
        session = await self._get_session()
        headers = {"Range": f"bytes={offset}-{offset + length - 1}"}
        try:
            async with session.get(self.url, headers=headers) as response:
                status = response.status
                if status not in (200, 206):
                    msg = f"Archive range request failed: HTTP {status}"
                    raise TileTransportError(msg, {"status": status, "url": self.url})
                body = await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            msg = f"Archive range request failed: {e!r}"
            raise TileTransportError(msg, {"url": self.url}) from e

        if status == 200:
            # The server ignored Range and sent the whole file.
            body = body[offset : offset + length]
        return bytes(body)

    def _parse_header(self, data: bytes) -> dict[str, Any]:
        if len(data) < HEADER_LENGTH or not data.startswith(PMTILES_MAGIC):
            msg = "Not a PMTiles archive"
            raise InvalidMetadataError(msg, {"url": self.url})
        if data[7] != PMTILES_VERSION:
            msg = f"Unsupported PMTiles version {data[7]}"
            raise InvalidMetadataError(msg, {"url": self.url})
        try:
            return deserialize_header(data[:HEADER_LENGTH])
        except (ValueError, IndexError) as e:
            msg = f"Invalid PMTiles header: {e}"
            raise InvalidMetadataError(msg, {"url": self.url}) from e

    @staticmethod
    def _parse_directory(data: bytes) -> list[Entry]:
        try:
            return deserialize_directory(data)
        except (OSError, EOFError, zlib.error, ValueError, IndexError) as e:
            msg = f"Corrupt PMTiles directory: {e}"
            raise TileDecodeError(msg) from e

    async def header(self) -> dict[str, Any]:
        async with self._header_lock:
            if self._header is None:
                prefix = await self._read(0, INITIAL_FETCH_LENGTH)
                header = self._parse_header(prefix)
                start, length = header["root_offset"], header["root_length"]
                if start + length <= len(prefix):
                    self._directories[(start, length)] = self._parse_directory(
                        prefix[start : start + length]
                    )
                self._header = header
        return self._header

    async def _directory(self, offset: int, length: int) -> list[Entry]:
        key = (offset, length)
        entries = self._directories.get(key)
        if entries is None:
            entries = self._parse_directory(await self._read(offset, length))
            self._directories[key] = entries
        return entries

    async def metadata(self) -> dict[str, Any]:
        """The archive's embedded JSON metadata, or ``{}`` if it has none."""
        header = await self.header()
        if not header["metadata_length"]:
            return {}
        raw = await self._read(header["metadata_offset"], header["metadata_length"])
        try:
            data = json.loads(_decompress(raw, header["internal_compression"]))
        except (TileDecodeError, ValueError) as e:
            msg = f"Invalid PMTiles metadata: {e}"
            raise InvalidMetadataError(msg, {"url": self.url}) from e
        return data if isinstance(data, dict) else {}

    async def tilejson(self) -> TileJSONMetadata:
        """Describe the archive as TileJSON, with zoom bounds from its header."""
        try:
            header = await self.header()
            meta = await self.metadata()
        except TileTransportError as e:
            msg = f"PMTiles header request failed: {e.message}"
            raise MetadataFetchError(msg, e.details) from e
        except TileDecodeError as e:
            raise InvalidMetadataError(e.message, {"url": self.url}) from e

        try:
            return TileJSONMetadata(
                tiles=[self.url],
                minzoom=header["min_zoom"],
                maxzoom=header["max_zoom"],
                attribution=meta.get("attribution") or "",
                name=meta.get("name"),
                description=meta.get("description"),
                vector_layers=meta.get("vector_layers"),
            )
        except pydantic.ValidationError as e:
            msg = f"Invalid PMTiles metadata: {e.error_count()} bad field(s)"
            raise InvalidMetadataError(msg, {"url": self.url}) from e

    async def get_tile(self, z: int, x: int, y: int) -> bytes | None:
        """Return the decompressed tile payload, or None if the archive has no such tile."""
        header = await self.header()
        tile_id = zxy_to_tileid(z, x, y)
        offset, length = header["root_offset"], header["root_length"]
        for _ in range(MAX_DIRECTORY_DEPTH):
            entry = find_tile(await self._directory(offset, length), tile_id)
            if entry is None:
                return None
            if entry.run_length > 0:
                data = await self._read(
                    header["tile_data_offset"] + entry.offset, entry.length
                )
                return _decompress(data, header["tile_compression"])
            offset = header["leaf_directory_offset"] + entry.offset
            length = entry.length

        logger.warning("PMTiles directory nesting too deep in %s", self.url)
        msg = "PMTiles directory nesting too deep"
        raise TileDecodeError(msg, {"url": self.url})
