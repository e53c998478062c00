"""Full and byte-range delivery of stored objects."""

import logging
import re
from dataclasses import dataclass
from typing import AsyncIterator

from fastapi.responses import Response, StreamingResponse

from assetgate.core.errors import AssetNotFound, RangeNotSatisfiable, StreamTransportError
from assetgate.services.storage import ObjectMetadata, ObjectStream, StorageService

logger = logging.getLogger(__name__)

RANGE_PATTERN = re.compile(r"^\s*bytes\s*=\s*(\d*)\s*-\s*(\d*)\s*$", re.IGNORECASE)

PRIVATE_CACHE_HEADERS = {
    "Cache-Control": "private, no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


@dataclass(frozen=True)
class ByteRange:
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def content_range(self, size: int) -> str:
        return f"bytes {self.start}-{self.end}/{size}"


def parse_range(header: str | None, size: int) -> ByteRange | None:
    """Parse a single ``bytes=start-end`` range against an object size.

    Returns None when no Range header was sent. An empty end means "to the
    last byte" and ``bytes=-N`` asks for the final N bytes.

    Raises:
        RangeNotSatisfiable: malformed, multi-range or out-of-bounds ranges.
    """
    if header is None or not header.strip():
        return None

    match = RANGE_PATTERN.match(header)
    if match is None:
        raise RangeNotSatisfiable(size, "Malformed or unsupported Range header")

    raw_start, raw_end = match.groups()
    if not raw_start and not raw_end:
        raise RangeNotSatisfiable(size, "Malformed or unsupported Range header")

    if not raw_start:
        suffix = int(raw_end)
        if suffix == 0 or size == 0:
            raise RangeNotSatisfiable(size)
        return ByteRange(max(size - suffix, 0), size - 1)

    start = int(raw_start)
    end = int(raw_end) if raw_end else size - 1
    if start >= size or end >= size or start > end:
        raise RangeNotSatisfiable(size)
    return ByteRange(start, end)


def marketing_cache_headers(max_age: int) -> dict[str, str]:
    return {"Cache-Control": f"public, max-age={max_age}, immutable"}


async def _guarded(stream: ObjectStream, key: str) -> AsyncIterator[bytes]:
    # Headers are already sent once iteration starts; errors end the connection
    try:
        async for chunk in stream:
            yield chunk
    except Exception:
        logger.exception("Stream for %s terminated by storage error", key)
        raise
    finally:
        await stream.aclose()


async def fetch_metadata(storage: StorageService, key: str) -> ObjectMetadata | None:
    """Object metadata, with storage failures translated to StreamTransportError."""
    try:
        return await storage.get_object_metadata(key)
    except Exception as e:
        logger.error("Metadata lookup failed for %s: %s", key, e)
        raise StreamTransportError("Failed to read media metadata") from e


async def stream_object(
    storage: StorageService,
    key: str,
    range_header: str | None,
    cache_headers: dict[str, str],
    metadata: ObjectMetadata | None = None,
    head_only: bool = False,
) -> Response:
    """Build a 200 or 206 streaming response for one stored object.

    The object size is read before any body bytes so ``Content-Length`` is
    always exact.

    Raises:
        AssetNotFound: the key does not exist.
        RangeNotSatisfiable: the Range header cannot be served.
        StreamTransportError: storage failed before streaming started.
    """
    if metadata is None:
        metadata = await fetch_metadata(storage, key)
    if metadata is None:
        raise AssetNotFound("The requested media file does not exist")

    byte_range = parse_range(range_header, metadata.size)
    headers = {"Accept-Ranges": "bytes", **cache_headers}
    if byte_range is None:
        headers["Content-Length"] = str(metadata.size)
        status_code = 200
    else:
        headers["Content-Length"] = str(byte_range.length)
        headers["Content-Range"] = byte_range.content_range(metadata.size)
        status_code = 206

    if head_only:
        return Response(status_code=status_code, headers=headers, media_type=metadata.content_type)

    try:
        if byte_range is None:
            stream = await storage.open_read_stream(key)
        else:
            stream = await storage.open_read_stream(key, byte_range.start, byte_range.end)
    except Exception as e:
        logger.error("Failed to open stream for %s: %s", key, e)
        raise StreamTransportError("Failed to stream media") from e

    return StreamingResponse(
        _guarded(stream, key),
        status_code=status_code,
        headers=headers,
        media_type=metadata.content_type,
    )
