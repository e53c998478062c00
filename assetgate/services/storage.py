"""S3/MinIO storage service."""

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncGenerator, AsyncIterator

import aioboto3
from botocore.config import Config
from botocore.exceptions import ClientError

from assetgate.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


@dataclass(frozen=True)
class ObjectMetadata:
    size: int
    content_type: str
    last_modified: datetime | None = None


def _is_not_found(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") in NOT_FOUND_CODES


class ObjectStream:
    """Async byte iterator over an S3 object body.

    Holds the S3 client open until the iteration ends or ``aclose`` is
    called, so a client disconnect releases the connection.
    """

    def __init__(self, stack: AsyncExitStack, body, chunk_size: int) -> None:
        self._stack = stack
        self._body = body
        self._chunk_size = chunk_size
        self._closed = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await self._body.read(self._chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._body.close()
        finally:
            await self._stack.aclose()


class StorageService:
    """Service for file storage operations with S3/MinIO."""

    def __init__(self) -> None:
        self.session = aioboto3.Session()
        self.bucket = settings.s3_bucket
        self.config = Config(
            signature_version="s3v4",
            s3={"addressing_style": "path"},
        )

    @asynccontextmanager
    async def _get_client(self) -> AsyncGenerator:
        """Get async S3 client."""
        async with self.session.client(
            "s3",
            endpoint_url=settings.s3_endpoint_url,
            aws_access_key_id=settings.s3_access_key,
            aws_secret_access_key=settings.s3_secret_key,
            region_name=settings.s3_region,
            config=self.config,
        ) as client:
            yield client

    @staticmethod
    def construct_s3_path(
        asset_type: str,
        entity_type: str,
        entity_id: str,
        filename: str,
        is_public: bool = False,
    ) -> str:
        """Build ``{env}/{public|private}/{asset_type}/{entity_type}/{entity_id}/{filename}``."""
        visibility = "public" if is_public else "private"
        return f"{settings.environment}/{visibility}/{asset_type}/{entity_type}/{entity_id}/{filename}"

    async def get_object_metadata(self, key: str) -> ObjectMetadata | None:
        """Return size and content type, or None when the key does not exist."""
        async with self._get_client() as client:
            try:
                response = await client.head_object(Bucket=self.bucket, Key=key)
            except ClientError as e:
                if _is_not_found(e):
                    return None
                raise
        return ObjectMetadata(
            size=int(response["ContentLength"]),
            content_type=response.get("ContentType") or "application/octet-stream",
            last_modified=response.get("LastModified"),
        )

    async def open_read_stream(
        self,
        key: str,
        start: int | None = None,
        end: int | None = None,
        chunk_size: int | None = None,
    ) -> ObjectStream:
        """Open a streaming read, optionally limited to ``start``-``end`` inclusive."""
        stack = AsyncExitStack()
        try:
            client = await stack.enter_async_context(self._get_client())
            params = {"Bucket": self.bucket, "Key": key}
            if start is not None:
                params["Range"] = f"bytes={start}-{'' if end is None else end}"
            response = await client.get_object(**params)
        except BaseException:
            await stack.aclose()
            raise
        return ObjectStream(stack, response["Body"], chunk_size or settings.stream_chunk_size)

    async def download_to_buffer(self, key: str) -> bytes | None:
        """Download a whole object, or None when the key does not exist."""
        async with self._get_client() as client:
            try:
                response = await client.get_object(Bucket=self.bucket, Key=key)
            except ClientError as e:
                if _is_not_found(e):
                    return None
                raise
            return await response["Body"].read()


# Singleton instance
storage_service = StorageService()
