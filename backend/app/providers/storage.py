"""Object storage for rendered artifacts: bytes in, durable URL out."""

import asyncio
from pathlib import Path
from typing import Protocol

import boto3
import structlog

from app.core.config import Settings, get_settings

logger = structlog.get_logger(__name__)


class ObjectStorage(Protocol):
    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store ``data`` under ``key`` and return its URL."""
        ...


class S3ObjectStorage:
    """S3 bucket, optionally fronted by a CDN domain."""

    def __init__(self, bucket: str, region: str, public_base_url: str = ""):
        self._bucket = bucket
        self._region = region
        self._public_base_url = public_base_url.rstrip("/")

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        # boto3 is blocking: upload in a worker thread
        await asyncio.to_thread(self._put_s3, key, data, content_type)
        logger.info("artifact_uploaded", backend="s3", key=key, size=len(data))
        if self._public_base_url:
            return f"{self._public_base_url}/{key}"
        return f"https://{self._bucket}.s3.{self._region}.amazonaws.com/{key}"

    def _put_s3(self, key: str, body: bytes, content_type: str) -> None:
        s3 = boto3.client("s3", region_name=self._region)
        s3.put_object(
            Bucket=self._bucket,
            Key=key,
            Body=body,
            ContentType=content_type,
        )


class LocalObjectStorage:
    """Filesystem directory, for local runs."""

    def __init__(self, root: str | Path):
        self._root = Path(root)

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        path = self._root / key
        await asyncio.to_thread(self._write, path, data)
        logger.info("artifact_uploaded", backend="local", key=key, size=len(data))
        return path.resolve().as_uri()

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)


def build_storage(settings: Settings | None = None) -> ObjectStorage:
    settings = settings or get_settings()
    if settings.storage_backend == "s3":
        if not settings.storage_bucket:
            raise ValueError("STORAGE_BUCKET must be set when STORAGE_BACKEND=s3")
        return S3ObjectStorage(settings.storage_bucket, settings.storage_region, settings.storage_public_base_url)
    return LocalObjectStorage(settings.storage_local_dir)
