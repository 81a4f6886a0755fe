"""
Storage Utilities
=================

Object storage adapters used to publish step results, plus helpers for
writing results to local files.

Every adapter implements one operation: store bytes, return a public URL.
"""

import asyncio
import logging
import mimetypes
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

import aiofiles
import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..core.config import StorageConfig
from ..core.exceptions import StorageError
from ..core.security import sanitize_filename

logger = logging.getLogger(__name__)


GCS_ENDPOINT = "https://storage.googleapis.com"


def generate_object_name(prefix: str = "object", suffix: str = "") -> str:
    """Generate a unique object name (``object-<uuid4>``)."""
    return f"{prefix}-{uuid.uuid4()}{suffix}"


class Storage(ABC):
    """Store bytes and return a public URL."""

    backend_name = "storage"

    @abstractmethod
    async def upload(
        self,
        data: bytes,
        object_name: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> str:
        """
        Upload bytes.

        Args:
            data: Payload
            object_name: Target name (``object-<uuid4>`` when omitted)
            content_type: MIME type (guessed from the name when omitted)

        Returns:
            Public URL of the stored object
        """
        pass

    def _object_name(self, object_name: Optional[str]) -> str:
        if object_name:
            return sanitize_filename(object_name)
        return generate_object_name()

    @staticmethod
    def _content_type(object_name: str, content_type: Optional[str]) -> str:
        if content_type:
            return content_type
        guessed, _ = mimetypes.guess_type(object_name)
        return guessed or "application/octet-stream"


class LocalStorage(Storage):
    """Writes objects below a base directory."""

    backend_name = "local"

    def __init__(self, base_path: Union[str, Path] = "./output", public_base_url: Optional[str] = None):
        self.base_path = Path(base_path)
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None

    async def upload(
        self,
        data: bytes,
        object_name: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> str:
        name = self._object_name(object_name)
        path = self.base_path / name
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(data)
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}", backend=self.backend_name, object_name=name) from e

        logger.info(f"Stored {len(data)} bytes at {path}")
        if self.public_base_url:
            return f"{self.public_base_url}/{name}"
        return path.resolve().as_uri()


class S3Storage(Storage):
    """
    Uploads to an S3-compatible bucket with a public-read ACL.

    Google Cloud Storage is reached through its S3-compatible endpoint
    (see ``S3Storage.for_gcs``) with HMAC credentials.
    """

    backend_name = "s3"

    def __init__(
        self,
        bucket: str,
        prefix: str = "",
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        public_base_url: Optional[str] = None,
        client=None,
    ):
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self.region = region
        self.endpoint_url = endpoint_url
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self._client = client

    @classmethod
    def for_gcs(cls, bucket: str, prefix: str = "", public_base_url: Optional[str] = None, client=None) -> "S3Storage":
        storage = cls(
            bucket=bucket,
            prefix=prefix,
            endpoint_url=GCS_ENDPOINT,
            public_base_url=public_base_url or f"{GCS_ENDPOINT}/{bucket}",
            client=client,
        )
        storage.backend_name = "gcs"
        return storage

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                region_name=self.region,
                endpoint_url=self.endpoint_url,
            )
        return self._client

    def object_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.amazonaws.com/{key}"

    async def upload(
        self,
        data: bytes,
        object_name: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> str:
        name = self._object_name(object_name)
        key = f"{self.prefix}/{name}" if self.prefix else name

        try:
            await asyncio.to_thread(
                self.client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ACL="public-read",
                ContentType=self._content_type(name, content_type),
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(
                f"Failed to put object {key} in {self.bucket}: {e}",
                backend=self.backend_name,
                object_name=key,
            ) from e

        url = self.object_url(key)
        logger.info(f"Uploaded {len(data)} bytes to {url}")
        return url


def get_storage(config: StorageConfig) -> Optional[Storage]:
    """Build the storage adapter selected by configuration (None when disabled)."""
    if config.backend == "local":
        return LocalStorage(config.base_path, public_base_url=config.public_base_url)
    if config.backend == "s3":
        return S3Storage(
            bucket=config.bucket,
            prefix=config.prefix,
            region=config.region,
            endpoint_url=config.endpoint_url,
            public_base_url=config.public_base_url,
        )
    if config.backend == "gcs":
        return S3Storage.for_gcs(config.bucket, prefix=config.prefix, public_base_url=config.public_base_url)
    return None


def save_bytes(data: bytes, output_path: Union[str, Path]) -> str:
    """
    Save a result buffer to a file.

    Args:
        data: Raw bytes
        output_path: Path to save to

    Returns:
        Path to the saved file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, "wb") as f:
        f.write(data)

    logger.info(f"Saved {len(data)} bytes to {output_path}")
    return str(output_path)
