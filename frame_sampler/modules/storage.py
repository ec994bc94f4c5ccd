"""
Object Storage Module

Narrow fetch/put interface over S3-compatible object storage (Cloudflare R2,
AWS S3, MinIO). Retries and multipart negotiation stay inside the SDK.
"""

import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

import boto3
from boto3.s3.transfer import TransferConfig as S3TransferConfig
from botocore.config import Config as BotoConfig

from ..config import StorageConfig
from ..logging import get_logger

logger = get_logger(__name__)

STREAM_CHUNK_BYTES = 1024 * 1024


class ObjectStore(ABC):
    """
    Abstract object store.

    Implementations are blocking; the transfer pool runs them on threads.
    Both operations return the storage-assigned content identifier (ETag)
    or raise.
    """

    @abstractmethod
    def fetch_object(self, bucket: str, key: str, local_path: Path) -> Optional[str]:
        """Download bucket/key into local_path. Returns the ETag."""
        pass

    @abstractmethod
    def put_object(self, bucket: str, key: str, local_path: Path) -> str:
        """Upload local_path to bucket/key. Returns the ETag."""
        pass


class S3ObjectStore(ObjectStore):
    """
    boto3-backed object store.

    Example:
        >>> store = S3ObjectStore.from_config(get_storage_config())
        >>> etag = store.put_object("frames", "job-1/00001.png", Path("frame_00001.png"))
    """

    def __init__(self, client: Any, config: Optional[StorageConfig] = None):
        """
        Args:
            client: A boto3 S3 client
            config: Storage configuration (multipart thresholds)
        """
        self.client = client
        self.config = config or StorageConfig()
        self._transfer_config = S3TransferConfig(
            multipart_threshold=self.config.single_put_max_bytes,
            multipart_chunksize=self.config.multipart_chunk_bytes,
            max_concurrency=self.config.multipart_concurrency,
        )

    @classmethod
    def from_config(cls, config: StorageConfig) -> "S3ObjectStore":
        return cls(create_s3_client(config), config)

    def fetch_object(self, bucket: str, key: str, local_path: Path) -> Optional[str]:
        local_path = Path(local_path)

        head = self.client.head_object(Bucket=bucket, Key=key)
        logger.debug(f"Fetching {bucket}/{key} ({head.get('ContentLength', '?')} bytes)")

        response = self.client.get_object(Bucket=bucket, Key=key)
        body = response["Body"]
        try:
            with open(local_path, "wb") as f:
                shutil.copyfileobj(body, f, STREAM_CHUNK_BYTES)
        finally:
            body.close()

        return response.get("ETag")

    def put_object(self, bucket: str, key: str, local_path: Path) -> str:
        local_path = Path(local_path)
        size = local_path.stat().st_size

        if size <= self.config.single_put_max_bytes:
            with open(local_path, "rb") as f:
                response = self.client.put_object(Bucket=bucket, Key=key, Body=f.read())
            etag = response.get("ETag")
        else:
            logger.debug(f"Multipart upload of {local_path.name} ({size} bytes) to {bucket}/{key}")
            self.client.upload_file(str(local_path), bucket, key, Config=self._transfer_config)
            etag = self.client.head_object(Bucket=bucket, Key=key).get("ETag")

        if not etag:
            raise RuntimeError(f"Upload of {bucket}/{key} succeeded but no ETag was returned")
        return etag


def create_s3_client(config: StorageConfig) -> Any:
    """
    Build a boto3 S3 client from config.

    The SDK owns retries (``max_attempts``); checksums are only computed and
    validated when the operation requires them, which R2 expects.
    """
    boto_config = BotoConfig(
        region_name=config.region,
        retries={"max_attempts": config.max_attempts, "mode": "standard"},
        connect_timeout=config.connect_timeout,
        read_timeout=config.read_timeout,
        request_checksum_calculation="when_required",
        response_checksum_validation="when_required",
    )

    kwargs = {"config": boto_config}
    endpoint = config.resolved_endpoint
    if endpoint:
        kwargs["endpoint_url"] = endpoint
    if config.access_key_id and config.secret_access_key:
        kwargs["aws_access_key_id"] = config.access_key_id
        kwargs["aws_secret_access_key"] = config.secret_access_key

    logger.debug(f"Creating S3 client (endpoint={endpoint or 'default'}, region={config.region})")
    return boto3.client("s3", **kwargs)
