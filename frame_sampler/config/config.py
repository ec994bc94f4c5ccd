"""
Configuration models - Pydantic models for YAML config.
"""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .constants import (
    DECODER_BINARY,
    DEFAULT_CHANGE_THRESHOLD,
    DEFAULT_FETCH_TIMEOUT,
    DEFAULT_IMAGE_FORMAT,
    DEFAULT_SAMPLE_RATE,
    DEFAULT_STORAGE_MAX_ATTEMPTS,
    DEFAULT_STORAGE_REGION,
    DEFAULT_UPLOAD_CONCURRENCY_LIMIT,
    DEFAULT_WORK_PREFIX,
    DEFAULT_WORK_ROOT,
    FRAME_NUMBER_WIDTH,
    FRAME_PREFIX,
    MULTIPART_CHUNK_BYTES,
    MULTIPART_CONCURRENCY,
    R2_ENDPOINT_TEMPLATE,
    SIGNATURE_SIZE,
    SINGLE_PUT_MAX_BYTES,
    FailurePolicy,
    ImageFormat,
)


class ExtractionConfig(BaseModel):
    """Frame extraction stage config."""
    sample_rate: float = Field(default=DEFAULT_SAMPLE_RATE, gt=0, description="Frames per second to keep")
    image_format: ImageFormat = Field(default=DEFAULT_IMAGE_FORMAT)
    decoder: str = Field(default=DECODER_BINARY, description="Decoder executable")
    frame_prefix: str = Field(default=FRAME_PREFIX)
    number_width: int = Field(default=FRAME_NUMBER_WIDTH, ge=1, le=10)
    decode_timeout: Optional[float] = Field(default=None, gt=0, description="Seconds, None = no limit")

    @property
    def output_pattern(self) -> str:
        """Decoder output pattern, e.g. frame_%05d.png"""
        return f"{self.frame_prefix}%0{self.number_width}d.{self.image_format.value}"

    def frame_filename(self, ordinal: int) -> str:
        return f"{self.frame_prefix}{ordinal:0{self.number_width}d}.{self.image_format.value}"


class FilterConfig(BaseModel):
    """Histogram filter stage config."""
    change_threshold: float = Field(
        default=DEFAULT_CHANGE_THRESHOLD, ge=0.0,
        description="Min L1 histogram distance to the last kept frame (0-2)",
    )
    signature_size: int = Field(default=SIGNATURE_SIZE, ge=1)
    show_progress: bool = Field(default=False)


class TransferConfig(BaseModel):
    """Bounded transfer pool config."""
    concurrency_limit: int = Field(default=DEFAULT_UPLOAD_CONCURRENCY_LIMIT, ge=1)
    fetch_timeout: Optional[float] = Field(default=DEFAULT_FETCH_TIMEOUT, gt=0, description="Seconds")
    failure_policy: FailurePolicy = Field(default=FailurePolicy.FAIL_FAST)
    skip_existing_fetch: bool = Field(default=False, description="Skip fetch when local file exists")


class StorageConfig(BaseModel):
    """S3-compatible object storage connection config."""
    endpoint_url: Optional[str] = Field(default=None)
    account_id: Optional[str] = Field(default=None, description="Cloudflare account id (R2)")
    access_key_id: Optional[str] = Field(default=None)
    secret_access_key: Optional[str] = Field(default=None)
    region: str = Field(default=DEFAULT_STORAGE_REGION)
    max_attempts: int = Field(default=DEFAULT_STORAGE_MAX_ATTEMPTS, ge=1)
    connect_timeout: float = Field(default=10.0, gt=0)
    read_timeout: float = Field(default=60.0, gt=0)
    single_put_max_bytes: int = Field(default=SINGLE_PUT_MAX_BYTES, ge=1)
    multipart_chunk_bytes: int = Field(default=MULTIPART_CHUNK_BYTES, ge=MULTIPART_CHUNK_BYTES)
    multipart_concurrency: int = Field(default=MULTIPART_CONCURRENCY, ge=1)

    @field_validator("endpoint_url", "account_id", "access_key_id", "secret_access_key", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def resolved_endpoint(self) -> Optional[str]:
        """Explicit endpoint, else R2 endpoint from account id, else SDK default."""
        if self.endpoint_url:
            return self.endpoint_url
        if self.account_id:
            return R2_ENDPOINT_TEMPLATE.format(account_id=self.account_id)
        return None


class WorkspaceConfig(BaseModel):
    """Per-job local working directory config."""
    root: Path = Field(default=Path(DEFAULT_WORK_ROOT))
    prefix: str = Field(default=DEFAULT_WORK_PREFIX)
    cleanup: bool = Field(default=True, description="Delete the job directory when done")

    @field_validator("root", mode="before")
    @classmethod
    def ensure_path(cls, v):
        return Path(v) if isinstance(v, str) else v


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO")
    file: Optional[str] = Field(default=None)


class SamplerConfig(BaseModel):
    """Main configuration combining all stages."""
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    filter: FilterConfig = Field(default_factory=FilterConfig)
    transfer: TransferConfig = Field(default_factory=TransferConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
