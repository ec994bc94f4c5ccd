"""
frame_sampler - sample video frames, drop near-duplicates, upload to object storage.

Example:
    >>> from frame_sampler import SamplingPipeline, SampleRequest, S3ObjectStore, get_sampler_config
    >>> config = get_sampler_config()
    >>> pipeline = SamplingPipeline(S3ObjectStore.from_config(config.storage), config)
    >>> response = await pipeline.run(SampleRequest.model_validate(payload))
"""

from .config import SamplerConfig, get_sampler_config
from .errors import (
    DecodeFailure,
    JobFailure,
    SamplerError,
    StorageFailure,
    TransferFailure,
    ValidationFailure,
)
from .messages import SampleRequest, SampleResponse, SampledFrame, parse_request
from .modules import (
    BoundedTransferPool,
    Frame,
    FrameExtractor,
    HistogramFilter,
    ObjectStore,
    S3ObjectStore,
    TransferJob,
)
from .pipeline import SamplingPipeline

__version__ = "0.1.0"

__all__ = [
    "SamplerConfig",
    "get_sampler_config",
    "DecodeFailure",
    "JobFailure",
    "SamplerError",
    "StorageFailure",
    "TransferFailure",
    "ValidationFailure",
    "SampleRequest",
    "SampleResponse",
    "SampledFrame",
    "parse_request",
    "BoundedTransferPool",
    "Frame",
    "FrameExtractor",
    "HistogramFilter",
    "ObjectStore",
    "S3ObjectStore",
    "TransferJob",
    "SamplingPipeline",
]
