"""Processing modules."""

from .frame_extractor import DecodeResult, ExtractionResult, Frame, FrameExtractor
from .frame_filter import FilterResult, HistogramFilter, compute_signature, l1_distance
from .storage import ObjectStore, S3ObjectStore, create_s3_client
from .transfer_pool import BoundedTransferPool, TransferBatchResult, TransferJob, TransferResult

__all__ = [
    "DecodeResult",
    "ExtractionResult",
    "Frame",
    "FrameExtractor",
    "FilterResult",
    "HistogramFilter",
    "compute_signature",
    "l1_distance",
    "ObjectStore",
    "S3ObjectStore",
    "create_s3_client",
    "BoundedTransferPool",
    "TransferBatchResult",
    "TransferJob",
    "TransferResult",
]
