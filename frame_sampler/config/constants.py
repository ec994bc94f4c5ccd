"""
Constants and Enums - Single source of truth for all constant values.
"""

from enum import Enum


class ImageFormat(str, Enum):
    """Output image format for sampled frames."""
    PNG = "png"
    JPG = "jpg"


class TransferKind(str, Enum):
    """Direction of an object-storage transfer."""
    FETCH = "fetch"
    PUT = "put"


class FailurePolicy(str, Enum):
    """How a transfer batch reacts to a failed job."""
    FAIL_FAST = "fail_fast"   # First failure aborts the batch
    COLLECT = "collect"       # Run everything, report succeeded + failed


class JobStage(str, Enum):
    """Per-job pipeline state."""
    PENDING = "PENDING"
    FETCHING = "FETCHING"
    EXTRACTING = "EXTRACTING"
    FILTERING = "FILTERING"
    UPLOADING = "UPLOADING"
    DONE = "DONE"
    FAILED = "FAILED"


# Forward-only transitions; any stage may also move to FAILED
JOB_STAGE_ORDER = [
    JobStage.PENDING,
    JobStage.FETCHING,
    JobStage.EXTRACTING,
    JobStage.FILTERING,
    JobStage.UPLOADING,
    JobStage.DONE,
]

JOB_TERMINAL_STAGES = frozenset({
    JobStage.DONE,
    JobStage.FAILED,
})


# =============================================================================
# Default Tunables
# =============================================================================
DEFAULT_CHANGE_THRESHOLD = 0.2
DEFAULT_UPLOAD_CONCURRENCY_LIMIT = 100
DEFAULT_SAMPLE_RATE = 1.0
DEFAULT_IMAGE_FORMAT = ImageFormat.PNG
DEFAULT_FETCH_TIMEOUT = 10.0


# =============================================================================
# Frame Extraction
# =============================================================================
DECODER_BINARY = "ffmpeg"
FRAME_PREFIX = "frame_"
FRAME_NUMBER_WIDTH = 5


# =============================================================================
# Histogram Signature
# =============================================================================
SIGNATURE_SIZE = 64          # Frames are downsampled to SIZE x SIZE
HUE_BINS = 16
SATURATION_BINS = 4
VALUE_BINS = 4
HISTOGRAM_BINS = HUE_BINS * SATURATION_BINS * VALUE_BINS
MAX_L1_DISTANCE = 2.0        # Between two probability distributions


# =============================================================================
# Object Storage
# =============================================================================
SINGLE_PUT_MAX_BYTES = 5 * 1024 * 1024   # Above this, multipart upload
MULTIPART_CHUNK_BYTES = 5 * 1024 * 1024
MULTIPART_CONCURRENCY = 4
R2_ENDPOINT_TEMPLATE = "https://{account_id}.r2.cloudflarestorage.com"
DEFAULT_STORAGE_REGION = "auto"
DEFAULT_STORAGE_MAX_ATTEMPTS = 3


# =============================================================================
# Workspace
# =============================================================================
DEFAULT_WORK_ROOT = "/tmp"
DEFAULT_WORK_PREFIX = "frame-job-"
VIDEO_BASENAME = "downloaded"
FRAMES_SUBDIR = "frames"
