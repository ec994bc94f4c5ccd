"""Configuration package."""

from .constants import (
    DEFAULT_CHANGE_THRESHOLD,
    DEFAULT_FETCH_TIMEOUT,
    DEFAULT_IMAGE_FORMAT,
    DEFAULT_SAMPLE_RATE,
    DEFAULT_UPLOAD_CONCURRENCY_LIMIT,
    JOB_STAGE_ORDER,
    JOB_TERMINAL_STAGES,
    FailurePolicy,
    ImageFormat,
    JobStage,
    TransferKind,
)
from .config import (
    ExtractionConfig,
    FilterConfig,
    LoggingConfig,
    SamplerConfig,
    StorageConfig,
    TransferConfig,
    WorkspaceConfig,
)
from .loader import (
    get_extraction_config,
    get_filter_config,
    get_logging_config,
    get_sampler_config,
    get_storage_config,
    get_transfer_config,
    get_workspace_config,
    load_config,
    print_config,
    reload_config,
)

__all__ = [
    "DEFAULT_CHANGE_THRESHOLD",
    "DEFAULT_FETCH_TIMEOUT",
    "DEFAULT_IMAGE_FORMAT",
    "DEFAULT_SAMPLE_RATE",
    "DEFAULT_UPLOAD_CONCURRENCY_LIMIT",
    "JOB_STAGE_ORDER",
    "JOB_TERMINAL_STAGES",
    "FailurePolicy",
    "ImageFormat",
    "JobStage",
    "TransferKind",
    "ExtractionConfig",
    "FilterConfig",
    "LoggingConfig",
    "SamplerConfig",
    "StorageConfig",
    "TransferConfig",
    "WorkspaceConfig",
    "get_extraction_config",
    "get_filter_config",
    "get_logging_config",
    "get_sampler_config",
    "get_storage_config",
    "get_transfer_config",
    "get_workspace_config",
    "load_config",
    "print_config",
    "reload_config",
]
