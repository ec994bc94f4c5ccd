"""
Error taxonomy.

Every failure surfaced by the sampler derives from SamplerError so callers
can catch one type and still inspect which stage broke and why.
"""

from pathlib import Path
from typing import Optional, Union

from .config.constants import JobStage, TransferKind


class SamplerError(Exception):
    """Base class for all frame_sampler failures."""


class DecodeFailure(SamplerError):
    """The external decoder failed, or a frame image could not be decoded."""

    def __init__(
        self,
        message: str,
        stderr: Optional[str] = None,
        exit_code: Optional[int] = None,
        path: Optional[Union[str, Path]] = None,
    ):
        super().__init__(message)
        self.stderr = stderr
        self.exit_code = exit_code
        self.path = Path(path) if path is not None else None


class StorageFailure(SamplerError):
    """Local filesystem create/write error."""

    def __init__(self, message: str, path: Optional[Union[str, Path]] = None):
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class TransferFailure(SamplerError):
    """A fetch or put against object storage failed (including timeouts)."""

    def __init__(
        self,
        message: str,
        key: str,
        bucket: Optional[str] = None,
        kind: Optional[TransferKind] = None,
    ):
        super().__init__(message)
        self.key = key
        self.bucket = bucket
        self.kind = kind

    def __str__(self) -> str:
        where = f"{self.bucket}/{self.key}" if self.bucket else self.key
        kind = f"{self.kind.value} " if self.kind else ""
        return f"{kind}{where}: {self.args[0]}"


class ValidationFailure(SamplerError):
    """Malformed job parameters."""

    def __init__(self, message: str, errors: Optional[list] = None):
        super().__init__(message)
        self.errors = errors or []


class JobFailure(SamplerError):
    """A sampling job failed; carries the stage that failed and the cause."""

    def __init__(self, stage: JobStage, cause: BaseException, job_id: Optional[str] = None):
        super().__init__(f"{stage.value} failed: {cause}")
        self.stage = stage
        self.cause = cause
        self.job_id = job_id
