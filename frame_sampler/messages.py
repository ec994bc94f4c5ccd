"""
Job Messages

Pydantic models for the "process a sampling job" operation. Python code
uses snake_case; the wire form (JSON) uses camelCase aliases.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .config import ImageFormat
from .errors import ValidationFailure


class WireModel(BaseModel):
    """Base for models exchanged with callers."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class SourceLocation(WireModel):
    """Where the video lives."""
    bucket: str = Field(..., min_length=1)
    file_key: str = Field(..., min_length=1)


class DestinationLocation(WireModel):
    """Where frames go: <bucket>/<folder>/<frameNumber>.<ext>"""
    bucket: str = Field(..., min_length=1)
    folder: str = Field(default="")

    @field_validator("folder", mode="before")
    @classmethod
    def strip_slashes(cls, v):
        return v.strip("/") if isinstance(v, str) else v


class SampleOptions(WireModel):
    """Per-request tunables; unset fields fall back to configuration."""
    change_threshold: Optional[float] = Field(default=None, ge=0.0)
    upload_concurrency_limit: Optional[int] = Field(default=None, ge=1)
    sample_rate: Optional[float] = Field(default=None, gt=0)
    image_format: Optional[ImageFormat] = Field(default=None)


class SampleRequest(WireModel):
    """Input of one sampling job."""
    source: SourceLocation
    destination: DestinationLocation
    options: SampleOptions = Field(default_factory=SampleOptions)


class SampledFrame(WireModel):
    """One uploaded frame."""
    frame_number: str
    frame_file_key: str
    frame_time: float
    ordinal: int
    etag: Optional[str] = None


class FailedTransfer(WireModel):
    """An upload that failed under the collect policy."""
    frame_file_key: str
    error: str


class JobStats(WireModel):
    """Counters and stage timings for one job."""
    job_id: str
    sampled_frames: int = 0
    retained_frames: int = 0
    uploaded_frames: int = 0
    failed_uploads: int = 0
    stage_seconds: dict[str, float] = Field(default_factory=dict)


class SampleResponse(WireModel):
    """Output of one sampling job, frames in time order."""
    message: str = "Frames uploaded"
    frame_file_keys: list[SampledFrame] = Field(default_factory=list)
    failed: list[FailedTransfer] = Field(default_factory=list)
    stats: Optional[JobStats] = None


def parse_request(payload: Any) -> SampleRequest:
    """
    Validate a raw request payload.

    Raises:
        ValidationFailure: payload is malformed
    """
    try:
        return SampleRequest.model_validate(payload)
    except ValidationError as e:
        details = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
        raise ValidationFailure(f"Invalid request: {'; '.join(details)}", errors=details) from e
