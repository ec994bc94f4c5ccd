"""
Sampling Pipeline

Runs one sampling job: fetch the video, extract frames, drop near-duplicates,
upload the survivors. Each stage failure aborts the job and is reported with
the stage it came from.

Stages:
    FETCHING -> EXTRACTING -> FILTERING -> UPLOADING -> DONE
    (any stage) -> FAILED
"""

import asyncio
import time
import uuid
from pathlib import Path
from typing import Optional

from .config import (
    JOB_STAGE_ORDER,
    JOB_TERMINAL_STAGES,
    JobStage,
    SamplerConfig,
    TransferKind,
)
from .config.constants import FRAMES_SUBDIR, VIDEO_BASENAME
from .errors import JobFailure
from .logging import get_logger
from .messages import (
    DestinationLocation,
    FailedTransfer,
    JobStats,
    SampledFrame,
    SampleOptions,
    SampleRequest,
    SampleResponse,
    SourceLocation,
)
from .modules.frame_extractor import Frame, FrameExtractor, Runner
from .modules.frame_filter import HistogramFilter
from .modules.storage import ObjectStore
from .modules.transfer_pool import BoundedTransferPool, TransferJob
from .utils.io import cleanup_dir, create_tmp_dir

logger = get_logger(__name__)


class SamplingJob:
    """State of a single job run. Created per run, never reused."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        self.stage = JobStage.PENDING
        self.failed_stage: Optional[JobStage] = None
        self.error: Optional[BaseException] = None
        self.stats = JobStats(job_id=job_id)
        self._stage_started = time.perf_counter()

    def _close_stage(self) -> None:
        if self.stage != JobStage.PENDING:
            elapsed = time.perf_counter() - self._stage_started
            self.stats.stage_seconds[self.stage.value.lower()] = round(elapsed, 3)
        self._stage_started = time.perf_counter()

    def advance(self, stage: JobStage) -> None:
        """Move forward one stage."""
        if self.stage in JOB_TERMINAL_STAGES:
            raise RuntimeError(f"Job {self.job_id} already finished ({self.stage.value})")
        if JOB_STAGE_ORDER.index(stage) != JOB_STAGE_ORDER.index(self.stage) + 1:
            raise RuntimeError(f"Invalid transition {self.stage.value} -> {stage.value}")

        self._close_stage()
        logger.info(f"[{self.job_id}] {self.stage.value} -> {stage.value}")
        self.stage = stage

    def fail(self, error: BaseException) -> JobStage:
        """Record a failure; returns the stage that failed."""
        self._close_stage()
        self.failed_stage = self.stage
        self.error = error
        logger.error(f"[{self.job_id}] {self.stage.value} -> FAILED: {error}")
        self.stage = JobStage.FAILED
        return self.failed_stage


class SamplingPipeline:
    """
    Orchestrates Extractor -> Filter -> Transfer Pool for one job at a time.

    Holds no state across jobs: every run gets its own working directory,
    transfer pool and job record.

    Example:
        >>> pipeline = SamplingPipeline(S3ObjectStore.from_config(cfg.storage), cfg)
        >>> response = await pipeline.run(SampleRequest(
        ...     source=SourceLocation(bucket="videos", file_key="rec.mov"),
        ...     destination=DestinationLocation(bucket="frames", folder="rec"),
        ... ))
        >>> response.frame_file_keys[0].frame_file_key
        'rec/00001.png'
    """

    def __init__(
        self,
        store: ObjectStore,
        config: Optional[SamplerConfig] = None,
        runner: Optional[Runner] = None,
    ):
        """
        Args:
            store: Object store used for the fetch and the uploads
            config: Defaults for every tunable
            runner: Decoder process runner (defaults to subprocess.run)
        """
        self.store = store
        self.config = config or SamplerConfig()
        self.runner = runner

    def resolve_config(self, options: Optional[SampleOptions] = None) -> SamplerConfig:
        """Apply per-request tunables on top of the configured defaults."""
        if options is None:
            return self.config

        def _set(**values):
            return {k: v for k, v in values.items() if v is not None}

        cfg = self.config
        return cfg.model_copy(update={
            "extraction": cfg.extraction.model_copy(update=_set(
                sample_rate=options.sample_rate,
                image_format=options.image_format,
            )),
            "filter": cfg.filter.model_copy(update=_set(
                change_threshold=options.change_threshold,
            )),
            "transfer": cfg.transfer.model_copy(update=_set(
                concurrency_limit=options.upload_concurrency_limit,
            )),
        })

    async def run(self, request: SampleRequest, job_id: Optional[str] = None) -> SampleResponse:
        """
        Process one sampling job.

        Returns:
            SampleResponse with uploaded frames in time order

        Raises:
            JobFailure: carrying the failed stage and the original error
        """
        job = SamplingJob(job_id or uuid.uuid4().hex[:12])
        config = self.resolve_config(request.options)
        extractor = FrameExtractor(config.extraction, runner=self.runner)
        histogram_filter = HistogramFilter(config.filter)
        pool = BoundedTransferPool.from_config(self.store, config.transfer)
        work_dir: Optional[Path] = None

        logger.info(
            f"[{job.job_id}] Sampling {request.source.bucket}/{request.source.file_key} -> "
            f"{request.destination.bucket}/{request.destination.folder} "
            f"(rate={config.extraction.sample_rate:g}, threshold={config.filter.change_threshold}, "
            f"concurrency={config.transfer.concurrency_limit})"
        )

        try:
            job.advance(JobStage.FETCHING)
            work_dir = create_tmp_dir(config.workspace.root, config.workspace.prefix)
            video_path = await self._fetch(pool, request.source, work_dir)

            job.advance(JobStage.EXTRACTING)
            extraction = await self._run_blocking(extractor.extract, video_path, work_dir / FRAMES_SUBDIR)
            job.stats.sampled_frames = extraction.frame_count

            job.advance(JobStage.FILTERING)
            filtered = await self._run_blocking(histogram_filter.filter_frames, extraction.frames)
            job.stats.retained_frames = filtered.retained_frames

            job.advance(JobStage.UPLOADING)
            frames, failed = await self._upload(pool, extractor, filtered.frames, request.destination)
            job.stats.uploaded_frames = len(frames)
            job.stats.failed_uploads = len(failed)

            job.advance(JobStage.DONE)
        except Exception as e:
            stage = job.fail(e)
            raise JobFailure(stage, e, job_id=job.job_id) from e
        finally:
            pool.close()
            if work_dir is not None and config.workspace.cleanup:
                cleanup_dir(work_dir)

        logger.info(
            f"[{job.job_id}] Uploaded {len(frames)} frames to "
            f"{request.destination.bucket}/{request.destination.folder}"
        )
        message = "Frames uploaded" if not failed else f"Frames uploaded with {len(failed)} failures"
        return SampleResponse(message=message, frame_file_keys=frames, failed=failed, stats=job.stats)

    async def _fetch(self, pool: BoundedTransferPool, source: SourceLocation, work_dir: Path) -> Path:
        suffix = Path(source.file_key).suffix or ".mp4"
        video_path = work_dir / f"{VIDEO_BASENAME}{suffix}"

        batch = await pool.run([TransferJob(TransferKind.FETCH, source.bucket, source.file_key, video_path)])
        if batch.failures:
            raise batch.failures[0]

        logger.info(f"Downloaded video {source.bucket}/{source.file_key} to {video_path}")
        return video_path

    async def _upload(
        self,
        pool: BoundedTransferPool,
        extractor: FrameExtractor,
        frames: list[Frame],
        destination: DestinationLocation,
    ) -> tuple[list[SampledFrame], list[FailedTransfer]]:
        ext = extractor.config.image_format.value
        jobs = []
        for frame in frames:
            frame_number = extractor.parse_frame_number(frame)
            key = frame_key(destination.folder, frame_number, ext)
            jobs.append(TransferJob(
                TransferKind.PUT, destination.bucket, key, frame.path,
                context=(frame, frame_number),
            ))

        batch = await pool.run(jobs)

        uploaded = []
        for result in sorted(batch.results, key=lambda r: r.index):
            frame, frame_number = result.job.context
            uploaded.append(SampledFrame(
                frame_number=frame_number,
                frame_file_key=result.job.key,
                frame_time=frame.time,
                ordinal=frame.ordinal,
                etag=result.etag,
            ))
        failed = [FailedTransfer(frame_file_key=f.key, error=str(f.args[0])) for f in batch.failures]
        return uploaded, failed

    async def _run_blocking(self, func, *args):
        """Run CPU/disk-bound stage work off the event loop."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)


def frame_key(folder: str, frame_number: str, ext: str) -> str:
    """Destination key {folder}/{frameNumber}.{ext}"""
    folder = folder.strip("/")
    return f"{folder}/{frame_number}.{ext}" if folder else f"{frame_number}.{ext}"
