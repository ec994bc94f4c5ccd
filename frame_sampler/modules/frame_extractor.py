"""
Frame Extraction Module

Samples a video at a fixed rate with an external decoder (ffmpeg) into
sequentially numbered image files, then enumerates them as Frames.
"""

import re
import subprocess
from dataclasses import dataclass, field
from fractions import Fraction
from pathlib import Path
from typing import Callable, Optional

from ..config import ExtractionConfig
from ..errors import DecodeFailure
from ..logging import get_logger
from ..utils.io import ensure_dir, list_files

logger = get_logger(__name__)

# Signature-compatible with subprocess.run
Runner = Callable[..., subprocess.CompletedProcess]


@dataclass(frozen=True)
class Frame:
    """One sampled still image."""
    ordinal: int  # 1-based, contiguous
    path: Path
    time: float  # Seconds into video: (ordinal - 1) / rate


@dataclass
class DecodeResult:
    """Outcome of one decoder invocation."""
    success: bool
    exit_code: Optional[int]
    stderr: str = ""
    command: list[str] = field(default_factory=list)


@dataclass
class ExtractionResult:
    """Result of frame extraction for a video."""
    video_path: Path
    output_dir: Path
    frames: list[Frame] = field(default_factory=list)
    decode: Optional[DecodeResult] = None

    @property
    def frame_count(self) -> int:
        return len(self.frames)


class FrameExtractor:
    """
    Video frame sampler backed by an external decoder process.

    Uses the ``fps`` video filter rather than an output frame-rate stride so
    variable frame-rate sources are sampled by presentation time.

    Example:
        >>> extractor = FrameExtractor(ExtractionConfig(sample_rate=1))
        >>> result = extractor.extract(Path("video.mov"), Path("/tmp/job/frames"))
        >>> [f.time for f in result.frames]
        [0.0, 1.0, 2.0]
    """

    def __init__(self, config: Optional[ExtractionConfig] = None, runner: Optional[Runner] = None):
        """
        Initialize frame extractor.

        Args:
            config: Extraction configuration
            runner: Process runner, defaults to subprocess.run
        """
        self.config = config or ExtractionConfig()
        self._runner = runner or subprocess.run
        self._frame_re = re.compile(
            rf"^{re.escape(self.config.frame_prefix)}(\d+)\.{re.escape(self.config.image_format.value)}$"
        )

    def build_command(self, video_path: Path) -> list[str]:
        """Decoder argv; output pattern is relative to the output directory."""
        return [
            self.config.decoder,
            "-hide_banner",
            "-loglevel", "error",
            "-y",
            "-i", str(video_path),
            "-vf", f"fps={fps_expression(self.config.sample_rate)}",
            self.config.output_pattern,
        ]

    def run_decoder(self, video_path: Path, output_dir: Path) -> DecodeResult:
        """
        Run the decoder with output_dir as working directory.

        Never raises for decoder problems; inspect the returned DecodeResult.
        """
        cmd = self.build_command(Path(video_path).resolve())
        logger.debug(f"Running decoder: {' '.join(cmd)} (cwd={output_dir})")

        try:
            proc = self._runner(
                cmd,
                cwd=str(output_dir),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                timeout=self.config.decode_timeout,
            )
        except FileNotFoundError as e:
            return DecodeResult(success=False, exit_code=None, stderr=f"{self.config.decoder} failed to start: {e}", command=cmd)
        except subprocess.TimeoutExpired:
            return DecodeResult(
                success=False,
                exit_code=None,
                stderr=f"{self.config.decoder} timed out after {self.config.decode_timeout}s",
                command=cmd,
            )

        stderr = (proc.stderr or "").strip()
        return DecodeResult(success=proc.returncode == 0, exit_code=proc.returncode, stderr=stderr, command=cmd)

    def enumerate_frames(self, output_dir: Path) -> list[Frame]:
        """
        Probe frame_00001, frame_00002, ... and stop at the first missing ordinal.

        A gap in the numbering truncates the sequence; leftovers are logged.
        """
        output_dir = Path(output_dir)
        rate = self.config.sample_rate
        frames = []
        ordinal = 1
        while True:
            path = output_dir / self.config.frame_filename(ordinal)
            if not path.is_file():
                break
            frames.append(Frame(ordinal=ordinal, path=path, time=(ordinal - 1) / rate))
            ordinal += 1

        stranded = self._ordinals_after(output_dir, len(frames))
        if stranded:
            logger.warning(
                f"Frame numbering gap after ordinal {len(frames)} in {output_dir}: "
                f"{len(stranded)} later frames ignored (first: {stranded[0]})"
            )
        return frames

    def _ordinals_after(self, output_dir: Path, last: int) -> list[int]:
        found = []
        for path in list_files(output_dir, prefix=self.config.frame_prefix):
            match = self._frame_re.match(path.name)
            if match and int(match.group(1)) > last:
                found.append(int(match.group(1)))
        return sorted(found)

    def extract(self, video_path: Path, output_dir: Path) -> ExtractionResult:
        """
        Sample a video into output_dir and enumerate the frames.

        Args:
            video_path: Path to video file
            output_dir: Where frame files are written (created if missing)

        Returns:
            ExtractionResult with frames in ordinal order

        Raises:
            StorageFailure: output_dir cannot be created
            DecodeFailure: decoder exited non-zero or could not run
        """
        video_path = Path(video_path)
        output_dir = ensure_dir(output_dir)

        decode = self.run_decoder(video_path, output_dir)
        if not decode.success:
            logger.error(f"Decoder failed for {video_path} (exit={decode.exit_code}): {decode.stderr}")
            raise DecodeFailure(
                f"{self.config.decoder} exited with code {decode.exit_code}: {decode.stderr}",
                stderr=decode.stderr,
                exit_code=decode.exit_code,
                path=video_path,
            )

        frames = self.enumerate_frames(output_dir)
        logger.info(f"Extracted {len(frames)} frames from {video_path.name} at {self.config.sample_rate:g} fps")

        return ExtractionResult(
            video_path=video_path,
            output_dir=output_dir,
            frames=frames,
            decode=decode,
        )

    def parse_frame_number(self, frame: Frame) -> str:
        """
        Recover the zero-padded frame number from the sampled filename.

        Falls back to the frame ordinal if the name does not match.
        """
        match = self._frame_re.match(frame.path.name)
        if match:
            return match.group(1)
        return f"{frame.ordinal:0{self.config.number_width}d}"


def fps_expression(rate: float) -> str:
    """
    Sample rate as an exact ffmpeg rational ("2", "1/3", "30000/1001").

    Frame times are computed from the same float, so the decoder and the
    timestamps agree on the rate.
    """
    fraction = Fraction(rate).limit_denominator()
    if fraction.denominator == 1:
        return str(fraction.numerator)
    return f"{fraction.numerator}/{fraction.denominator}"
