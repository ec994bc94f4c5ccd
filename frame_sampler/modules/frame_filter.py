"""
Frame Filter Module

Drops near-duplicate frames using a 256-bin HSV colour histogram and the L1
distance to the last kept frame.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError
from tqdm import tqdm

from ..config import FilterConfig
from ..config.constants import HISTOGRAM_BINS, HUE_BINS, MAX_L1_DISTANCE, SATURATION_BINS, VALUE_BINS
from ..errors import DecodeFailure
from ..logging import get_logger
from .frame_extractor import Frame

logger = get_logger(__name__)

HUE_BIN_DEGREES = 360.0 / HUE_BINS


def rgb_to_hsv(rgb: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Convert an (..., 3) array of RGB in [0, 1] to hue (degrees), saturation, value.

    Hue is 0 where max == min; negative hues are wrapped by +360.
    """
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
    mx = rgb.max(axis=-1)
    mn = rgb.min(axis=-1)
    d = mx - mn

    chroma = d > 0
    safe_d = np.where(chroma, d, 1.0)

    # Channel precedence on ties: red, then green, then blue
    red_max = chroma & (mx == r)
    green_max = chroma & ~red_max & (mx == g)
    blue_max = chroma & ~red_max & ~green_max

    h = np.zeros_like(mx)
    h = np.where(red_max, np.fmod((g - b) / safe_d, 6.0), h)
    h = np.where(green_max, (b - r) / safe_d + 2.0, h)
    h = np.where(blue_max, (r - g) / safe_d + 4.0, h)
    h = h * 60.0
    h = np.where(h < 0, h + 360.0, h)

    s = np.where(mx > 0, d / np.where(mx > 0, mx, 1.0), 0.0)
    return h, s, mx


def compute_signature(image: Image.Image, size: int = 64) -> np.ndarray:
    """
    Colour signature of an image: normalized 16x4x4 HSV joint histogram.

    Args:
        image: Any PIL image (alpha is discarded)
        size: Side of the square the image is downsampled to

    Returns:
        float64 array of length 256 summing to 1 (all zeros for an empty image)
    """
    rgb_image = image.convert("RGB")
    if rgb_image.size != (size, size):
        rgb_image = ImageOps.fit(rgb_image, (size, size), method=Image.Resampling.LANCZOS)

    rgb = np.asarray(rgb_image, dtype=np.float64) / 255.0
    h, s, v = rgb_to_hsv(rgb)

    hi = np.minimum(HUE_BINS - 1, np.floor(h / HUE_BIN_DEGREES)).astype(np.int64)
    si = np.minimum(SATURATION_BINS - 1, np.floor(s * SATURATION_BINS)).astype(np.int64)
    vi = np.minimum(VALUE_BINS - 1, np.floor(v * VALUE_BINS)).astype(np.int64)
    idx = hi * (SATURATION_BINS * VALUE_BINS) + si * VALUE_BINS + vi

    hist = np.bincount(idx.ravel(), minlength=HISTOGRAM_BINS).astype(np.float64)
    total = hist.sum() or 1.0
    return hist / total


def l1_distance(a: np.ndarray, b: np.ndarray) -> float:
    """Sum of absolute per-bin differences."""
    return float(np.abs(a - b).sum())


def load_signature(path: Path, size: int = 64) -> np.ndarray:
    """Decode an image file and compute its signature."""
    try:
        with Image.open(path) as img:
            img.load()
            return compute_signature(img, size=size)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise DecodeFailure(f"Cannot decode frame {path}: {e}", path=path) from e


@dataclass
class FilterResult:
    """Result of filtering operation."""
    total_frames: int
    frames: list[Frame] = field(default_factory=list)
    distances: list[Optional[float]] = field(default_factory=list)  # None for the first frame

    @property
    def retained_frames(self) -> int:
        return len(self.frames)

    @property
    def retain_rate(self) -> float:
        return self.retained_frames / max(self.total_frames, 1)


class HistogramFilter:
    """
    Greedy near-duplicate filter over an ordered frame sequence.

    The first frame is always kept. Every later frame is kept only if its
    signature is at least ``change_threshold`` (L1) away from the signature
    of the most recently kept frame. A threshold of 2.0 or more keeps only
    the first frame.

    Example:
        >>> hf = HistogramFilter(FilterConfig(change_threshold=0.2))
        >>> result = hf.filter_frames(frames)
        >>> result.retained_frames
        3
    """

    def __init__(self, config: Optional[FilterConfig] = None):
        self.config = config or FilterConfig()
        if self.config.change_threshold < 0:
            raise ValueError(f"change_threshold must be >= 0, got {self.config.change_threshold}")

    def signatures(self, frames: Sequence[Frame]) -> list[np.ndarray]:
        """Compute signatures sequentially, in frame order."""
        iterator = frames
        if self.config.show_progress:
            iterator = tqdm(frames, desc="Histograms", unit="frame", leave=False)
        return [load_signature(frame.path, size=self.config.signature_size) for frame in iterator]

    def filter_frames(self, frames: Sequence[Frame]) -> FilterResult:
        """
        Keep frames that differ enough from the last kept frame.

        Args:
            frames: Frames in time order

        Returns:
            FilterResult with the retained subsequence (order preserved)

        Raises:
            DecodeFailure: A frame image could not be read
        """
        frames = list(frames)
        if not frames:
            return FilterResult(total_frames=0)

        threshold = self.config.change_threshold
        signatures = self.signatures(frames)

        kept = [frames[0]]
        distances: list[Optional[float]] = [None]
        last_kept = signatures[0]

        for frame, signature in zip(frames[1:], signatures[1:]):
            dist = l1_distance(signature, last_kept)
            # No pair of distributions is further apart than MAX_L1_DISTANCE
            if threshold < MAX_L1_DISTANCE and dist >= threshold:
                kept.append(frame)
                distances.append(dist)
                last_kept = signature
            else:
                logger.debug(f"Dropped frame {frame.ordinal} (distance {dist:.4f} < {threshold})")

        result = FilterResult(total_frames=len(frames), frames=kept, distances=distances)
        logger.info(
            f"Filter complete: {result.retained_frames}/{result.total_frames} frames kept "
            f"({result.retain_rate:.1%}) at threshold {threshold}"
        )
        return result
