"""
Tests for the histogram filter.
"""

from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from conftest import make_decoder
from frame_sampler.config import FilterConfig
from frame_sampler.errors import DecodeFailure
from frame_sampler.modules.frame_extractor import Frame, FrameExtractor
from frame_sampler.modules.frame_filter import (
    HistogramFilter,
    compute_signature,
    l1_distance,
    load_signature,
    rgb_to_hsv,
)

RED = (255, 0, 0)
BLUE = (0, 0, 255)
GREEN = (0, 200, 0)


def write_frames(directory: Path, images) -> list[Frame]:
    frames = []
    for ordinal, img in enumerate(images, start=1):
        path = directory / f"frame_{ordinal:05d}.png"
        img.save(path)
        frames.append(Frame(ordinal=ordinal, path=path, time=float(ordinal - 1)))
    return frames


def solid(color, size=(64, 64)):
    return Image.new("RGB", size, color)


def banded(blue_rows: int):
    """64x64 red image with the top ``blue_rows`` rows blue."""
    img = solid(RED)
    if blue_rows:
        img.paste(BLUE, (0, 0, 64, blue_rows))
    return img


class TestHsv:
    """Colour space conversion."""

    def test_primary_hues(self):
        rgb = np.array([[1.0, 0, 0], [0, 1.0, 0], [0, 0, 1.0]])
        h, s, v = rgb_to_hsv(rgb)
        assert h.tolist() == [0.0, 120.0, 240.0]
        assert s.tolist() == [1.0, 1.0, 1.0]
        assert v.tolist() == [1.0, 1.0, 1.0]

    def test_negative_hue_wraps(self):
        h, _, _ = rgb_to_hsv(np.array([[1.0, 0, 1.0]]))
        assert h[0] == pytest.approx(300.0)

    def test_gray_has_no_hue(self):
        h, s, v = rgb_to_hsv(np.array([[0.5, 0.5, 0.5], [0.0, 0.0, 0.0]]))
        assert h.tolist() == [0.0, 0.0]
        assert s.tolist() == [0.0, 0.0]
        assert v.tolist() == [0.5, 0.0]


class TestSignature:
    """256-bin normalized histogram."""

    def test_is_distribution(self):
        img = Image.effect_noise((80, 50), 64).convert("RGB")
        sig = compute_signature(img)
        assert sig.shape == (256,)
        assert (sig >= 0).all()
        assert sig.sum() == pytest.approx(1.0)

    def test_solid_colour_single_bin(self):
        sig = compute_signature(solid(RED))
        assert sig[15] == pytest.approx(1.0)  # hue 0, top saturation, top value
        assert np.count_nonzero(sig) == 1

    def test_blue_bin(self):
        sig = compute_signature(solid(BLUE))
        assert sig[10 * 16 + 15] == pytest.approx(1.0)  # 240 degrees falls in hue bin 10

    def test_alpha_discarded(self):
        rgba = Image.new("RGBA", (64, 64), (255, 0, 0, 0))
        assert l1_distance(compute_signature(rgba), compute_signature(solid(RED))) == 0.0

    def test_disjoint_distance_is_max(self):
        assert l1_distance(compute_signature(solid(RED)), compute_signature(solid(BLUE))) == pytest.approx(2.0)

    def test_corrupt_image(self, tmp_path):
        bad = tmp_path / "frame_00001.png"
        bad.write_bytes(b"this is not a png")
        with pytest.raises(DecodeFailure):
            load_signature(bad)

    def test_oversized_image(self, tmp_path, monkeypatch):
        path = tmp_path / "frame_00001.png"
        solid(RED).save(path)
        # 64x64 is more than twice this limit, which Pillow treats as a bomb
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)

        with pytest.raises(DecodeFailure) as exc_info:
            load_signature(path)
        assert isinstance(exc_info.value.__cause__, Image.DecompressionBombError)
        assert exc_info.value.path == path


class TestHistogramFilter:
    """Greedy retention against the last kept frame."""

    def test_empty_input(self):
        result = HistogramFilter().filter_frames([])
        assert result.frames == []
        assert result.total_frames == 0

    def test_first_frame_always_kept(self, tmp_path):
        frames = write_frames(tmp_path, [solid(RED)] * 4)
        result = HistogramFilter().filter_frames(frames)
        assert [f.ordinal for f in result.frames] == [1]
        assert result.distances == [None]

    def test_threshold_zero_keeps_all(self, tmp_path):
        frames = write_frames(tmp_path, [solid(RED)] * 4)
        result = HistogramFilter(FilterConfig(change_threshold=0)).filter_frames(frames)
        assert result.frames == frames

    def test_threshold_two_keeps_only_first(self, tmp_path):
        frames = write_frames(tmp_path, [solid(RED), solid(BLUE), solid(RED), solid(BLUE)])
        result = HistogramFilter(FilterConfig(change_threshold=2.0)).filter_frames(frames)
        assert [f.ordinal for f in result.frames] == [1]

    def test_compares_to_last_kept_frame(self, tmp_path):
        # Each step is 0.156 from its predecessor, frame 3 is 0.3125 from frame 1
        frames = write_frames(tmp_path, [banded(0), banded(5), banded(10)])
        result = HistogramFilter(FilterConfig(change_threshold=0.2)).filter_frames(frames)
        assert [f.ordinal for f in result.frames] == [1, 3]
        assert result.distances[1] == pytest.approx(0.3125)

    def test_order_preserved_subset(self, tmp_path):
        images = [solid(RED), solid(RED), solid(BLUE), solid(GREEN), solid(GREEN), solid(RED)]
        frames = write_frames(tmp_path, images)
        result = HistogramFilter().filter_frames(frames)
        assert [f.ordinal for f in result.frames] == [1, 3, 4, 6]
        assert all(f in frames for f in result.frames)

    def test_consecutive_kept_distance_at_least_threshold(self, tmp_path):
        images = [banded(n) for n in (0, 3, 8, 12, 20, 21, 40, 64)]
        frames = write_frames(tmp_path, images)
        hf = HistogramFilter(FilterConfig(change_threshold=0.25))
        result = hf.filter_frames(frames)

        kept = hf.signatures(result.frames)
        for a, b in zip(kept, kept[1:]):
            assert l1_distance(a, b) >= 0.25

    def test_idempotent(self, tmp_path):
        images = [banded(n) for n in (0, 6, 14, 15, 30, 64)]
        frames = write_frames(tmp_path, images)
        hf = HistogramFilter()
        first = hf.filter_frames(frames)
        second = hf.filter_frames(frames)
        assert first.frames == second.frames
        assert first.distances == second.distances

    def test_undecodable_frame(self, tmp_path):
        frames = write_frames(tmp_path, [solid(RED)])
        broken = tmp_path / "frame_00002.png"
        broken.write_bytes(b"\x89PNG truncated")
        frames.append(Frame(ordinal=2, path=broken, time=1.0))
        with pytest.raises(DecodeFailure):
            HistogramFilter().filter_frames(frames)

    def test_negative_threshold_rejected(self):
        config = FilterConfig().model_copy(update={"change_threshold": -1.0})
        with pytest.raises(ValueError):
            HistogramFilter(config)


class TestScenarios:
    """Extractor output fed straight into the filter."""

    def test_static_video_keeps_one(self, tmp_path):
        extraction = FrameExtractor(runner=make_decoder([RED] * 10)).extract(tmp_path / "v.mp4", tmp_path / "f")
        assert extraction.frame_count == 10

        result = HistogramFilter(FilterConfig(change_threshold=0.2)).filter_frames(extraction.frames)
        assert [f.ordinal for f in result.frames] == [1]

    def test_alternating_video_keeps_all(self, tmp_path):
        colors = [RED if i % 2 == 0 else BLUE for i in range(10)]
        extraction = FrameExtractor(runner=make_decoder(colors)).extract(tmp_path / "v.mp4", tmp_path / "f")

        result = HistogramFilter(FilterConfig(change_threshold=0.2)).filter_frames(extraction.frames)
        assert result.retained_frames == 10
        assert result.retain_rate == 1.0
