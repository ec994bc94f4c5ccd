"""
Tests for the frame extraction module.
"""

import shutil
from fractions import Fraction
from pathlib import Path

import pytest

from conftest import make_decoder
from frame_sampler.config import ExtractionConfig
from frame_sampler.errors import DecodeFailure, StorageFailure
from frame_sampler.modules.frame_extractor import Frame, FrameExtractor, fps_expression

RED = (255, 0, 0)
BLUE = (0, 0, 255)


class TestBuildCommand:
    """Decoder invocation."""

    def test_flags(self):
        extractor = FrameExtractor(ExtractionConfig(sample_rate=2))
        cmd = extractor.build_command(Path("/videos/in.mov"))
        assert cmd == [
            "ffmpeg", "-hide_banner", "-loglevel", "error", "-y",
            "-i", "/videos/in.mov", "-vf", "fps=2", "frame_%05d.png",
        ]

    def test_fractional_rate_and_jpg(self):
        extractor = FrameExtractor(ExtractionConfig(sample_rate=0.5, image_format="jpg"))
        cmd = extractor.build_command(Path("in.mp4"))
        assert "fps=1/2" in cmd
        assert cmd[-1] == "frame_%05d.jpg"

    @pytest.mark.parametrize("rate, expected", [
        (1.0, "1"),
        (30000 / 1001, "30000/1001"),
        (1 / 3, "1/3"),
        (1234567.0, "1234567"),
        (0.1, "1/10"),
    ])
    def test_rate_passed_exactly(self, rate, expected):
        assert fps_expression(rate) == expected
        assert float(Fraction(expected)) == pytest.approx(rate, rel=1e-12)

    def test_runs_in_output_dir(self, tmp_path):
        runner = make_decoder([RED])
        out = tmp_path / "frames"
        FrameExtractor(runner=runner).extract(tmp_path / "in.mp4", out)
        call = runner.calls[0]
        assert call["cwd"] == str(out)
        assert call["cmd"][call["cmd"].index("-i") + 1] == str((tmp_path / "in.mp4").resolve())


class TestExtract:
    """Enumeration of decoder output."""

    def test_frames_in_order_with_times(self, tmp_path):
        runner = make_decoder([RED, BLUE, RED, BLUE])
        extractor = FrameExtractor(ExtractionConfig(sample_rate=2), runner=runner)
        result = extractor.extract(tmp_path / "in.mp4", tmp_path / "frames")

        assert result.frame_count == 4
        assert [f.ordinal for f in result.frames] == [1, 2, 3, 4]
        assert [f.time for f in result.frames] == [0.0, 0.5, 1.0, 1.5]
        assert result.frames[0].path.name == "frame_00001.png"
        assert result.decode.success

    def test_creates_output_dir(self, tmp_path):
        out = tmp_path / "a" / "b"
        FrameExtractor(runner=make_decoder([RED])).extract(tmp_path / "in.mp4", out)
        assert out.is_dir()

    def test_unrelated_files_survive(self, tmp_path):
        out = tmp_path / "frames"
        out.mkdir()
        (out / "notes.txt").write_text("keep me")
        (out / "thumb.png").write_bytes(b"existing")

        result = FrameExtractor(runner=make_decoder([RED, BLUE])).extract(tmp_path / "in.mp4", out)

        assert result.frame_count == 2
        assert (out / "notes.txt").read_text() == "keep me"
        assert (out / "thumb.png").read_bytes() == b"existing"

    def test_zero_frames_is_not_an_error(self, tmp_path):
        result = FrameExtractor(runner=make_decoder([])).extract(tmp_path / "in.mp4", tmp_path / "frames")
        assert result.frames == []

    def test_gap_truncates_sequence(self, tmp_path):
        runner = make_decoder([RED] * 5, skip=(3,))
        result = FrameExtractor(runner=runner).extract(tmp_path / "in.mp4", tmp_path / "frames")
        assert [f.ordinal for f in result.frames] == [1, 2]

    def test_ignores_other_format(self, tmp_path):
        runner = make_decoder([RED, RED])
        out = tmp_path / "frames"
        FrameExtractor(runner=runner).extract(tmp_path / "in.mp4", out)
        jpg = FrameExtractor(ExtractionConfig(image_format="jpg"))
        assert jpg.enumerate_frames(out) == []


class TestFailures:
    """Decoder and filesystem failures."""

    def test_nonzero_exit(self, tmp_path):
        runner = make_decoder([], returncode=1, stderr="in.mp4: Invalid data found when processing input\n")
        with pytest.raises(DecodeFailure) as exc_info:
            FrameExtractor(runner=runner).extract(tmp_path / "in.mp4", tmp_path / "frames")

        err = exc_info.value
        assert err.exit_code == 1
        assert "Invalid data found" in err.stderr
        assert err.path == tmp_path / "in.mp4"

    def test_missing_decoder_binary(self, tmp_path):
        extractor = FrameExtractor(ExtractionConfig(decoder="no-such-decoder-binary"))
        with pytest.raises(DecodeFailure) as exc_info:
            extractor.extract(tmp_path / "in.mp4", tmp_path / "frames")
        assert exc_info.value.exit_code is None
        assert "failed to start" in exc_info.value.stderr

    def test_output_dir_is_a_file(self, tmp_path):
        blocker = tmp_path / "frames"
        blocker.write_text("not a directory")
        with pytest.raises(StorageFailure):
            FrameExtractor(runner=make_decoder([RED])).extract(tmp_path / "in.mp4", blocker)


class TestFrameNumber:
    def test_parsed_from_filename(self):
        extractor = FrameExtractor()
        frame = Frame(ordinal=42, path=Path("/x/frame_00042.png"), time=41.0)
        assert extractor.parse_frame_number(frame) == "00042"

    def test_falls_back_to_ordinal(self):
        extractor = FrameExtractor()
        frame = Frame(ordinal=7, path=Path("/x/still.png"), time=6.0)
        assert extractor.parse_frame_number(frame) == "00007"


@pytest.mark.skipif(shutil.which("ffmpeg") is None, reason="ffmpeg not installed")
class TestRealDecoder:
    """Runs the real ffmpeg against a generated clip."""

    def test_static_clip(self, tmp_path):
        import subprocess

        video = tmp_path / "static.mp4"
        subprocess.run(
            ["ffmpeg", "-hide_banner", "-loglevel", "error", "-y",
             "-f", "lavfi", "-i", "color=c=red:s=64x48:d=3:r=10",
             "-pix_fmt", "yuv420p", str(video)],
            check=True,
        )

        result = FrameExtractor(ExtractionConfig(sample_rate=1)).extract(video, tmp_path / "frames")
        assert 2 <= result.frame_count <= 4
        assert [f.ordinal for f in result.frames] == list(range(1, result.frame_count + 1))
