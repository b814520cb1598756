"""
Tests for the FFmpeg encoder invocation.

Test cases:
1. Quality presets and command building
2. Deadline formula
3. run_ffmpeg progress parsing, failures and timeouts (using `sh` as a
   stand-in process)
4. Real encoding of a PNG sequence (requires ffmpeg)
"""

from pathlib import Path

import pytest

from framecast.exceptions import AudioMixError, EncoderError, EncoderTimeoutError
from framecast.render.encoder import (
    QUALITY_PRESETS,
    EncoderInvoker,
    ffmpeg_deadline,
    get_preset,
    run_ffmpeg,
)
from framecast.utils.media_info import get_media_info


class TestPresets:
    """Tests for quality tier presets."""

    @pytest.mark.parametrize(
        "quality,preset,crf,threads,bufsize",
        [
            ("low", "ultrafast", 28, 1, "1M"),
            ("medium", "fast", 23, 2, "2M"),
            ("high", "medium", 18, 3, "4M"),
        ],
    )
    def test_preset_values(self, quality, preset, crf, threads, bufsize):
        p = QUALITY_PRESETS[quality]
        assert (p.preset, p.crf, p.threads, p.bufsize) == (preset, crf, threads, bufsize)

    def test_unknown_tier(self):
        with pytest.raises(ValueError, match="Unknown quality tier"):
            get_preset("ultra")


class TestBuildEncodeCommand:
    """Tests for the encode command (no execution)."""

    def test_command_structure(self, settings):
        cmd = EncoderInvoker(settings).build_encode_command("/w/frame_%06d.png", 24, "medium", "/out/v.mp4")

        assert cmd[0] == "ffmpeg"
        assert cmd[-1] == "/out/v.mp4"
        assert cmd[cmd.index("-framerate") + 1] == "24"
        assert cmd[cmd.index("-i") + 1] == "/w/frame_%06d.png"
        assert cmd[cmd.index("-c:v") + 1] == "libx264"
        assert cmd[cmd.index("-pix_fmt") + 1] == "yuv420p"
        assert cmd[cmd.index("-movflags") + 1] == "+faststart"
        assert cmd[cmd.index("-preset") + 1] == "fast"
        assert cmd[cmd.index("-crf") + 1] == "23"
        assert cmd[cmd.index("-threads") + 1] == "2"
        assert cmd[cmd.index("-bufsize") + 1] == "2M"

    def test_fractional_fps(self, settings):
        cmd = EncoderInvoker(settings).build_encode_command("p", 29.97, "low", "o.mp4")
        assert cmd[cmd.index("-framerate") + 1] == "29.97"

    def test_custom_ffmpeg_path(self, settings):
        settings.ffmpeg_path = "/opt/ffmpeg/bin/ffmpeg"
        cmd = EncoderInvoker(settings).build_encode_command("p", 24, "high", "o.mp4")
        assert cmd[0] == "/opt/ffmpeg/bin/ffmpeg"


class TestDeadline:
    """Deadline is max(30s, duration * 10s)."""

    @pytest.mark.parametrize("duration,expected", [(1, 30), (3, 30), (3.5, 35), (60, 600)])
    def test_deadline(self, settings, duration, expected):
        assert ffmpeg_deadline(duration, settings) == expected


class TestRunFfmpeg:
    """Tests for process supervision, using `sh -c` in place of ffmpeg.

    run_ffmpeg inserts its progress flags before the last element, which
    `sh -c` receives as positional parameters and ignores.
    """

    @pytest.mark.asyncio
    async def test_progress_is_reported(self):
        script = "printf 'out_time_us=N/A\\nout_time_us=500000\\nprogress=continue\\nout_time_us=1000000\\nprogress=end\\n'"
        reported: list[float] = []

        await run_ffmpeg(
            ["sh", "-c", script, "out.mp4"],
            duration_s=2,
            timeout_s=10,
            progress_callback=reported.append,
        )

        assert reported == [25.0, 50.0, 100.0]

    @pytest.mark.asyncio
    async def test_progress_is_capped_and_monotonic(self):
        script = "printf 'out_time_us=3000000\\nout_time_us=1000000\\n'"
        reported: list[float] = []

        await run_ffmpeg(["sh", "-c", script, "out.mp4"], duration_s=2, timeout_s=10, progress_callback=reported.append)

        assert reported == [100.0]

    @pytest.mark.asyncio
    async def test_nonzero_exit_raises_with_stderr(self):
        with pytest.raises(EncoderError) as exc_info:
            await run_ffmpeg(["sh", "-c", "echo 'codec boom' >&2; exit 3", "out.mp4"], duration_s=1, timeout_s=10)

        assert exc_info.value.returncode == 3
        assert "exit code 3" in exc_info.value.message
        assert "codec boom" in exc_info.value.details

    @pytest.mark.asyncio
    async def test_error_class_is_configurable(self):
        with pytest.raises(AudioMixError):
            await run_ffmpeg(
                ["sh", "-c", "exit 1", "out.mp4"],
                duration_s=1,
                timeout_s=10,
                error_cls=AudioMixError,
            )

    @pytest.mark.asyncio
    async def test_missing_binary(self):
        with pytest.raises(EncoderError, match="Failed to start ffmpeg"):
            await run_ffmpeg(["/nonexistent/ffmpeg", "out.mp4"], duration_s=1, timeout_s=10)

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self):
        """A process still running at the deadline is killed and reported."""
        with pytest.raises(EncoderTimeoutError) as exc_info:
            await run_ffmpeg(["sh", "-c", "sleep 30", "out.mp4"], duration_s=1, timeout_s=0.3, stage="audio mixing")

        assert exc_info.value.code == "ENCODER_TIMEOUT"
        assert "audio mixing" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_large_stderr_does_not_block(self):
        """Output on both pipes is drained concurrently."""
        script = "yes e | head -n 100000 >&2; yes o | head -n 50000"

        await run_ffmpeg(["sh", "-c", script, "out.mp4"], duration_s=1, timeout_s=10)


@pytest.mark.requires_ffmpeg
class TestEncodeIntegration:
    """Encode a real PNG sequence."""

    @pytest.fixture
    def frames(self, tmp_path: Path) -> str:
        from PIL import Image

        frames_dir = tmp_path / "frames"
        frames_dir.mkdir()
        for i in range(12):
            Image.new("RGB", (64, 48), (i * 20, 0, 0)).save(frames_dir / f"frame_{i:06d}.png")
        return str(frames_dir / "frame_%06d.png")

    @pytest.mark.asyncio
    async def test_encode_png_sequence(self, settings, frames, tmp_path: Path):
        output_path = tmp_path / "out" / "video.mp4"
        reported: list[float] = []

        await EncoderInvoker(settings).encode(frames, 12, "low", 1.0, output_path, progress_callback=reported.append)

        assert output_path.exists()
        info = await get_media_info(str(output_path))
        assert info["video_codec"] == "h264"
        assert info["pix_fmt"] == "yuv420p"
        assert (info["width"], info["height"]) == (64, 48)
        assert info["video_frames"] == 12
        assert info["has_audio"] is False
        assert reported and reported[-1] == 100.0
        assert reported == sorted(reported)

    @pytest.mark.asyncio
    async def test_missing_frames_fail(self, settings, tmp_path: Path):
        with pytest.raises(EncoderError):
            await EncoderInvoker(settings).encode(
                str(tmp_path / "none" / "frame_%06d.png"), 24, "low", 1.0, tmp_path / "v.mp4"
            )
