"""
FFmpeg encoder invocation.

Turns the numbered PNG frame sequence into an H.264 MP4 (yuv420p,
faststart). Every FFmpeg run is bounded by a deadline proportional to the
job duration; a process still running past it is killed and the job fails.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from framecast.config import Settings, get_settings
from framecast.exceptions import EncoderError, EncoderTimeoutError

logger = logging.getLogger(__name__)

PercentCallback = Callable[[float], None]


@dataclass(frozen=True)
class EncoderPreset:
    """x264 settings for a quality tier."""

    preset: str
    crf: int
    threads: int
    bufsize: str


QUALITY_PRESETS: dict[str, EncoderPreset] = {
    # Fastest encode, smallest file
    "low": EncoderPreset(preset="ultrafast", crf=28, threads=1, bufsize="1M"),
    "medium": EncoderPreset(preset="fast", crf=23, threads=2, bufsize="2M"),
    # Best fidelity, most CPU
    "high": EncoderPreset(preset="medium", crf=18, threads=3, bufsize="4M"),
}


def get_preset(quality: str) -> EncoderPreset:
    try:
        return QUALITY_PRESETS[quality]
    except KeyError:
        raise ValueError(f"Unknown quality tier: {quality}") from None


def ffmpeg_deadline(duration_s: float, settings: Optional[Settings] = None) -> float:
    """Deadline in seconds for an FFmpeg run over a video of duration_s."""
    settings = settings or get_settings()
    return max(settings.encoder_timeout_floor_s, duration_s * settings.encoder_timeout_per_second_s)


async def run_ffmpeg(
    cmd: list[str],
    *,
    duration_s: float,
    timeout_s: float,
    progress_callback: Optional[PercentCallback] = None,
    stage: str = "encoding",
    error_cls: type[EncoderError] = EncoderError,
) -> None:
    """Run an FFmpeg command with -progress reporting and a hard deadline.

    The output path must be the last element of cmd.

    Raises:
        EncoderTimeoutError: If FFmpeg is still running after timeout_s
        EncoderError (or error_cls): If FFmpeg cannot start or exits non-zero
    """
    # Insert -progress pipe:1 before the output path to get progress on stdout
    cmd_with_progress = [*cmd[:-1], "-progress", "pipe:1", "-nostats", cmd[-1]]
    logger.info(f"[ENCODE] {stage} command: {' '.join(cmd_with_progress)}")

    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd_with_progress,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise error_cls(f"Failed to start ffmpeg: {e}") from e

    last_reported = -1.0

    async def _read_progress() -> None:
        nonlocal last_reported
        assert proc.stdout is not None
        async for raw_line in proc.stdout:
            line = raw_line.decode("utf-8", errors="replace").strip()
            if line.startswith("out_time_us=") and duration_s > 0:
                try:
                    time_s = int(line.split("=", 1)[1]) / 1_000_000
                except ValueError:
                    continue  # "N/A" before the first frame
                pct = min(100.0, max(0.0, time_s / duration_s * 100))
                if pct > last_reported:
                    last_reported = pct
                    if progress_callback:
                        progress_callback(pct)
            elif line == "progress=end":
                if progress_callback and last_reported < 100:
                    last_reported = 100.0
                    progress_callback(100.0)

    async def _communicate() -> bytes:
        assert proc.stderr is not None
        _, stderr = await asyncio.gather(_read_progress(), proc.stderr.read())
        await proc.wait()
        return stderr

    try:
        stderr_output = await asyncio.wait_for(_communicate(), timeout=timeout_s)
    except asyncio.TimeoutError:
        _kill(proc)
        await proc.wait()
        logger.error(f"[ENCODE] {stage} killed after {timeout_s:.0f}s deadline")
        raise EncoderTimeoutError(timeout_s, stage=stage) from None
    except asyncio.CancelledError:
        _kill(proc)
        raise

    if proc.returncode != 0:
        stderr_text = stderr_output.decode("utf-8", errors="replace")
        logger.error(f"[ENCODE] {stage} failed: {stderr_text[-2000:]}")
        raise error_cls(returncode=proc.returncode, stderr=stderr_text)


def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass  # Exited between the check and the kill


class EncoderInvoker:
    """Encodes a PNG frame sequence into an MP4 file."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.ffmpeg_path = self.settings.ffmpeg_path

    def build_encode_command(
        self,
        frame_pattern: str,
        fps: float,
        quality: str,
        output_path: str,
    ) -> list[str]:
        """Build the FFmpeg command for frame-sequence encoding without executing it.

        Args:
            frame_pattern: printf-style input pattern, e.g. /tmp/x/frame_%06d.png
            fps: Input and output frame rate
            quality: Quality tier (low, medium, high)
            output_path: Path for the encoded MP4

        Returns:
            FFmpeg command as list[str]
        """
        preset = get_preset(quality)
        return [
            self.ffmpeg_path,
            "-y",
            "-framerate", f"{fps:g}",
            "-i", frame_pattern,
            "-c:v", "libx264",
            "-pix_fmt", "yuv420p",
            "-movflags", "+faststart",
            "-preset", preset.preset,
            "-crf", str(preset.crf),
            "-threads", str(preset.threads),
            "-bufsize", preset.bufsize,
            output_path,
        ]

    async def encode(
        self,
        frame_pattern: str,
        fps: float,
        quality: str,
        duration_s: float,
        output_path: str | Path,
        progress_callback: Optional[PercentCallback] = None,
    ) -> str:
        """Encode the frames; progress_callback receives 0-100."""
        output_path = str(output_path)
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        cmd = self.build_encode_command(frame_pattern, fps, quality, output_path)
        timeout_s = ffmpeg_deadline(duration_s, self.settings)

        await run_ffmpeg(
            cmd,
            duration_s=duration_s,
            timeout_s=timeout_s,
            progress_callback=progress_callback,
            stage="encoding",
        )
        logger.info(f"[ENCODE] Encoded {output_path} ({quality} quality)")
        return output_path
