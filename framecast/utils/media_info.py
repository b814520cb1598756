"""Media file information utilities using FFprobe."""

import asyncio
import json
from typing import Any, Optional

from framecast.config import get_settings
from framecast.exceptions import MediaProbeError


def _get_settings():
    """Get settings lazily to avoid import issues in tests."""
    return get_settings()


async def _run_ffprobe(file_path: str, *args: str, timeout_s: Optional[float] = None) -> dict:
    """Run ffprobe and return parsed JSON."""
    settings = _get_settings()
    timeout_s = timeout_s or settings.probe_timeout_s
    cmd = [
        settings.ffprobe_path,
        "-v", "quiet",
        "-print_format", "json",
        *args,
        file_path,
    ]

    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise MediaProbeError(f"Failed to start ffprobe: {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout_s)
    except asyncio.TimeoutError:
        if proc.returncode is None:
            proc.kill()
        await proc.wait()
        raise MediaProbeError(f"FFprobe timeout after {timeout_s:.0f}s") from None

    if proc.returncode != 0:
        raise MediaProbeError(
            f"FFprobe failed with code {proc.returncode}",
            details=stderr.decode("utf-8", errors="replace") or None,
        )

    try:
        return json.loads(stdout)
    except json.JSONDecodeError as e:
        raise MediaProbeError(f"Failed to parse ffprobe output: {e}") from e


async def get_audio_duration(file_path: str, timeout_s: Optional[float] = None) -> float:
    """
    Verify a file has an audio stream and return its duration.

    Args:
        file_path: Path to media file
        timeout_s: Probe deadline (defaults to settings.probe_timeout_s)

    Returns:
        Duration in seconds (from the container, else the first audio stream)

    Raises:
        MediaProbeError: If ffprobe fails, no audio stream exists, or the
            duration is not positive
    """
    data = await _run_ffprobe(file_path, "-show_format", "-show_streams", timeout_s=timeout_s)

    audio_streams = [s for s in data.get("streams", []) if s.get("codec_type") == "audio"]
    if not audio_streams:
        raise MediaProbeError("No audio streams found in file")

    duration = _to_float(data.get("format", {}).get("duration")) or _to_float(audio_streams[0].get("duration"))
    if duration <= 0:
        raise MediaProbeError("Invalid audio duration")
    return duration


async def get_media_info(file_path: str) -> dict[str, Any]:
    """
    Get complete media file information.

    Args:
        file_path: Path to media file

    Returns:
        Dictionary with duration (seconds), dimensions, codecs, and stream flags

    Raises:
        MediaProbeError: If ffprobe fails
    """
    data = await _run_ffprobe(file_path, "-show_format", "-show_streams")

    result: dict[str, Any] = {
        "duration": None,
        "width": None,
        "height": None,
        "fps": None,
        "video_codec": None,
        "pix_fmt": None,
        "video_frames": None,
        "audio_codec": None,
        "audio_duration": None,
        "has_video": False,
        "has_audio": False,
    }

    format_info = data.get("format", {})
    if "duration" in format_info:
        result["duration"] = _to_float(format_info["duration"])

    for stream in data.get("streams", []):
        codec_type = stream.get("codec_type")

        if codec_type == "video":
            result["has_video"] = True
            result["width"] = stream.get("width")
            result["height"] = stream.get("height")
            result["video_codec"] = stream.get("codec_name")
            result["pix_fmt"] = stream.get("pix_fmt")
            if stream.get("nb_frames", "").isdigit():
                result["video_frames"] = int(stream["nb_frames"])

            # Calculate FPS
            r_frame_rate = stream.get("r_frame_rate", "0/1")
            if "/" in r_frame_rate:
                num, den = r_frame_rate.split("/")
                if int(den) > 0:
                    result["fps"] = int(num) / int(den)

        elif codec_type == "audio":
            result["has_audio"] = True
            result["audio_codec"] = stream.get("codec_name")
            result["audio_duration"] = _to_float(stream.get("duration")) or None

    return result


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0
