"""
Audio mixing module using FFmpeg.

This module handles:
- Per-track volume, end trim and start delay
- Mixing all tracks into one stream bounded by the video duration
- Muxing the mix with the rendered video (video stream copied, not re-encoded)
"""

import logging
import os
from pathlib import Path
from typing import Optional

from framecast.config import Settings, get_settings
from framecast.exceptions import AudioMixError
from framecast.render.encoder import PercentCallback, ffmpeg_deadline, run_ffmpeg
from framecast.services.audio_validation import ValidatedAudioTrack

logger = logging.getLogger(__name__)


class AudioMixer:
    """
    FFmpeg-based audio mixer for rendered videos.

    Input 0 is always the video; track i is input i + 1. Tracks are filtered
    in the order supplied, so the graph is deterministic for identical input.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.ffmpeg_path = self.settings.ffmpeg_path

    def build_track_filter(self, track: ValidatedAudioTrack, index: int) -> str:
        """Build the filter chain for one track, labelled [a{index}]."""
        parts: list[str] = []

        # Apply volume
        if track.volume != 1:
            parts.append(f"volume={track.volume:g}")
        else:
            parts.append("anull")  # Pass through

        # Trim the track's own audio to its on-screen length
        if track.end is not None:
            parts.append(f"atrim=duration={track.end - track.start:g}")
            parts.append("asetpts=PTS-STARTPTS")

        # Position on the timeline
        if track.start > 0:
            parts.append(f"adelay={round(track.start * 1000)}:all=1")

        return f"[{index + 1}:a]" + ",".join(parts) + f"[a{index}]"

    def build_filter_graph(self, tracks: list[ValidatedAudioTrack], duration_s: float) -> str:
        """Build the full filter_complex; the result is labelled [finalaudio]."""
        if not tracks:
            raise ValueError("At least one audio track is required")

        filter_parts = [self.build_track_filter(track, i) for i, track in enumerate(tracks)]

        # Mix; output length follows the first input
        mix_inputs = "".join(f"[a{i}]" for i in range(len(tracks)))
        filter_parts.append(f"{mix_inputs}amix=inputs={len(tracks)}:duration=first:normalize=0[mixedaudio]")

        # Audio never outlives the video
        filter_parts.append(f"[mixedaudio]atrim=duration={duration_s:g}[finalaudio]")
        return ";".join(filter_parts)

    def build_mix_command(
        self,
        video_path: str,
        tracks: list[ValidatedAudioTrack],
        duration_s: float,
        output_path: str,
    ) -> list[str]:
        """Build the FFmpeg mux command without executing it."""
        inputs: list[str] = ["-i", video_path]
        for track in tracks:
            inputs.extend(["-i", track.local_path])

        return [
            self.ffmpeg_path,
            "-y",
            *inputs,
            "-filter_complex",
            self.build_filter_graph(tracks, duration_s),
            "-map", "0:v",
            "-map", "[finalaudio]",
            "-c:v", "copy",
            "-c:a", "aac",
            "-b:a", self.settings.render_audio_bitrate,
            "-shortest",
            output_path,
        ]

    async def mix_into_video(
        self,
        video_path: str | Path,
        tracks: list[ValidatedAudioTrack],
        duration_s: float,
        progress_callback: Optional[PercentCallback] = None,
    ) -> str:
        """
        Mix tracks into the video, then atomically replace the video file.

        Args:
            video_path: Video-only file produced by the encoder
            tracks: Validated tracks in the order supplied by the caller
            duration_s: Job duration; the mixed audio is trimmed to it
            progress_callback: Receives 0-100

        Returns:
            Path of the (replaced) video file
        """
        video_path = str(video_path)
        base, ext = os.path.splitext(video_path)
        mixed_path = f"{base}.mixed{ext or '.mp4'}"

        logger.info(f"[MIX] Adding {len(tracks)} audio track(s) to {video_path}")
        cmd = self.build_mix_command(video_path, tracks, duration_s, mixed_path)
        try:
            await run_ffmpeg(
                cmd,
                duration_s=duration_s,
                timeout_s=ffmpeg_deadline(duration_s, self.settings),
                progress_callback=progress_callback,
                stage="audio mixing",
                error_cls=AudioMixError,
            )
            os.replace(mixed_path, video_path)
        finally:
            if os.path.exists(mixed_path):
                os.remove(mixed_path)

        logger.info(f"[MIX] Replaced video with audio-mixed version: {video_path}")
        return video_path
