from framecast.render.audio_mixer import AudioMixer
from framecast.render.context import (
    FrameContext,
    RenderOutput,
    normalize_render_result,
    total_frame_count,
)
from framecast.render.encoder import QUALITY_PRESETS, EncoderInvoker, ffmpeg_deadline
from framecast.render.frame_renderer import FrameRenderer
from framecast.render.sandbox import RenderSandbox

__all__ = [
    "AudioMixer",
    "EncoderInvoker",
    "FrameContext",
    "FrameRenderer",
    "QUALITY_PRESETS",
    "RenderOutput",
    "RenderSandbox",
    "ffmpeg_deadline",
    "normalize_render_result",
    "total_frame_count",
]
