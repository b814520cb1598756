from framecast.schemas.render import (
    AudioTrackSpec,
    QualityTier,
    RenderedVideo,
    RenderJobParameters,
    RenderResult,
    RenderTaskStatus,
    TaskStatus,
)

__all__ = [
    "AudioTrackSpec",
    "QualityTier",
    "RenderedVideo",
    "RenderJobParameters",
    "RenderResult",
    "RenderTaskStatus",
    "TaskStatus",
]
