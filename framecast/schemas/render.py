from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

QualityTier = Literal["low", "medium", "high"]
TaskStatus = Literal["pending", "processing", "completed", "failed"]


class AudioTrackSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str = Field(min_length=1)  # http(s) URL or local path
    start: float = Field(ge=0)  # Seconds from video start
    end: float | None = None  # Seconds from video start (exclusive of delay)
    volume: float = Field(default=1.0, ge=0, le=1)

    @model_validator(mode="after")
    def _check_range(self) -> "AudioTrackSpec":
        if not self.url.strip():
            raise ValueError("url must be a non-empty string")
        if self.end is not None and self.end <= self.start:
            raise ValueError(f"end ({self.end}) must be greater than start ({self.start})")
        return self


class RenderJobParameters(BaseModel):
    """Immutable input of a render job."""

    model_config = ConfigDict(frozen=True)

    width: int = Field(gt=0)
    height: int = Field(gt=0)
    duration: float = Field(gt=0)  # Seconds
    render: str = Field(min_length=1)  # JavaScript function source
    fps: float = Field(default=24, ge=1, le=60)
    quality: QualityTier = "medium"
    args: dict[str, Any] | None = None
    audio: list[AudioTrackSpec] | None = None

    @model_validator(mode="after")
    def _check_audio_within_duration(self) -> "RenderJobParameters":
        if not self.render.strip():
            raise ValueError("render must be a non-empty string")
        for i, track in enumerate(self.audio or []):
            if track.start >= self.duration:
                raise ValueError(
                    f"audio[{i}].start ({track.start}) must be less than video duration ({self.duration})"
                )
            if track.end is not None and track.end > self.duration:
                raise ValueError(
                    f"audio[{i}].end ({track.end}) cannot exceed video duration ({self.duration})"
                )
        return self


class RenderedVideo(BaseModel):
    url: str
    path: str
    size: int  # Bytes
    frames: int
    duration: float
    fps: float
    width: int
    height: int


class RenderResult(BaseModel):
    """Terminal payload of a task: either `video` or `error`/`details`."""

    success: bool
    video: RenderedVideo | None = None
    error: str | None = None
    details: str | None = None
    code: str | None = None
    retryable: bool | None = None


class RenderTaskStatus(BaseModel):
    """Poll view of a task."""

    task_id: str
    status: TaskStatus
    progress: int
    created_at: datetime
    updated_at: datetime
    result: RenderResult | None = None  # Set once completed
    error: RenderResult | None = None  # Set once failed
    parameters: RenderJobParameters | None = None  # Only in listings
