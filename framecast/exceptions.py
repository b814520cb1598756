"""Custom exceptions for the render/encode pipeline.

Every fatal job error is a FramecastError so the worker can turn it into a
structured failure payload (code, message, details) on the task.
"""

from typing import Any

from framecast.constants.error_codes import get_error_spec


class FramecastError(Exception):
    """Base exception for all framecast errors."""

    code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        details: str | None = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        self.details = details
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        """Convert exception to the failure fields stored on a task."""
        spec = get_error_spec(self.code)
        payload: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "retryable": spec.get("retryable", False),
        }
        if self.details:
            payload["details"] = self.details
        if "suggested_fix" in spec:
            payload["suggested_fix"] = spec["suggested_fix"]
        return payload


# =============================================================================
# Parameter errors
# =============================================================================


class RenderParameterError(FramecastError):
    """Render parameters failed validation; no task is created."""

    code = "VALIDATION_ERROR"
    message = "Invalid render parameters"

    def __init__(self, message: str | None = None, *, errors: list[str] | None = None):
        self.errors = errors or []
        msg = message or (self.message + (": " + "; ".join(self.errors) if self.errors else ""))
        super().__init__(msg)


# =============================================================================
# Render function errors
# =============================================================================


class RenderFunctionError(FramecastError):
    """Render function threw or returned an unusable value."""

    code = "RENDER_FUNCTION_ERROR"
    message = "Failed to evaluate render function"

    def __init__(self, reason: str | None = None, *, frame: int | None = None):
        self.frame = frame
        msg = f"{self.message}: {reason}" if reason else self.message
        if frame is not None:
            msg += f" (frame {frame})"
        super().__init__(msg)


# =============================================================================
# Encoder errors
# =============================================================================


class EncoderError(FramecastError):
    """FFmpeg exited with a non-zero status."""

    code = "ENCODER_ERROR"
    message = "FFmpeg encoding failed"

    def __init__(self, message: str | None = None, *, returncode: int | None = None, stderr: str | None = None):
        self.returncode = returncode
        msg = message or self.message
        if returncode is not None:
            msg += f" (exit code {returncode})"
        super().__init__(msg, details=stderr[-2000:] if stderr else None)


class EncoderTimeoutError(FramecastError):
    """FFmpeg was still running past its deadline."""

    code = "ENCODER_TIMEOUT"
    message = "FFmpeg timed out"

    def __init__(self, timeout_s: float | None = None, *, stage: str = "encoding"):
        self.timeout_s = timeout_s
        msg = f"FFmpeg {stage} timeout after {timeout_s:.0f}s" if timeout_s else self.message
        super().__init__(msg)


# =============================================================================
# Audio errors
# =============================================================================


class AudioDownloadError(FramecastError):
    """Audio file could not be fetched."""

    code = "AUDIO_DOWNLOAD_ERROR"
    message = "Failed to download audio file"


class MediaProbeError(FramecastError):
    """ffprobe failed or reported an unusable file."""

    code = "MEDIA_PROBE_ERROR"
    message = "Failed to probe media file"


class AudioValidationError(FramecastError):
    """One or more audio tracks failed validation."""

    code = "AUDIO_VALIDATION_ERROR"
    message = "Audio validation failed"

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(f"{self.message}: {', '.join(errors)}")


class AudioMixError(EncoderError):
    """FFmpeg failed while mixing audio into the rendered video."""

    code = "AUDIO_MIX_ERROR"
    message = "FFmpeg audio mixing failed"


class RenderCancelledError(FramecastError):
    """Worker was cancelled before finishing."""

    code = "RENDER_CANCELLED"
    message = "Render cancelled"
