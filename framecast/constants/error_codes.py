"""Error codes dictionary for render job failures.

Single source of truth for error codes, their retryability, and the
suggested fix surfaced in a failed task's payload.
"""

from typing import TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    suggested_fix: str


ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Parameter errors (rejected before a task exists)
    # ==========================================================================
    "VALIDATION_ERROR": {
        "retryable": False,
        "suggested_fix": "Fix the render parameters and submit again",
    },
    # ==========================================================================
    # Job errors (fatal to the task)
    # ==========================================================================
    "RENDER_FUNCTION_ERROR": {
        "retryable": False,
        "suggested_fix": "Make the render function return a string or an object with an 'html' string",
    },
    "ENCODER_ERROR": {
        "retryable": True,
        "suggested_fix": "Check that ffmpeg is installed and supports libx264",
    },
    "ENCODER_TIMEOUT": {
        "retryable": True,
        "suggested_fix": "Use a lower quality tier or a shorter duration",
    },
    "AUDIO_VALIDATION_ERROR": {
        "retryable": True,
        "suggested_fix": "Make sure every audio URL is reachable and points to an audio file",
    },
    "AUDIO_DOWNLOAD_ERROR": {
        "retryable": True,
    },
    "MEDIA_PROBE_ERROR": {
        "retryable": False,
    },
    "AUDIO_MIX_ERROR": {
        "retryable": True,
    },
    "RENDER_CANCELLED": {
        "retryable": True,
    },
    "INTERNAL_ERROR": {
        "retryable": True,
    },
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Get the specification for an error code.

    Unknown codes fall back to INTERNAL_ERROR.
    """
    return ERROR_CODES.get(code, ERROR_CODES["INTERNAL_ERROR"])


def is_retryable(code: str) -> bool:
    """Check if an error code is retryable."""
    return get_error_spec(code).get("retryable", False)
