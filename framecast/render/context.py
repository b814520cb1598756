"""Per-frame values exchanged with the caller's render function."""

import math
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from framecast.exceptions import RenderFunctionError
from framecast.schemas.render import RenderJobParameters


def total_frame_count(duration: float, fps: float) -> int:
    """Number of frames for a job: ceil(duration * fps).

    The product is rounded first so float noise (0.1 * 30 = 3.0000000000000004)
    does not add a frame.
    """
    return math.ceil(round(duration * fps, 6))


@dataclass(frozen=True)
class FrameContext:
    """Value passed to the render function for one frame."""

    time: float  # Seconds, frame / fps
    frame: int  # Zero-based index
    duration: float
    width: int
    height: int
    args: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "args", MappingProxyType(dict(self.args)))

    def to_dict(self) -> dict[str, Any]:
        """Flattened view with caller args spread in; built-in keys win."""
        return {
            **self.args,
            "time": self.time,
            "frame": self.frame,
            "duration": self.duration,
            "width": self.width,
            "height": self.height,
        }


def build_frame_context(params: RenderJobParameters, frame: int) -> FrameContext:
    return FrameContext(
        time=frame / params.fps,
        frame=frame,
        duration=params.duration,
        width=params.width,
        height=params.height,
        args=params.args or {},
    )


def iter_frame_contexts(params: RenderJobParameters) -> Iterator[FrameContext]:
    """Yield contexts for every frame in strictly increasing index order."""
    for frame in range(total_frame_count(params.duration, params.fps)):
        yield build_frame_context(params, frame)


@dataclass(frozen=True)
class RenderOutput:
    """Normalized result of one render function call."""

    html: str
    wait_until: str | None = None  # Readiness predicate source, evaluated in the page


def normalize_render_result(raw: Any) -> RenderOutput:
    """Normalize what the sandbox returned into a RenderOutput.

    A bare string is markup without a readiness predicate. A mapping must
    carry a string `html`; `waitUntil` (or `wait_until`) is optional.
    """
    if isinstance(raw, str):
        return RenderOutput(html=raw)

    if isinstance(raw, Mapping):
        html = raw.get("html")
        if not isinstance(html, str):
            raise RenderFunctionError("render function must return a string or an object with an 'html' string")
        wait_until = raw.get("waitUntil", raw.get("wait_until"))
        if wait_until is not None and not isinstance(wait_until, str):
            raise RenderFunctionError("waitUntil must be a function")
        return RenderOutput(html=html, wait_until=wait_until or None)

    raise RenderFunctionError(
        f"render function returned {type(raw).__name__}, expected a string or an object with 'html'"
    )
