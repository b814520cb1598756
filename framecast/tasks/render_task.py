"""Background worker that runs one render job end to end."""

import asyncio
import gc
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from framecast.config import Settings, get_settings
from framecast.exceptions import FramecastError, RenderCancelledError
from framecast.render.audio_mixer import AudioMixer
from framecast.render.encoder import EncoderInvoker
from framecast.render.frame_renderer import FrameRenderer
from framecast.schemas.render import RenderedVideo, RenderJobParameters, RenderResult
from framecast.services.audio_validation import AudioValidator, ValidatedAudioTrack, cleanup_audio_files
from framecast.services.task_manager import RenderStatus, RenderTaskManager, render_task_manager
from framecast.services.video_store import build_video_url, output_path_for

logger = logging.getLogger(__name__)

# Progress layout (percent of the whole task)
AUDIO_VALIDATION_START = 5
AUDIO_VALIDATION_END = 10
FRAMES_SPAN = 65
ENCODING_SPAN = 20
MIXING_SPAN = 5


def failure_result(exc: BaseException) -> RenderResult:
    """Failure payload for a task from any exception."""
    if isinstance(exc, FramecastError):
        payload = exc.to_payload()
        details = exc.message if not exc.details else f"{exc.message}\n{exc.details}"
        return RenderResult(
            success=False,
            error="Failed to render video",
            details=details,
            code=payload["code"],
            retryable=payload["retryable"],
        )
    return RenderResult(
        success=False,
        error="Failed to render video",
        details=str(exc) or type(exc).__name__,
        code="INTERNAL_ERROR",
    )


async def perform_render(
    task_id: str,
    params: RenderJobParameters,
    manager: Optional[RenderTaskManager] = None,
    settings: Optional[Settings] = None,
) -> RenderResult:
    """
    Execute a render job, reporting into the task registry.

    Order: audio validation (fail fast), frames, encoding, audio mixing.
    Every outcome ends in manager.set_result; exceptions are never re-raised
    except cancellation.

    Args:
        task_id: Task created for this job
        params: Validated job parameters

    Returns:
        The result stored on the task
    """
    manager = manager or render_task_manager
    settings = settings or get_settings()
    validated_tracks: list[ValidatedAudioTrack] = []
    work_dir: Optional[str] = None
    output_path = output_path_for(task_id, settings)

    def progress(value: float) -> None:
        manager.set_progress(task_id, value)

    try:
        logger.info(f"[TASK] Starting render for {task_id}")
        manager.set_status(task_id, RenderStatus.PROCESSING, 0)

        # Step 1: Validate audio before any frame work
        if params.audio:
            progress(AUDIO_VALIDATION_START)
            validated_tracks = await AudioValidator(settings).validate(list(params.audio))
            progress(AUDIO_VALIDATION_END)
        base = AUDIO_VALIDATION_END if params.audio else 0

        # Step 2: Render frames
        Path(settings.frames_root).mkdir(parents=True, exist_ok=True)
        work_dir = tempfile.mkdtemp(prefix=f"{task_id}_", dir=settings.frames_root)
        renderer = FrameRenderer(params, work_dir, settings)
        renderer.set_progress_callback(lambda done, total: progress(base + done / total * FRAMES_SPAN))
        frame_paths = await renderer.render()

        # Step 3: Encode
        progress(base + FRAMES_SPAN)
        logger.info(f"[TASK] Starting video encoding for {task_id}")
        await EncoderInvoker(settings).encode(
            renderer.frame_pattern,
            params.fps,
            params.quality,
            params.duration,
            output_path,
            progress_callback=lambda pct: progress(base + FRAMES_SPAN + pct / 100 * ENCODING_SPAN),
        )
        # Frames are consumed; free the scratch space before mixing
        shutil.rmtree(work_dir, ignore_errors=True)
        work_dir = None
        progress(base + FRAMES_SPAN + ENCODING_SPAN)

        # Step 4: Mix audio
        if validated_tracks:
            mix_base = base + FRAMES_SPAN + ENCODING_SPAN
            await AudioMixer(settings).mix_into_video(
                output_path,
                validated_tracks,
                params.duration,
                progress_callback=lambda pct: progress(mix_base + pct / 100 * MIXING_SPAN),
            )

        result = RenderResult(
            success=True,
            video=RenderedVideo(
                url=build_video_url(output_path, settings),
                path=str(output_path),
                size=output_path.stat().st_size,
                frames=len(frame_paths),
                duration=params.duration,
                fps=params.fps,
                width=params.width,
                height=params.height,
            ),
        )
        logger.info(f"[TASK] Render completed for {task_id}: {output_path}")

    except asyncio.CancelledError:
        logger.warning(f"[TASK] Render cancelled for {task_id}")
        _discard(output_path)
        manager.set_result(task_id, failure_result(RenderCancelledError()))
        raise

    except Exception as e:
        logger.exception(f"[TASK] Render failed for {task_id}: {e}")
        _discard(output_path)
        result = failure_result(e)

    finally:
        cleanup_audio_files(validated_tracks)
        if work_dir:
            shutil.rmtree(work_dir, ignore_errors=True)
        gc.collect()

    manager.set_result(task_id, result)
    return result


def _discard(path: Path) -> None:
    """Remove a partial or video-only artifact of a failed job."""
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"[TASK] Failed to remove {path}: {e}")
