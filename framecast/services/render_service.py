"""Submit / poll / list entry points for render jobs.

A web layer calls these; submit_render returns immediately and the job runs
as a detached asyncio task whose outcome is only visible through polling.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Any, Optional

from pydantic import ValidationError

from framecast.config import Settings, get_settings
from framecast.exceptions import RenderParameterError
from framecast.schemas.render import RenderJobParameters, RenderTaskStatus
from framecast.services.task_manager import RenderTaskManager, render_task_manager
from framecast.tasks.render_task import failure_result, perform_render

logger = logging.getLogger(__name__)

# Strong references to running workers so they are not garbage-collected
_background_tasks: set[asyncio.Task] = set()


def parse_parameters(parameters: RenderJobParameters | dict[str, Any]) -> RenderJobParameters:
    """Validate raw parameters.

    Raises:
        RenderParameterError: With one message per invalid field
    """
    if isinstance(parameters, RenderJobParameters):
        return parameters
    try:
        return RenderJobParameters.model_validate(parameters)
    except ValidationError as e:
        errors = []
        for err in e.errors():
            loc = ".".join(str(x) for x in err.get("loc", []))
            msg = err.get("msg", "invalid value")
            errors.append(f"{loc}: {msg}" if loc else msg)
        raise RenderParameterError(errors=errors) from e


def submit_render(
    parameters: RenderJobParameters | dict[str, Any],
    manager: Optional[RenderTaskManager] = None,
    settings: Optional[Settings] = None,
) -> str:
    """
    Create a task and start rendering it in the background.

    Must be called from a running event loop.

    Returns:
        Task id to poll with get_render_status

    Raises:
        RenderParameterError: If parameters are invalid (no task is created)
    """
    params = parse_parameters(parameters)
    manager = manager or render_task_manager
    settings = settings or get_settings()

    manager.evict_older_than(timedelta(hours=settings.task_ttl_hours))
    task_id = manager.create(params)

    worker = asyncio.get_running_loop().create_task(
        perform_render(task_id, params, manager=manager, settings=settings),
        name=f"render-{task_id}",
    )
    _background_tasks.add(worker)
    worker.add_done_callback(lambda t: _on_worker_done(t, task_id, manager))

    logger.info(f"[TASK] Rendering {task_id} started in background")
    return task_id


def _on_worker_done(worker: asyncio.Task, task_id: str, manager: RenderTaskManager) -> None:
    _background_tasks.discard(worker)
    if worker.cancelled():
        return
    exc = worker.exception()
    if exc is not None:
        # perform_render records its own failures; this only catches escapes
        logger.error(f"[TASK] Background render failed for {task_id}: {exc!r}")
        manager.set_result(task_id, failure_result(exc))


def get_render_status(task_id: str, manager: Optional[RenderTaskManager] = None) -> Optional[RenderTaskStatus]:
    """Current status of a task, or None if unknown (or evicted)."""
    task = (manager or render_task_manager).get(task_id)
    return task.to_status() if task else None


def list_render_tasks(manager: Optional[RenderTaskManager] = None) -> list[RenderTaskStatus]:
    """All known tasks, newest first, parameters included."""
    return [task.to_status(include_parameters=True) for task in (manager or render_task_manager).list_all()]


async def wait_for_render(
    task_id: str,
    poll_interval_s: float = 1.0,
    timeout_s: Optional[float] = None,
    manager: Optional[RenderTaskManager] = None,
) -> RenderTaskStatus:
    """Poll until the task is terminal.

    Raises:
        KeyError: If the task is unknown
        asyncio.TimeoutError: If timeout_s elapses first
    """

    async def _poll() -> RenderTaskStatus:
        while True:
            status = get_render_status(task_id, manager)
            if status is None:
                raise KeyError(task_id)
            if status.status in ("completed", "failed"):
                return status
            await asyncio.sleep(poll_interval_s)

    return await asyncio.wait_for(_poll(), timeout=timeout_s)
