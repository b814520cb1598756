"""In-memory render task registry.

Jobs run detached from the call that submitted them, so their state lives in
one process-wide registry that pollers read by id. Each task is written only
by its own worker; the lock keeps every read a consistent snapshot.
"""

import copy
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from framecast.schemas.render import RenderJobParameters, RenderResult, RenderTaskStatus

logger = logging.getLogger(__name__)


class RenderStatus(Enum):
    """Render task status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RenderStatus.COMPLETED, RenderStatus.FAILED)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RenderTask:
    """Render task state."""

    id: str
    parameters: RenderJobParameters
    status: RenderStatus = RenderStatus.PENDING
    progress: int = 0
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    result: Optional[RenderResult] = None

    def to_status(self, include_parameters: bool = False) -> RenderTaskStatus:
        """Poll view: `result` once completed, `error` once failed."""
        return RenderTaskStatus(
            task_id=self.id,
            status=self.status.value,
            progress=self.progress,
            created_at=self.created_at,
            updated_at=self.updated_at,
            result=self.result if self.status == RenderStatus.COMPLETED else None,
            error=self.result if self.status == RenderStatus.FAILED else None,
            parameters=self.parameters if include_parameters else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "id": self.id,
            "status": self.status.value,
            "progress": self.progress,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "result": self.result.model_dump() if self.result else None,
        }


class RenderTaskManager:
    """Thread-safe task registry with age-based eviction.

    Progress is clamped to [0, 100], never moves backwards, and reaches 100
    only through set_result. Operations on unknown ids are logged no-ops.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, RenderTask] = {}
        self._lock = threading.Lock()

    def create(self, parameters: RenderJobParameters) -> str:
        """Register a new pending task and return its id."""
        task_id = f"task_{uuid.uuid4().hex}"
        with self._lock:
            self._tasks[task_id] = RenderTask(id=task_id, parameters=parameters)
        logger.info(f"[TASK] Created {task_id}")
        return task_id

    def get(self, task_id: str) -> Optional[RenderTask]:
        """Snapshot of a task, or None if unknown."""
        with self._lock:
            task = self._tasks.get(task_id)
            return copy.deepcopy(task) if task else None

    def set_progress(self, task_id: str, progress: float) -> None:
        with self._lock:
            task = self._lookup(task_id, "set_progress")
            if task is None:
                return
            self._apply_progress(task, progress)
            task.updated_at = _now()

    def set_status(self, task_id: str, status: RenderStatus, progress: Optional[float] = None) -> None:
        with self._lock:
            task = self._lookup(task_id, "set_status")
            if task is None:
                return
            task.status = status
            if progress is not None:
                self._apply_progress(task, progress)
            task.updated_at = _now()

    def set_result(self, task_id: str, result: RenderResult) -> None:
        """Store the terminal payload; status follows result.success."""
        with self._lock:
            task = self._lookup(task_id, "set_result")
            if task is None:
                return
            task.result = result
            task.status = RenderStatus.COMPLETED if result.success else RenderStatus.FAILED
            task.progress = 100
            task.updated_at = _now()
        logger.info(f"[TASK] {task_id} finished: {task.status.value}")

    def list_all(self) -> list[RenderTask]:
        """Snapshots of every task, newest first."""
        with self._lock:
            # Insertion order is creation order
            return [copy.deepcopy(t) for t in reversed(self._tasks.values())]

    def evict_older_than(self, max_age: timedelta) -> int:
        """Drop tasks not updated within max_age; returns how many."""
        cutoff = _now() - max_age
        with self._lock:
            expired = [k for k, v in self._tasks.items() if v.updated_at < cutoff]
            for k in expired:
                del self._tasks[k]
        if expired:
            logger.info(f"[TASK] Evicted {len(expired)} task(s) older than {max_age}")
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._tasks.clear()

    def _lookup(self, task_id: str, operation: str) -> Optional[RenderTask]:
        """Find a task (called under lock)."""
        task = self._tasks.get(task_id)
        if task is None:
            logger.warning(f"[TASK] {operation} on unknown task {task_id}, ignoring")
        return task

    @staticmethod
    def _apply_progress(task: RenderTask, progress: float) -> None:
        """Clamp and keep monotonic (called under lock)."""
        ceiling = 100 if task.status.is_terminal else 99
        value = int(min(ceiling, max(0, progress)))
        task.progress = max(task.progress, value)


# Singleton instance
render_task_manager = RenderTaskManager()
