"""Fire-and-forget report generation with a pollable task handle.

A request handler submits a generation and returns the task immediately.
The task moves QUEUED -> RUNNING -> SUCCEEDED | FAILED; callers poll it by
(task_id, org_id). A task in another org is reported as not found. Work
started here always runs to completion even if the submitter goes away.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import UTC, datetime, timedelta
from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from claimpacket.models.artifact import Artifact
from claimpacket.reports.errors import ReportPipelineError, not_found

logger = logging.getLogger(__name__)


class TaskStatus(StrEnum):
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"

    @property
    def finished(self) -> bool:
        return self in (TaskStatus.SUCCEEDED, TaskStatus.FAILED)


class GenerationTask(BaseModel):
    model_config = ConfigDict(frozen=True)

    task_id: str
    org_id: str
    claim_id: str
    status: TaskStatus = TaskStatus.QUEUED
    artifact_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    created_at: datetime
    finished_at: datetime | None = None


DEFAULT_RETENTION = timedelta(hours=1)
DEFAULT_MAX_FINISHED = 1000


def _utcnow() -> datetime:
    return datetime.now(UTC)


class GenerationTaskRegistry:
    """Runs generation callables on a worker pool and tracks their state.

    Finished tasks are kept for `retention` and at most `max_finished` of
    them at a time; older ones are evicted on the next submit. The artifact
    row is the durable record of a finished generation.
    """

    def __init__(
        self,
        *,
        max_workers: int = 2,
        retention: timedelta = DEFAULT_RETENTION,
        max_finished: int = DEFAULT_MAX_FINISHED,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="claimpacket-generate"
        )
        self._retention = retention
        self._max_finished = max_finished
        self._clock = clock
        self._lock = threading.Lock()
        self._tasks: dict[str, GenerationTask] = {}
        self._futures: dict[str, Future[None]] = {}

    def _set(self, task_id: str, **changes: object) -> None:
        with self._lock:
            self._tasks[task_id] = self._tasks[task_id].model_copy(update=changes)

    def _forget_future(self, task_id: str) -> None:
        with self._lock:
            self._futures.pop(task_id, None)

    def _evict_finished(self) -> None:
        """Drop expired finished tasks, then the oldest beyond the cap. Caller holds the lock."""
        cutoff = self._clock() - self._retention
        finished = sorted(
            (t for t in self._tasks.values() if t.finished_at is not None),
            key=lambda t: t.finished_at or cutoff,
        )
        overflow = len(finished) - self._max_finished
        for index, task in enumerate(finished):
            if index < overflow or (task.finished_at is not None and task.finished_at < cutoff):
                del self._tasks[task.task_id]

    def submit(
        self, org_id: str, claim_id: str, generate: Callable[[], Artifact]
    ) -> GenerationTask:
        task = GenerationTask(
            task_id=str(uuid.uuid4()),
            org_id=org_id,
            claim_id=claim_id,
            created_at=self._clock(),
        )
        with self._lock:
            self._evict_finished()
            self._tasks[task.task_id] = task
            future = self._executor.submit(self._run, task.task_id, generate)
            self._futures[task.task_id] = future
        # Runs inline if the task already finished, so it must be outside the lock.
        future.add_done_callback(lambda _: self._forget_future(task.task_id))
        logger.info("Queued generation task %s for claim %s", task.task_id, claim_id)
        return task

    def _run(self, task_id: str, generate: Callable[[], Artifact]) -> None:
        self._set(task_id, status=TaskStatus.RUNNING)
        try:
            artifact = generate()
        except ReportPipelineError as e:
            logger.warning("Generation task %s failed: %s", task_id, e)
            self._set(
                task_id,
                status=TaskStatus.FAILED,
                error_code=e.code,
                error_message=e.message,
                finished_at=self._clock(),
            )
            return
        except Exception as e:
            logger.error("Generation task %s crashed: %s", task_id, e, exc_info=True)
            self._set(
                task_id,
                status=TaskStatus.FAILED,
                error_code="INTERNAL_ERROR",
                error_message="Report generation failed unexpectedly",
                finished_at=self._clock(),
            )
            return
        self._set(
            task_id,
            status=TaskStatus.SUCCEEDED,
            artifact_id=artifact.id,
            finished_at=self._clock(),
        )

    @property
    def tracked_count(self) -> int:
        """Number of tasks currently held, finished or not."""
        with self._lock:
            return len(self._tasks)

    @property
    def pending_count(self) -> int:
        """Number of tasks whose worker has not finished yet."""
        with self._lock:
            return len(self._futures)

    def get(self, org_id: str, task_id: str) -> GenerationTask:
        """Raises NotFoundError if the task is unknown or belongs to another org."""
        with self._lock:
            task = self._tasks.get(task_id)
        if task is None or task.org_id != org_id:
            raise not_found("Generation task", task_id=task_id)
        return task

    def wait(self, org_id: str, task_id: str, timeout: float | None = None) -> GenerationTask:
        """Block until the task finishes (or timeout elapses) and return its state."""
        self.get(org_id, task_id)
        with self._lock:
            future = self._futures.get(task_id)
        if future is not None:
            future.result(timeout=timeout)
        return self.get(org_id, task_id)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
