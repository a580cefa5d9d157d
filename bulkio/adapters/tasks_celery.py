"""
Celery task runner implementation.

Dispatches Celery tasks to remote workers; status and results come from
the Redis result backend.
"""
import logging
import uuid
from typing import Any, Callable, Optional
from celery.exceptions import TimeoutError as CeleryTimeout
from celery.result import AsyncResult

from bulkio.core.celery_app import celery_app
from bulkio.ports.tasks import TaskRunner, TaskStatus

logger = logging.getLogger(__name__)

_STATE_MAP = {
    "PENDING": TaskStatus.PENDING,
    "RECEIVED": TaskStatus.PENDING,
    "RETRY": TaskStatus.PENDING,
    "STARTED": TaskStatus.RUNNING,
    "SUCCESS": TaskStatus.COMPLETED,
    "FAILURE": TaskStatus.FAILED,
    "REVOKED": TaskStatus.FAILED,
}


class CeleryTaskRunner(TaskRunner):
    """Runs Celery tasks (functions decorated with ``celery_app.task``) on workers."""

    def __init__(self, app=None):
        self.app = app or celery_app

    def submit(
        self,
        func: Callable,
        *args,
        task_id: Optional[str] = None,
        **kwargs,
    ) -> str:
        if not hasattr(func, "apply_async"):
            raise TypeError(f"{func!r} is not a Celery task")

        task_id = task_id or str(uuid.uuid4())
        func.apply_async(args=args, kwargs=kwargs, task_id=task_id)
        logger.debug(f"Dispatched task {func.name} as {task_id}")
        return task_id

    def status(self, task_id: str) -> TaskStatus:
        return _STATE_MAP.get(AsyncResult(task_id, app=self.app).state, TaskStatus.PENDING)

    def result(self, task_id: str, timeout: Optional[float] = None) -> Any:
        async_result = AsyncResult(task_id, app=self.app)
        try:
            return async_result.get(timeout=timeout, propagate=True)
        except CeleryTimeout:
            raise TimeoutError(f"Task {task_id} did not finish within {timeout}s")
        except Exception as e:
            raise RuntimeError(f"Task failed: {e}")
