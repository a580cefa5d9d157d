"""
Inline task runner implementation.

Direct execution or a thread pool inside the current process.
"""
import logging
import threading
import uuid
from typing import Any, Callable, Optional, Dict
from concurrent.futures import ThreadPoolExecutor, Future, TimeoutError as FutureTimeout
from bulkio.ports.tasks import TaskRunner, TaskStatus

logger = logging.getLogger(__name__)


class InlineTaskRunner(TaskRunner):
    """
    Inline/threaded task execution.

    Modes:
    - inline: Execute immediately in current thread
    - thread: Execute in background thread pool
    """

    def __init__(self, mode: str = "inline", max_workers: int = 4):
        if mode not in ("inline", "thread"):
            raise ValueError(f"Unknown runner mode: {mode}")
        self.mode = mode
        self.executor = (
            ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="bulkio-job")
            if mode == "thread" else None
        )
        self._tasks: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def _set(self, task_id: str, **values) -> None:
        with self._lock:
            self._tasks.setdefault(task_id, {}).update(values)

    def submit(
        self,
        func: Callable,
        *args,
        task_id: Optional[str] = None,
        **kwargs,
    ) -> str:
        """Submit a task for execution."""
        task_id = task_id or str(uuid.uuid4())
        name = getattr(func, "name", None) or getattr(func, "__name__", repr(func))

        if self.mode == "inline":
            self._set(task_id, status=TaskStatus.RUNNING, result=None, error=None)
            try:
                result = func(*args, **kwargs)
                self._set(task_id, status=TaskStatus.COMPLETED, result=result)
            except Exception as e:
                logger.exception(f"Task {name} ({task_id}) failed")
                self._set(task_id, status=TaskStatus.FAILED, error=str(e))
        else:
            self._set(task_id, status=TaskStatus.PENDING, result=None, error=None, future=None)

            def _wrapper():
                self._set(task_id, status=TaskStatus.RUNNING)
                try:
                    result = func(*args, **kwargs)
                    self._set(task_id, status=TaskStatus.COMPLETED, result=result)
                    return result
                except Exception as e:
                    logger.exception(f"Task {name} ({task_id}) failed")
                    self._set(task_id, status=TaskStatus.FAILED, error=str(e))
                    raise

            future = self.executor.submit(_wrapper)
            self._set(task_id, future=future)

        logger.debug(f"Submitted task {name} as {task_id} ({self.mode})")
        return task_id

    def status(self, task_id: str) -> TaskStatus:
        """Get task status."""
        with self._lock:
            if task_id not in self._tasks:
                raise ValueError(f"Task {task_id} not found")
            return self._tasks[task_id]["status"]

    def result(self, task_id: str, timeout: Optional[float] = None) -> Any:
        """Get task result (blocking)."""
        with self._lock:
            if task_id not in self._tasks:
                raise ValueError(f"Task {task_id} not found")
            task = dict(self._tasks[task_id])

        if task["status"] == TaskStatus.FAILED:
            raise RuntimeError(f"Task failed: {task['error']}")

        if task["status"] == TaskStatus.COMPLETED:
            return task["result"]

        future: Optional[Future] = task.get("future")
        if future is not None:
            try:
                return future.result(timeout=timeout)
            except FutureTimeout:
                raise TimeoutError(f"Task {task_id} did not finish within {timeout}s")
            except Exception as e:
                raise RuntimeError(f"Task failed: {e}")

        return task["result"]

    def shutdown(self):
        """Shutdown executor (cleanup)."""
        if self.executor:
            self.executor.shutdown(wait=True)
