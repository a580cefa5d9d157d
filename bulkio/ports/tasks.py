"""
Where import and export job bodies run.

The API only persists a job and hands its id to a TaskRunner; the runner
decides whether the body runs in the caller (inline), in a thread pool
inside the API process (thread) or on Celery workers (celery).
"""
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional
from enum import Enum


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskRunner(ABC):
    """Dispatches job callables such as ``run_import_job(job_id)``."""

    @abstractmethod
    def submit(
        self,
        func: Callable,
        *args,
        task_id: Optional[str] = None,
        **kwargs,
    ) -> str:
        """
        Dispatch ``func(*args, **kwargs)``.

        ``func`` is a Celery task object; non-Celery runners call it directly.
        Returns the task id (``task_id`` when given, generated otherwise).
        """

    @abstractmethod
    def status(self, task_id: str) -> TaskStatus:
        ...

    @abstractmethod
    def result(self, task_id: str, timeout: Optional[float] = None) -> Any:
        """
        Wait for and return the callable's return value.

        Raises:
            TimeoutError: Not finished within ``timeout`` seconds
            RuntimeError: The callable raised
        """

    def shutdown(self) -> None:
        """Stop accepting work and release worker threads, if any."""
