"""
Shared task runner singleton for background job execution.

The concrete runner is chosen by ``settings.RUNNER``:
inline and thread use InlineTaskRunner, celery uses CeleryTaskRunner.
"""
from typing import Optional
import atexit
import threading
from bulkio.core.config import settings
from bulkio.ports.tasks import TaskRunner

# Module-level singleton instance
_task_runner: Optional[TaskRunner] = None
_task_runner_lock = threading.Lock()


def build_task_runner(mode: str) -> TaskRunner:
    if mode == "celery":
        from bulkio.adapters.tasks_celery import CeleryTaskRunner
        return CeleryTaskRunner()

    from bulkio.adapters.tasks_inline import InlineTaskRunner
    return InlineTaskRunner(mode=mode, max_workers=settings.RUNNER_MAX_WORKERS)


def get_task_runner() -> TaskRunner:
    """
    Get the shared task runner singleton instance.

    Creates the instance on first call and reuses it for all subsequent calls.
    The runner is automatically shut down on application exit.
    """
    global _task_runner
    if _task_runner is None:
        with _task_runner_lock:
            if _task_runner is None:
                _task_runner = build_task_runner(settings.RUNNER)
                atexit.register(shutdown_task_runner)
    return _task_runner


def set_task_runner(runner: Optional[TaskRunner]) -> None:
    """Replace the shared runner (tests install an inline runner)."""
    global _task_runner
    _task_runner = runner


def shutdown_task_runner():
    """
    Shutdown the task runner and clean up resources.

    Called automatically on application exit; also safe to call manually.
    """
    global _task_runner
    if _task_runner is not None:
        _task_runner.shutdown()
        _task_runner = None
