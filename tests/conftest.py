"""
Shared fixtures.

The environment is pinned before ``bulkio`` is imported: an in-memory
SQLite database shared across threads, inline job execution, no
background scheduler and throwaway storage directories.
"""
import os
import tempfile

_TMP_ROOT = tempfile.mkdtemp(prefix="bulkio-tests-")

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RUNNER"] = "inline"
os.environ["SCHEDULED_EXPORTS_ENABLED"] = "false"
os.environ["STORAGE_PATH"] = os.path.join(_TMP_ROOT, "storage")
os.environ["ARTIFACT_ROOT"] = os.path.join(_TMP_ROOT, "out")
os.environ["LOG_DIR"] = os.path.join(_TMP_ROOT, "logs")
os.environ["SCHEDULE_TIMEZONE"] = "UTC"
os.environ["SENDGRID_API_KEY"] = ""
os.environ["MAIL_FROM"] = ""

import pytest

from bulkio.adapters.tasks_inline import InlineTaskRunner
from bulkio.core.database import Base, SessionLocal, engine
from bulkio.core.task_runner import set_task_runner
from bulkio.registry.loader import RegistryLoader
import bulkio.models  # noqa: F401


@pytest.fixture(scope="function")
def db():
    """
    Fresh schema and session for each test.

    Workers open their own sessions on the same engine, so they see
    everything the test commits.
    """
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="session")
def registry_loader():
    return RegistryLoader()


@pytest.fixture(autouse=True)
def inline_runner():
    """Jobs submitted during a test run synchronously in the test thread."""
    runner = InlineTaskRunner(mode="inline")
    set_task_runner(runner)
    yield runner
    set_task_runner(None)


@pytest.fixture
def make_csv():
    """Join lines into CSV bytes with a trailing newline."""
    def _make(*lines: str) -> bytes:
        return ("\n".join(lines) + "\n").encode("utf-8")
    return _make
