"""
Pytest fixtures for API integration tests.

Provides the FastAPI test client on top of the shared in-memory database.
"""
import pytest
from fastapi.testclient import TestClient

from bulkio.main import app


@pytest.fixture(scope="function")
def client(db):
    """
    FastAPI test client.

    No get_db override: each request opens its own session on the test
    engine, so reads never come from a stale identity map after a worker
    updated a job.
    """
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def api_prefix():
    return "/api/v1"
