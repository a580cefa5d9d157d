"""
Endpoints that do file, database or artifact work run in FastAPI's
threadpool, so they must be plain functions rather than coroutines.
"""
import asyncio

import pytest
from fastapi.routing import APIRoute

from bulkio.main import app

pytestmark = pytest.mark.api

THREADPOOL_ENDPOINTS = {
    "preview_import",
    "create_import",
    "create_import_batch",
    "get_import_batch",
    "cancel_import",
    "rollback_import",
    "create_export",
    "preview_export",
    "run_scheduled_export",
}


def test_blocking_endpoints_are_not_coroutines():
    endpoints = {
        route.endpoint.__name__: route.endpoint
        for route in app.routes
        if isinstance(route, APIRoute)
    }

    assert THREADPOOL_ENDPOINTS <= set(endpoints)
    for name in THREADPOOL_ENDPOINTS:
        assert not asyncio.iscoroutinefunction(endpoints[name]), name
