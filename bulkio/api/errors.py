"""
Maps engine errors to HTTP responses.

Responses keep FastAPI's ``{"detail": ...}`` shape, with a machine-readable
``error`` code and ``missing_keys`` where the error carries them.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from bulkio.core.exceptions import (
    AdapterUnavailableError,
    ArtifactNotReadyError,
    BulkIOError,
    InvalidBatchError,
    InvalidJobStateError,
    InvalidQueryError,
    InvalidScheduleError,
    JobNotFoundError,
    MappingError,
    MissingContextError,
    StructuralParseError,
    UnsupportedModuleError,
)

logger = logging.getLogger(__name__)

# Most specific first; the first isinstance match wins
ERROR_STATUS = [
    (JobNotFoundError, 404, "not_found"),
    (InvalidJobStateError, 409, "conflict"),
    (ArtifactNotReadyError, 409, "artifact_not_ready"),
    (UnsupportedModuleError, 400, "unsupported_module"),
    (MappingError, 400, "mapping_error"),
    (MissingContextError, 400, "missing_context"),
    (InvalidScheduleError, 400, "invalid_schedule"),
    (StructuralParseError, 400, "structural_parse_error"),
    (InvalidQueryError, 400, "invalid_query"),
    (InvalidBatchError, 400, "invalid_batch"),
    (AdapterUnavailableError, 503, "adapter_unavailable"),
]


def error_status(exc: BulkIOError):
    for error_type, status_code, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code, code
    return 500, "internal_error"


async def bulkio_error_handler(request: Request, exc: BulkIOError) -> JSONResponse:
    status_code, code = error_status(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({status_code}): {exc}")

    content = {"detail": str(exc), "error": code}
    missing = getattr(exc, "missing_keys", None)
    if missing is not None:
        content["missing_keys"] = missing
    return JSONResponse(status_code=status_code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BulkIOError, bulkio_error_handler)
