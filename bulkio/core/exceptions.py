"""
Error taxonomy for the import/export job engine.

Scope determines propagation:
- job-scoped errors abort the job and mark it FAILED
- row-scoped errors become RowError records; the job continues
- entry-scoped errors are recorded on the audit entry; rollback continues
- run-scoped errors are recorded on the scheduled export run
"""
from typing import Iterable, List, Optional


class BulkIOError(Exception):
    """Base class for all engine errors."""


# Job-scoped

class StructuralParseError(BulkIOError):
    """The file cannot be tokenized as CSV (encoding, quoting, missing header)."""


class AdapterUnavailableError(BulkIOError):
    """The module adapter cannot serve any request (e.g. its backing store is down)."""


# Pre-flight

class UnsupportedModuleError(BulkIOError):
    def __init__(self, module: str):
        self.module = module
        super().__init__(f"Unsupported module: {module}")


class MappingError(BulkIOError):
    """Required canonical keys have no source column."""

    def __init__(self, missing_keys: Iterable[str]):
        self.missing_keys: List[str] = list(missing_keys)
        super().__init__(f"Missing required mappings: {', '.join(self.missing_keys)}")


class MissingContextError(BulkIOError):
    """A module requires context parameters that were not supplied."""

    def __init__(self, missing_keys: Iterable[str]):
        self.missing_keys: List[str] = list(missing_keys)
        super().__init__(f"Missing required context: {', '.join(self.missing_keys)}")


# Row-scoped

class RowError(BulkIOError):
    """Base for errors recorded against a single data row."""

    reason = "validation"


class MalformedRowError(RowError):
    """A data row's field count does not match the header count."""

    reason = "validation"


class RowValidationError(RowError):
    reason = "validation"


class DuplicateError(RowError):
    reason = "duplicate"


class AdapterFailure(RowError):
    reason = "adapter-failure"


# Entry-scoped

class RollbackCompensationError(BulkIOError):
    def __init__(self, entry_id: int, message: str):
        self.entry_id = entry_id
        super().__init__(message)


# Run-scoped

class ScheduleExecutionError(BulkIOError):
    """A scheduled export run failed before producing an artifact."""


class DeliveryError(BulkIOError):
    """The artifact could not be delivered to the schedule's recipients."""


class InvalidScheduleError(BulkIOError):
    """A schedule is neither a known preset nor a valid cron expression."""


# Lookup / state

class JobNotFoundError(BulkIOError):
    def __init__(self, kind: str, job_id: int):
        self.kind = kind
        self.job_id = job_id
        super().__init__(f"{kind} {job_id} not found")


class InvalidJobStateError(BulkIOError):
    def __init__(self, message: str, status: Optional[str] = None):
        self.status = status
        super().__init__(message)


class ArtifactNotReadyError(BulkIOError):
    """Export artifact requested before the job completed."""


class InvalidQueryError(BulkIOError):
    """Export filters or columns reference undeclared fields, or a filter value does not fit its field."""


class InvalidBatchError(BulkIOError):
    """A batch upload is malformed or one of its entries fails pre-flight."""

    def __init__(self, message: str, index: Optional[int] = None, missing_keys: Optional[Iterable[str]] = None):
        self.index = index
        self.missing_keys: Optional[List[str]] = list(missing_keys) if missing_keys is not None else None
        super().__init__(message if index is None else f"Entry {index}: {message}")
