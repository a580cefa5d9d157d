"""
Module adapter interface.

One implementation per business entity. The import, export and rollback
engines only ever talk to entities through this capability set, so they
stay module-agnostic.

Canonical rows are dicts keyed by the module's field keys. Only mapped
keys are present; a present key with value None means "blank in the file".
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Iterator, List, Optional

from bulkio.registry.loader import FieldSpec, ModuleSpec


class ModuleAdapter(ABC):
    def __init__(self, spec: ModuleSpec, context: Optional[Dict[str, Any]] = None):
        self.spec = spec
        self.context: Dict[str, Any] = dict(context or {})

    def fields(self) -> List[FieldSpec]:
        return list(self.spec.fields)

    def check_ready(self) -> None:
        """
        Raise AdapterUnavailableError when the backing store cannot be used.

        Called once before a job starts touching rows.
        """
        pass

    def check_context(self, mapped_keys: Iterable[str]) -> None:
        """
        Pre-flight check of the job context against the mapping.

        Raises:
            MissingContextError: Required context keys are absent
        """
        pass

    @abstractmethod
    def validate_row(self, row: Dict[str, Any]) -> None:
        """Adapter-level validation. Raises RowValidationError."""
        pass

    @abstractmethod
    def find_existing(self, row: Dict[str, Any]) -> Optional[str]:
        """Record id matching the row's natural key, or None."""
        pass

    @abstractmethod
    def create_record(self, row: Dict[str, Any]) -> str:
        """Create a record and return its id."""
        pass

    @abstractmethod
    def update_record(self, record_id: str, row: Dict[str, Any]) -> Dict[str, Any]:
        """
        Set exactly the keys present in ``row`` and return the pre-update snapshot.

        The snapshot holds every declared field in JSON-safe form and can be
        passed back to this method to restore the record.
        """
        pass

    @abstractmethod
    def delete_record(self, record_id: str) -> bool:
        """Delete a record. Returns False when it no longer exists."""
        pass

    @abstractmethod
    def query(self, filters: Optional[Dict[str, Any]] = None) -> Iterator[Any]:
        """Lazily yield records matching exact-match filters, in a stable order."""
        pass

    @abstractmethod
    def serialize_row(self, record: Any, columns: List[str]) -> List[str]:
        """Render a record as CSV cell strings for the given column keys."""
        pass
