"""
SQLAlchemy module adapters for the bundled ERP entities.

SQLAlchemyModuleAdapter implements the whole adapter contract against a
mapped class; subclasses only override natural-key lookup, context
binding and extra validation. Adapters flush but never commit: the
calling engine owns the transaction boundary (one per row).
"""
import logging
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, Iterator, List, Optional, Type

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bulkio.core.exceptions import (
    AdapterFailure,
    AdapterUnavailableError,
    InvalidQueryError,
    MissingContextError,
    RowValidationError,
    UnsupportedModuleError,
)
from bulkio.models.erp import Asset, Employee, Project, ProjectTask, StockItem, Supplier, Warehouse
from bulkio.ports.module_adapter import ModuleAdapter
from bulkio.registry.loader import FieldSpec, ModuleSpec, RegistryLoader, get_registry_loader
from bulkio.transform.normalizers import NormalizeError, coerce_bool, coerce_decimal, coerce_int
from bulkio.validate.validator import coerce_value

logger = logging.getLogger(__name__)


def json_safe(value: Any) -> Any:
    """Snapshot form of a column value: dates as ISO strings, decimals as strings."""
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def format_cell(value: Any) -> str:
    """CSV cell form of a column value."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _column_value(field_spec: FieldSpec, value: Any) -> Any:
    """Accept both typed canonical values and their snapshot (JSON) form."""
    if value is None or not isinstance(value, str):
        return value
    if field_spec.type == "date":
        return date.fromisoformat(value[:10])
    if field_spec.type == "number":
        return coerce_decimal(value)
    if field_spec.type == "int":
        return coerce_int(value)
    if field_spec.type == "boolean":
        return coerce_bool(value)
    return value


def coerce_filter_value(field_spec: FieldSpec, value: Any) -> Any:
    """
    Exact-match filter value in the field's type; blank means NULL.

    Raises:
        InvalidQueryError: Value is not a scalar or does not fit the type
    """
    if isinstance(value, (list, dict)):
        raise InvalidQueryError(f"Invalid filter value for {field_spec.key}: expected a single value")
    if not isinstance(value, str):
        return value
    if value.strip() == "":
        return None
    try:
        return coerce_value(value.strip(), field_spec)
    except (NormalizeError, ValueError) as e:
        raise InvalidQueryError(f"Invalid filter value for {field_spec.key}: {e}")


class SQLAlchemyModuleAdapter(ModuleAdapter):
    """Generic adapter over one mapped class whose columns share the field keys."""

    model: Type = None
    query_batch_size = 500

    def __init__(self, db: Session, spec: ModuleSpec, context: Optional[Dict[str, Any]] = None):
        super().__init__(spec, context)
        self.db = db

    # -- helpers ---------------------------------------------------------

    def _get(self, record_id: str):
        try:
            pk = int(record_id)
        except (TypeError, ValueError):
            return None
        return self.db.get(self.model, pk)

    def _natural_key_values(self, row: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        values = {}
        for key in self.spec.natural_key:
            if self.spec.get_field(key) is not None:
                value = row.get(key)
            else:
                value = self.context.get(key)
            if value is None or value == "":
                return None
            values[key] = value
        return values

    def to_columns(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """Translate a canonical row (or snapshot) to column assignments."""
        columns = {}
        for key, value in row.items():
            field_spec = self.spec.get_field(key)
            if field_spec is None:
                continue
            try:
                columns[key] = _column_value(field_spec, value)
            except (NormalizeError, ValueError) as e:
                raise AdapterFailure(f"{key}: {e}")
        return columns

    def creation_defaults(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """Columns set on create only (generated codes, context bindings)."""
        return {}

    def read_field(self, record: Any, key: str) -> Any:
        return getattr(record, key)

    def snapshot(self, record: Any) -> Dict[str, Any]:
        return {f.key: json_safe(self.read_field(record, f.key)) for f in self.spec.fields}

    def filter_clause(self, key: str, value: Any):
        column = getattr(self.model, key)
        return column.is_(None) if value is None else column == value

    def scope(self, stmt):
        """Restrict every lookup and query to the adapter's context."""
        return stmt

    # -- contract --------------------------------------------------------

    def check_ready(self) -> None:
        try:
            self.db.execute(select(self.model.id).limit(1))
        except SQLAlchemyError as e:
            raise AdapterUnavailableError(f"{self.spec.name} store unavailable: {e}") from e

    def check_context(self, mapped_keys: Iterable[str]) -> None:
        missing = [
            key for key in self.spec.required_context
            if self.context.get(key) is None or str(self.context.get(key)).strip() == ""
        ]
        if missing:
            raise MissingContextError(missing)

    def validate_row(self, row: Dict[str, Any]) -> None:
        pass

    def find_existing(self, row: Dict[str, Any]) -> Optional[str]:
        values = self._natural_key_values(row)
        if values is None:
            return None

        stmt = select(self.model.id)
        for key, value in values.items():
            if self.spec.get_field(key) is not None:
                stmt = stmt.where(self.filter_clause(key, value))
        stmt = self.scope(stmt).order_by(self.model.id).limit(1)

        record_id = self.db.execute(stmt).scalar()
        return str(record_id) if record_id is not None else None

    def create_record(self, row: Dict[str, Any]) -> str:
        values = {k: v for k, v in self.to_columns(row).items() if v is not None}
        values.update(self.creation_defaults(row))
        record = self.model(**values)
        self.db.add(record)
        self.db.flush()
        return str(record.id)

    def update_record(self, record_id: str, row: Dict[str, Any]) -> Dict[str, Any]:
        record = self._get(record_id)
        if record is None:
            raise AdapterFailure(f"{self.spec.name} record {record_id} not found")

        previous = self.snapshot(record)
        for key, value in self.to_columns(row).items():
            setattr(record, key, value)
        self.db.flush()
        return previous

    def delete_record(self, record_id: str) -> bool:
        record = self._get(record_id)
        if record is None:
            return False
        self.db.delete(record)
        self.db.flush()
        return True

    def query(self, filters: Optional[Dict[str, Any]] = None) -> Iterator[Any]:
        stmt = select(self.model)
        for key, value in (filters or {}).items():
            field_spec = self.spec.get_field(key)
            if field_spec is None:
                raise InvalidQueryError(f"Unknown filter field for {self.spec.name}: {key}")
            stmt = stmt.where(self.filter_clause(key, coerce_filter_value(field_spec, value)))
        stmt = self.scope(stmt).order_by(self.model.id)

        result = self.db.execute(stmt.execution_options(yield_per=self.query_batch_size))
        for record in result.scalars():
            yield record

    def serialize_row(self, record: Any, columns: List[str]) -> List[str]:
        return [format_cell(self.read_field(record, key)) for key in columns]


class WarehouseAdapter(SQLAlchemyModuleAdapter):
    model = Warehouse


class InventoryAdapter(SQLAlchemyModuleAdapter):
    """
    Stock items. The warehouse comes from the row's warehouse_code, or from
    the job context when the column is not mapped or blank.
    """

    model = StockItem

    def __init__(self, db: Session, spec: ModuleSpec, context: Optional[Dict[str, Any]] = None):
        super().__init__(db, spec, context)
        self._warehouse_ids: Dict[str, Optional[int]] = {}

    def _warehouse_id(self, code: str) -> Optional[int]:
        if code not in self._warehouse_ids:
            self._warehouse_ids[code] = self.db.execute(
                select(Warehouse.id).where(Warehouse.code == code)
            ).scalar()
        return self._warehouse_ids[code]

    def _warehouse_code(self, row: Dict[str, Any]) -> Optional[str]:
        code = row.get("warehouse_code") or self.context.get("warehouse_code")
        return str(code).strip() if code else None

    def check_context(self, mapped_keys: Iterable[str]) -> None:
        super().check_context(mapped_keys)
        if "warehouse_code" not in set(mapped_keys) and not self._warehouse_code({}):
            raise MissingContextError(["warehouse_code"])

    def validate_row(self, row: Dict[str, Any]) -> None:
        code = self._warehouse_code(row)
        if not code:
            raise RowValidationError("warehouse_code is required")
        if self._warehouse_id(code) is None:
            raise RowValidationError(f"Unknown warehouse '{code}'")

        reorder, maximum = row.get("reorder_level"), row.get("max_stock_level")
        if reorder is not None and reorder < 0:
            raise RowValidationError("reorder_level cannot be negative")
        if reorder is not None and maximum is not None and maximum < reorder:
            raise RowValidationError("max_stock_level cannot be below reorder_level")

    def to_columns(self, row: Dict[str, Any]) -> Dict[str, Any]:
        columns = super().to_columns(row)
        code = columns.pop("warehouse_code", None)
        if code:
            warehouse_id = self._warehouse_id(str(code).strip())
            if warehouse_id is None:
                raise AdapterFailure(f"Unknown warehouse '{code}'")
            columns["warehouse_id"] = warehouse_id
        return columns

    def creation_defaults(self, row: Dict[str, Any]) -> Dict[str, Any]:
        if row.get("warehouse_code"):
            return {}
        return {"warehouse_id": self._warehouse_id(self._warehouse_code(row))}

    def read_field(self, record: Any, key: str) -> Any:
        if key == "warehouse_code":
            return record.warehouse.code if record.warehouse else None
        return super().read_field(record, key)

    def filter_clause(self, key: str, value: Any):
        if key == "warehouse_code":
            return StockItem.warehouse_id.in_(select(Warehouse.id).where(Warehouse.code == value))
        return super().filter_clause(key, value)


class SupplierAdapter(SQLAlchemyModuleAdapter):
    model = Supplier

    def validate_row(self, row: Dict[str, Any]) -> None:
        rating = row.get("rating")
        if rating is not None and not 0 <= rating <= 5:
            raise RowValidationError("rating must be between 0 and 5")

    def creation_defaults(self, row: Dict[str, Any]) -> Dict[str, Any]:
        return {"supplier_code": f"SUP-{uuid.uuid4().hex[:8].upper()}"}


class EmployeeAdapter(SQLAlchemyModuleAdapter):
    model = Employee

    def validate_row(self, row: Dict[str, Any]) -> None:
        born, hired = row.get("date_of_birth"), row.get("hire_date")
        if born and hired and born >= hired:
            raise RowValidationError("date_of_birth must be before hire_date")

    def creation_defaults(self, row: Dict[str, Any]) -> Dict[str, Any]:
        if row.get("employee_id"):
            return {}
        return {"employee_id": f"EMP-{uuid.uuid4().hex[:8].upper()}"}


class ProjectAdapter(SQLAlchemyModuleAdapter):
    model = Project

    def validate_row(self, row: Dict[str, Any]) -> None:
        start, end = row.get("start_date"), row.get("end_date")
        if start and end and end < start:
            raise RowValidationError("end_date cannot be before start_date")
        progress = row.get("progress")
        if progress is not None and not 0 <= progress <= 100:
            raise RowValidationError("progress must be between 0 and 100")


class ProjectTaskAdapter(SQLAlchemyModuleAdapter):
    """Tasks of a single project, given by context project_id."""

    model = ProjectTask

    def __init__(self, db: Session, spec: ModuleSpec, context: Optional[Dict[str, Any]] = None):
        super().__init__(db, spec, context)
        self._project_checked: Optional[bool] = None

    @property
    def project_id(self) -> Optional[int]:
        try:
            return int(self.context.get("project_id"))
        except (TypeError, ValueError):
            return None

    def check_context(self, mapped_keys: Iterable[str]) -> None:
        super().check_context(mapped_keys)
        if self.project_id is None:
            raise MissingContextError(["project_id"])

    def validate_row(self, row: Dict[str, Any]) -> None:
        if self._project_checked is None:
            self._project_checked = (
                self.project_id is not None and self.db.get(Project, self.project_id) is not None
            )
        if not self._project_checked:
            raise RowValidationError(f"Unknown project {self.context.get('project_id')}")

    def creation_defaults(self, row: Dict[str, Any]) -> Dict[str, Any]:
        return {"project_id": self.project_id}

    def scope(self, stmt):
        return stmt.where(ProjectTask.project_id == self.project_id)


class AssetAdapter(SQLAlchemyModuleAdapter):
    model = Asset

    def validate_row(self, row: Dict[str, Any]) -> None:
        for key in ("purchase_price", "current_value"):
            value = row.get(key)
            if value is not None and value < 0:
                raise RowValidationError(f"{key} cannot be negative")


ADAPTERS: Dict[str, Type[SQLAlchemyModuleAdapter]] = {
    "warehouses": WarehouseAdapter,
    "inventory": InventoryAdapter,
    "suppliers": SupplierAdapter,
    "employees": EmployeeAdapter,
    "projects": ProjectAdapter,
    "project_tasks": ProjectTaskAdapter,
    "assets": AssetAdapter,
}


def get_module_adapter(
    module: str,
    db: Session,
    context: Optional[Dict[str, Any]] = None,
    loader: Optional[RegistryLoader] = None,
) -> ModuleAdapter:
    """
    Build the adapter for a module, bound to a session and job context.

    Raises:
        UnsupportedModuleError: Unknown module or no adapter registered
    """
    spec = (loader or get_registry_loader()).get_module(module)
    adapter_cls = ADAPTERS.get(module)
    if adapter_cls is None:
        raise UnsupportedModuleError(module)
    return adapter_cls(db, spec, context)
