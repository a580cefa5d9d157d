"""
Row validator - turns raw CSV values into canonical rows.

Validation order per row:
1. Width check (malformed rows never reach coercion)
2. Required fields present (blank after trimming counts as missing)
3. Type coercion → number, int, boolean, date, enum, email, phone

All problems in a row are reported together in a single RowValidationError.
"""
from datetime import date
from typing import Any, Dict, List, Optional, Sequence
import logging

from bulkio.codec.csv_codec import CsvRow
from bulkio.core.config import settings
from bulkio.core.exceptions import RowValidationError
from bulkio.registry.loader import FieldSpec, ModuleSpec
from bulkio.transform.normalizers import (
    normalize_phone,
    normalize_email,
    normalize_date_any,
    coerce_bool,
    coerce_decimal,
    coerce_int,
    coerce_enum,
    NormalizeError,
)

logger = logging.getLogger(__name__)


def coerce_value(value: Any, field_spec: FieldSpec, phone_region: Optional[str] = None) -> Any:
    """
    Coerce one non-blank value to the field's declared type.

    Raises:
        NormalizeError: If the value does not fit the type
    """
    kind = field_spec.type
    if kind == "string":
        return str(value)
    if kind == "number":
        return coerce_decimal(value)
    if kind == "int":
        return coerce_int(value)
    if kind == "boolean":
        return coerce_bool(value)
    if kind == "date":
        return date.fromisoformat(normalize_date_any(value))
    if kind == "enum":
        return coerce_enum(value, field_spec.enum_values)
    if kind == "email":
        return normalize_email(value)
    if kind == "phone":
        return normalize_phone(value, phone_region or settings.PHONE_DEFAULT_REGION)
    raise NormalizeError(f"Unsupported field type: {kind}")


class RowValidator:
    """
    Validates mapped rows against a module specification.

    Only mapped keys appear in the canonical row; a mapped but blank value
    is present as None.
    """

    def __init__(self, module_spec: ModuleSpec, mapping: List[Dict[str, Any]], headers: Sequence[str]):
        self.module_spec = module_spec
        self.headers = list(headers)
        index = {h: i for i, h in enumerate(self.headers)}

        # (field_spec, column index) for every mapped key, in field order
        self._bindings = []
        for entry in mapping:
            source = entry.get("source_column")
            field_spec = module_spec.get_field(entry["key"])
            if not source or field_spec is None or source not in index:
                continue
            self._bindings.append((field_spec, index[source]))

    def canonicalize(self, row: CsvRow) -> Dict[str, Any]:
        """
        Map and coerce one data row.

        Raises:
            MalformedRowError: Field count does not match the header
            RowValidationError: Required fields blank or values fail coercion
        """
        row.check()

        canonical: Dict[str, Any] = {}
        problems: List[str] = []

        for field_spec, idx in self._bindings:
            raw = row.values[idx]
            value = raw.strip() if isinstance(raw, str) else raw

            if value is None or value == "":
                if field_spec.required:
                    problems.append(f"Required field '{field_spec.key}' is missing")
                canonical[field_spec.key] = None
                continue

            try:
                canonical[field_spec.key] = coerce_value(value, field_spec)
            except NormalizeError as e:
                problems.append(f"{field_spec.key}: {e}")

        if problems:
            raise RowValidationError("; ".join(problems))

        return canonical
