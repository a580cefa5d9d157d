"""
Column mapper - binds source CSV headers to a module's canonical field keys.

The mapper never touches row data; it only decides which source column
supplies each canonical key. Mappings are ordered lists of
``{"key", "source_column", "required"}`` in module field order.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from bulkio.core.exceptions import MappingError
from bulkio.registry.loader import ModuleSpec

logger = logging.getLogger(__name__)

MappingInput = Union[Dict[str, Optional[str]], Iterable[Dict[str, Any]]]


class ColumnMapper:
    def __init__(self, module_spec: ModuleSpec):
        self.module_spec = module_spec

    def suggest(self, headers: Sequence[str]) -> List[Dict[str, Any]]:
        """
        Default mapping by case-insensitive exact header match.

        The declared header is tried first, then the canonical key itself.
        """
        lookup = {h.lower(): h for h in headers}
        suggestions = []
        for f in self.module_spec.fields:
            source = lookup.get(f.header.lower()) or lookup.get(f.key.lower())
            suggestions.append({
                "key": f.key,
                "header": f.header,
                "source_column": source,
                "required": f.required,
                "type": f.type,
                "enum_values": f.enum_values or None,
            })
        return suggestions

    def resolve(self, headers: Sequence[str], mapping: Optional[MappingInput] = None) -> List[Dict[str, Any]]:
        """
        Build the job mapping from a user-supplied mapping (or the suggestion).

        Accepts either ``{key: source_column}`` or a list of entries with
        ``key`` and ``source_column``. Keys the module does not declare are
        dropped. Source columns absent from ``headers`` count as unmapped.

        Raises:
            MappingError: Required keys are left without a source column
        """
        if mapping is None:
            chosen = {s["key"]: s["source_column"] for s in self.suggest(headers)}
        else:
            chosen = self._normalize_input(mapping)

        unknown = [k for k in chosen if self.module_spec.get_field(k) is None]
        if unknown:
            logger.debug(f"Ignoring mapping for undeclared keys {unknown} in module {self.module_spec.name}")

        available = set(headers)
        resolved = []
        for f in self.module_spec.fields:
            source = chosen.get(f.key)
            if source and source not in available:
                logger.warning(f"Mapped column '{source}' for '{f.key}' not present in file")
                source = None
            resolved.append({"key": f.key, "source_column": source or None, "required": f.required})

        self.validate(resolved)
        return resolved

    def validate(self, mapping: Iterable[Dict[str, Any]]) -> None:
        """Raise MappingError listing every required key without a source column."""
        by_key = {m["key"]: m.get("source_column") for m in mapping}
        missing = [
            f.key for f in self.module_spec.fields
            if f.required and not by_key.get(f.key)
        ]
        if missing:
            raise MappingError(missing)

    @staticmethod
    def _normalize_input(mapping: MappingInput) -> Dict[str, Optional[str]]:
        if isinstance(mapping, dict):
            return {k: (v.strip() if isinstance(v, str) else v) for k, v in mapping.items()}

        result: Dict[str, Optional[str]] = {}
        for entry in mapping:
            key = entry.get("key")
            if not key:
                continue
            source = entry.get("source_column")
            result[key] = source.strip() if isinstance(source, str) else source
        return result
