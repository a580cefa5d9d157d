"""
Import templates - saved column mappings per module, plus sample CSVs.
"""
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy.orm import Session

from bulkio.adapters.modules import format_cell
from bulkio.codec.csv_codec import serialize
from bulkio.core.exceptions import JobNotFoundError, MappingError
from bulkio.models.template import ImportTemplate
from bulkio.registry.loader import ModuleSpec, RegistryLoader, get_registry_loader

logger = logging.getLogger(__name__)


class TemplateService:
    def __init__(self, db: Session, loader: Optional[RegistryLoader] = None):
        self.db = db
        self.loader = loader or get_registry_loader()

    @staticmethod
    def default_columns(spec: ModuleSpec) -> List[Dict[str, Any]]:
        """Registry headers as a mapping: every key mapped from its canonical header."""
        return [{"key": f.key, "source_column": f.header} for f in spec.fields]

    def _clean_columns(self, spec: ModuleSpec, columns: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        cleaned = []
        seen = set()
        for entry in columns:
            key = entry.get("key")
            if spec.get_field(key) is None or key in seen:
                continue
            seen.add(key)
            source = entry.get("source_column")
            cleaned.append({"key": key, "source_column": source.strip() if source else None})

        mapped = {c["key"] for c in cleaned if c["source_column"]}
        missing = [f.key for f in spec.fields if f.required and f.key not in mapped]
        if missing:
            raise MappingError(missing)
        return cleaned

    def list_for_module(self, module: str) -> Dict[str, Any]:
        spec = self.loader.get_module(module)
        saved = (
            self.db.query(ImportTemplate)
            .filter(ImportTemplate.module == module)
            .order_by(ImportTemplate.is_default.desc(), ImportTemplate.name)
            .all()
        )
        return {
            "module": module,
            "fields": [f.to_dict() for f in spec.fields],
            "default_columns": self.default_columns(spec),
            "templates": saved,
        }

    def get(self, template_id: int) -> ImportTemplate:
        template = self.db.get(ImportTemplate, template_id)
        if not template:
            raise JobNotFoundError("Template", template_id)
        return template

    def _clear_default(self, module: str, keep_id: Optional[int] = None) -> None:
        query = self.db.query(ImportTemplate).filter(
            ImportTemplate.module == module, ImportTemplate.is_default.is_(True)
        )
        if keep_id is not None:
            query = query.filter(ImportTemplate.id != keep_id)
        for other in query.all():
            other.is_default = False

    def create(
        self,
        name: str,
        module: str,
        columns: List[Dict[str, Any]],
        description: Optional[str] = None,
        is_default: bool = False,
        created_by: Optional[str] = None,
    ) -> ImportTemplate:
        spec = self.loader.get_module(module)
        template = ImportTemplate(
            name=name,
            module=module,
            description=description,
            columns=self._clean_columns(spec, columns),
            is_default=is_default,
            created_by=created_by,
        )
        if is_default:
            self._clear_default(module)
        self.db.add(template)
        self.db.commit()
        self.db.refresh(template)
        logger.info(f"Created import template {template.id} for {module}")
        return template

    def update(self, template_id: int, **changes) -> ImportTemplate:
        template = self.get(template_id)
        spec = self.loader.get_module(template.module)

        if changes.get("columns") is not None:
            template.columns = self._clean_columns(spec, changes["columns"])
        for key in ("name", "description"):
            if changes.get(key) is not None:
                setattr(template, key, changes[key])
        if changes.get("is_default") is not None:
            template.is_default = changes["is_default"]
            if template.is_default:
                self._clear_default(template.module, keep_id=template.id)

        self.db.commit()
        self.db.refresh(template)
        return template

    def delete(self, template_id: int) -> None:
        template = self.get(template_id)
        self.db.delete(template)
        self.db.commit()

    def sample_csv(self, module: str) -> bytes:
        """Module headers plus one example row."""
        spec = self.loader.get_module(module)
        row = [format_cell(spec.sample.get(f.key)) for f in spec.fields]
        return serialize(spec.headers, [row])
