"""
Registry loader - parses the module YAML into typed Python objects.

Each module declares:
- Ordered fields (key, CSV header, required flag, type, enum values)
- Natural key used for duplicate detection
- Required job context keys
- Default export columns and a sample row
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Any, Optional
import threading
import yaml

from bulkio.core.config import settings
from bulkio.core.exceptions import UnsupportedModuleError

FIELD_TYPES = {"string", "number", "int", "boolean", "date", "enum", "email", "phone"}


@dataclass
class FieldSpec:
    """Specification for a single importable/exportable field."""

    key: str
    header: str
    required: bool = False
    type: str = "string"
    enum_values: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldSpec":
        """Parse a field spec from YAML dict."""
        return cls(
            key=data["key"],
            header=data.get("header", data["key"]),
            required=data.get("required", False),
            type=data.get("type", "string"),
            enum_values=list(data.get("enum_values") or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "header": self.header,
            "required": self.required,
            "type": self.type,
            "enum_values": self.enum_values or None,
        }


@dataclass
class ModuleSpec:
    """Specification for a single importable business module."""

    name: str
    label: str
    fields: List[FieldSpec]
    natural_key: List[str]
    required_context: List[str] = field(default_factory=list)
    default_columns: List[str] = field(default_factory=list)
    sample: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "ModuleSpec":
        """Parse a module spec from YAML dict."""
        fields = [FieldSpec.from_dict(f) for f in data.get("fields", [])]
        return cls(
            name=name,
            label=data.get("label", name),
            fields=fields,
            natural_key=list(data.get("natural_key") or []),
            required_context=list(data.get("required_context") or []),
            default_columns=list(data.get("default_columns") or [f.key for f in fields]),
            sample=dict(data.get("sample") or {}),
        )

    @property
    def keys(self) -> List[str]:
        return [f.key for f in self.fields]

    @property
    def headers(self) -> List[str]:
        return [f.header for f in self.fields]

    def get_field(self, key: str) -> Optional[FieldSpec]:
        for f in self.fields:
            if f.key == key:
                return f
        return None

    def validate(self) -> None:
        """
        Validate module specification.

        Checks:
        - Field keys and headers are unique
        - Field types are known and enum fields list their values
        - Natural key and default columns reference declared fields
        """
        keys = self.keys
        if len(keys) != len(set(keys)):
            duplicates = {k for k in keys if keys.count(k) > 1}
            raise ValueError(f"Module {self.name}: Duplicate field keys found: {duplicates}")

        headers = [h.lower() for h in self.headers]
        if len(headers) != len(set(headers)):
            raise ValueError(f"Module {self.name}: Duplicate headers found")

        for f in self.fields:
            if f.type not in FIELD_TYPES:
                raise ValueError(f"Module {self.name}.{f.key}: Unknown type '{f.type}'")
            if f.type == "enum" and not f.enum_values:
                raise ValueError(f"Module {self.name}.{f.key}: enum field declares no enum_values")

        if not self.natural_key:
            raise ValueError(f"Module {self.name}: natural_key is empty")

        for key in self.natural_key:
            if key not in keys and key not in self.required_context:
                raise ValueError(
                    f"Module {self.name}: natural key '{key}' is neither a field nor a context key"
                )

        for key in self.default_columns:
            if key not in keys:
                raise ValueError(f"Module {self.name}: default column '{key}' missing from fields")


@dataclass
class Registry:
    """Complete registry of importable modules."""

    version: int
    modules: Dict[str, ModuleSpec]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Registry":
        """Parse full registry from YAML dict."""
        modules = {
            name: ModuleSpec.from_dict(name, module_data)
            for name, module_data in data.get("modules", {}).items()
        }
        return cls(version=data["version"], modules=modules)

    def validate(self) -> None:
        if not self.modules:
            raise ValueError("Registry declares no modules")
        for module in self.modules.values():
            module.validate()


class RegistryLoader:
    """
    Loader for the module registry.

    Loads the YAML file and caches the parsed registry in memory.
    """

    def __init__(self, registry_path: Optional[Path] = None):
        path = Path(registry_path or settings.REGISTRY_FILE)
        if not path.is_absolute() and not path.exists():
            # Relative to the repository root when not run from it
            path = Path(__file__).resolve().parents[2] / path
        self.registry_path = path
        self._cache: Optional[Registry] = None

    def load(self, force_reload: bool = False) -> Registry:
        """
        Load and validate registry.

        Args:
            force_reload: If True, bypass cache and reload from disk

        Returns:
            Validated Registry object
        """
        if self._cache and not force_reload:
            return self._cache

        with open(self.registry_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)

        registry = Registry.from_dict(data)
        registry.validate()

        self._cache = registry
        return registry

    def get_module(self, module: str) -> ModuleSpec:
        """Get a module spec by name."""
        registry = self.load()
        if module not in registry.modules:
            raise UnsupportedModuleError(module)
        return registry.modules[module]

    def module_names(self) -> List[str]:
        return list(self.load().modules.keys())


_loader: Optional[RegistryLoader] = None
_loader_lock = threading.Lock()


def get_registry_loader() -> RegistryLoader:
    """Process-wide loader for the configured registry file."""
    global _loader
    if _loader is None:
        with _loader_lock:
            if _loader is None:
                _loader = RegistryLoader()
    return _loader
