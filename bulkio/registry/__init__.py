from bulkio.registry.loader import FieldSpec, ModuleSpec, Registry, RegistryLoader, get_registry_loader

__all__ = ["FieldSpec", "ModuleSpec", "Registry", "RegistryLoader", "get_registry_loader"]
