from fastapi import APIRouter
from bulkio.registry.loader import get_registry_loader
from bulkio.schemas.template import ModuleListResponse

router = APIRouter()


@router.get("/modules", response_model=ModuleListResponse)
async def list_modules():
    """List importable/exportable modules with their canonical fields."""
    registry = get_registry_loader().load()
    modules = [
        {
            "name": spec.name,
            "label": spec.label,
            "natural_key": spec.natural_key,
            "required_context": spec.required_context,
            "fields": [f.to_dict() for f in spec.fields],
        }
        for spec in registry.modules.values()
    ]
    return {"modules": modules, "total": len(modules)}
