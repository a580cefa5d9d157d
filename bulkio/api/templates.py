"""
Import template endpoints: saved column mappings per module and sample CSVs.
"""
from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from bulkio.core.database import get_db
from bulkio.schemas.template import (
    ImportTemplateCreate,
    ImportTemplateResponse,
    ImportTemplateUpdate,
    ModuleTemplatesResponse,
)
from bulkio.services.template_service import TemplateService

router = APIRouter()


@router.get("/templates/{module}", response_model=ModuleTemplatesResponse)
async def get_module_templates(module: str, db: Session = Depends(get_db)):
    """Fields, default column set and saved templates for a module."""
    return TemplateService(db).list_for_module(module)


@router.get("/templates/{module}/sample")
async def download_sample(module: str, db: Session = Depends(get_db)):
    """Sample CSV with the module's headers and one example row."""
    content = TemplateService(db).sample_csv(module)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={module}-sample.csv"},
    )


@router.post("/templates", response_model=ImportTemplateResponse, status_code=201)
async def create_template(data: ImportTemplateCreate, db: Session = Depends(get_db)):
    payload = data.model_dump()
    return TemplateService(db).create(**payload)


@router.put("/templates/{template_id}", response_model=ImportTemplateResponse)
async def update_template(template_id: int, data: ImportTemplateUpdate, db: Session = Depends(get_db)):
    return TemplateService(db).update(template_id, **data.model_dump(exclude_unset=True))


@router.delete("/templates/{template_id}")
async def delete_template(template_id: int, db: Session = Depends(get_db)):
    TemplateService(db).delete(template_id)
    return {"status": "deleted"}
