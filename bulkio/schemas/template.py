"""
Pydantic schemas for import templates and module metadata
"""
from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel


class TemplateColumn(BaseModel):
    key: str
    source_column: Optional[str] = None


class FieldInfo(BaseModel):
    """A canonical field as declared in the module registry"""
    key: str
    header: str
    required: bool
    type: str
    enum_values: Optional[List[str]] = None


class ImportTemplateCreate(BaseModel):
    name: str
    module: str
    columns: List[TemplateColumn]
    description: Optional[str] = None
    is_default: bool = False
    created_by: Optional[str] = None


class ImportTemplateUpdate(BaseModel):
    name: Optional[str] = None
    columns: Optional[List[TemplateColumn]] = None
    description: Optional[str] = None
    is_default: Optional[bool] = None


class ImportTemplateResponse(BaseModel):
    id: int
    name: str
    module: str
    description: Optional[str] = None
    columns: List[TemplateColumn]
    is_default: bool
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ModuleTemplatesResponse(BaseModel):
    """Fields, default column set and saved templates for one module"""
    module: str
    fields: List[FieldInfo]
    default_columns: List[TemplateColumn]
    templates: List[ImportTemplateResponse]


class ModuleInfo(BaseModel):
    name: str
    label: str
    natural_key: List[str]
    required_context: List[str] = []
    fields: List[FieldInfo]


class ModuleListResponse(BaseModel):
    modules: List[ModuleInfo]
    total: int
