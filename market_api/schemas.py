from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FilterStateModel(_CamelModel):
    technology_ids: List[str] = Field(default_factory=list)
    material_ids: List[str] = Field(default_factory=list)
    process_categories: List[str] = Field(default_factory=list)
    size_ranges: List[str] = Field(default_factory=list)
    countries: List[str] = Field(default_factory=list)
    states: List[str] = Field(default_factory=list)
    vendor_material_types: List[str] = Field(default_factory=list)
    vendor_material_formats: List[str] = Field(default_factory=list)
    vendor_printer_manufacturers: List[str] = Field(default_factory=list)
    vendor_printer_models: List[str] = Field(default_factory=list)


class ExportRequestModel(_CamelModel):
    filters: FilterStateModel = Field(default_factory=FilterStateModel)
    selected_ids: List[str] = Field(default_factory=list)
    segment: Optional[str] = None
    extras: Dict[str, Any] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    status: str
    timestamp: str
