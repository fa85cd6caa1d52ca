"""Style and filter catalogue endpoint."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from portraitly.api.dependencies import get_current_user
from portraitly.services.prompting.catalog import FILTERS, STYLES

router = APIRouter(prefix="/api/styles", tags=["styles"])


class StyleDTO(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    label: str
    preview_url: str = Field(..., alias="previewUrl")
    color: str


class FilterDTO(BaseModel):
    id: str
    label: str


class CatalogueResponse(BaseModel):
    styles: list[StyleDTO]
    filters: list[FilterDTO]


@router.get("", response_model=CatalogueResponse, dependencies=[Depends(get_current_user)])
async def list_styles() -> CatalogueResponse:
    """List selectable styles (first entry is the default) and retouch filters."""
    return CatalogueResponse(
        styles=[
            StyleDTO(id=s.id, label=s.label, preview_url=s.preview_url, color=s.color)
            for s in STYLES
        ],
        filters=[FilterDTO(id=f.id, label=f.label) for f in FILTERS],
    )
