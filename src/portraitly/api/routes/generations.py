"""Gallery endpoint: the current user's generated images, newest first."""

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field

from portraitly.api.dependencies import get_current_user, get_uow_factory
from portraitly.services.auth.supabase_auth import AuthenticatedUser

logger = structlog.get_logger()
router = APIRouter(prefix="/api/generations", tags=["generations"])


class GenerationDTO(BaseModel):
    """Data Transfer Object for one gallery entry."""

    model_config = ConfigDict(populate_by_name=True)

    image_url: str = Field(..., alias="imageUrl")
    style_id: str = Field(..., alias="styleId")
    created_at: datetime = Field(..., alias="createdAt", description="UTC creation time")


class GenerationsResponse(BaseModel):
    images: list[GenerationDTO] = Field(..., description="Gallery entries for the current page")
    total: int = Field(..., description="Total number of images owned by the user")
    offset: int
    limit: int


@router.get("", response_model=GenerationsResponse, status_code=status.HTTP_200_OK)
async def list_generations(
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
    user: AuthenticatedUser = Depends(get_current_user),
    uow_factory=Depends(get_uow_factory),
) -> GenerationsResponse:
    """List the caller's generations (newest first)."""
    try:
        async with await uow_factory() as uow:
            records = await uow.generation_records.list_by_user(user.id, limit=limit, offset=offset)
            total = await uow.generation_records.count_by_user(user.id)
    except Exception as e:
        logger.error(
            "unexpected_error_listing_generations",
            user_id=user.id,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve generations. Please try again later.",
        )

    return GenerationsResponse(
        images=[
            GenerationDTO(image_url=r.image_url, style_id=r.style_id, created_at=r.created_at)
            for r in records
        ],
        total=total,
        offset=offset,
        limit=limit,
    )
