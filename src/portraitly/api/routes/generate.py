"""Generation API endpoints.

This module implements:
- POST /api/generate - Blocking generation (returns the stored image URL)
- POST /api/generate/submit - Start a split-shape generation (returns a task id)
- GET /api/generate/status/{task_id} - Check a submitted task once

Each generation consumes credits at admission; failed generations are not refunded.
"""

import asyncio
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, ConfigDict, Field, field_validator

from portraitly.api.dependencies import get_current_user, get_engine
from portraitly.services.auth.supabase_auth import AuthenticatedUser
from portraitly.services.exceptions import (
    AllProvidersExhaustedError,
    GenerationCancelled,
    GenerationTimeoutError,
    LedgerUnavailableError,
    PersistenceError,
    QuotaExceededError,
    ServiceError,
    SourceImageError,
    TaskNotFoundError,
)
from portraitly.services.generation.engine import GenerationEngine, GenerationRequest

logger = structlog.get_logger()
router = APIRouter(prefix="/api/generate", tags=["generate"])

# Interval between client-disconnect checks during a blocking generation
DISCONNECT_CHECK_SECONDS = 0.5

# nginx convention for "client closed request"; the client never sees it
HTTP_499_CLIENT_CLOSED_REQUEST = 499


# Request/Response Models


class GenerateRequest(BaseModel):
    """Request body shared by the blocking and split generation endpoints."""

    model_config = ConfigDict(populate_by_name=True)

    image_url: str = Field(
        ...,
        alias="imageUrl",
        description="Public URL of the already-uploaded source photo",
        min_length=1,
        max_length=2048,
    )
    style_id: Optional[str] = Field(
        default=None,
        alias="styleId",
        description="Style id (unknown ids use the default style)",
        max_length=100,
    )
    filters: list[str] = Field(
        default_factory=list,
        description="Retouch filter ids or labels (unknown entries are ignored)",
        max_length=20,
    )

    @field_validator("image_url")
    @classmethod
    def validate_image_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("imageUrl must be an http(s) URL")
        return v

    def to_generation_request(self, user_id: str) -> GenerationRequest:
        return GenerationRequest.build(user_id, self.image_url, self.style_id, self.filters)


class GenerateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image_url: str = Field(..., alias="imageUrl", description="Public URL of the stored image")


class SubmitResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    task_id: str = Field(..., alias="taskId", description="Provider task id to poll")


class TaskStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str = Field(..., description="processing, complete or failed")
    image_url: Optional[str] = Field(
        default=None, alias="imageUrl", description="Stored image URL (complete only)"
    )
    error: Optional[str] = Field(default=None, description="Failure reason (failed only)")


def to_http_error(e: ServiceError) -> HTTPException:
    """Translate a service error into the HTTP status callers see.

    Provider details never reach the client; they are logged by the services.
    """
    if isinstance(e, QuotaExceededError):
        return HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=str(e))
    if isinstance(e, LedgerUnavailableError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Credit service unavailable. Please try again later.",
        )
    if isinstance(e, SourceImageError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Could not fetch source image"
        )
    if isinstance(e, GenerationTimeoutError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Generation timed out")
    if isinstance(e, AllProvidersExhaustedError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Generation failed")
    if isinstance(e, PersistenceError):
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Upload failed"
        )
    if isinstance(e, TaskNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
    if isinstance(e, GenerationCancelled):
        return HTTPException(status_code=HTTP_499_CLIENT_CLOSED_REQUEST, detail="Cancelled")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error"
    )


async def watch_disconnect(request: Request, cancel_event: asyncio.Event) -> None:
    """Set cancel_event once the client goes away."""
    while not cancel_event.is_set():
        if await request.is_disconnected():
            logger.info("generate.client_disconnected")
            cancel_event.set()
            return
        await asyncio.sleep(DISCONNECT_CHECK_SECONDS)


# API Endpoints


@router.post("", response_model=GenerateResponse, status_code=status.HTTP_200_OK)
async def generate(
    body: GenerateRequest,
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
    engine: GenerationEngine = Depends(get_engine),
) -> GenerateResponse:
    """Generate one portrait and wait for the stored result.

    The job is cancelled (no further provider attempts, no publication) if the
    client disconnects before it finishes.

    Raises:
        HTTPException 402: Daily limit reached
        HTTPException 502: All providers failed or timed out
        HTTPException 500: Upload failed
        HTTPException 503: Credit storage unavailable
    """
    cancel_event = asyncio.Event()
    watcher = asyncio.create_task(watch_disconnect(request, cancel_event))
    try:
        result = await engine.generate(body.to_generation_request(user.id), cancel_event)
    except ServiceError as e:
        logger.warning(
            "generate.failed", user_id=user.id, error_type=type(e).__name__, error=str(e)
        )
        raise to_http_error(e)
    finally:
        watcher.cancel()

    return GenerateResponse(image_url=result.image_url)


@router.post("/submit", response_model=SubmitResponse, status_code=status.HTTP_200_OK)
async def submit(
    body: GenerateRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    engine: GenerationEngine = Depends(get_engine),
) -> SubmitResponse:
    """Start a generation on an asynchronous provider and return its task id.

    Example:
        POST /api/generate/submit
        {"imageUrl": "https://.../photo.png", "styleId": "classic_bw", "filters": []}

        Response 200:
        {"taskId": "8b1f0c..."}
    """
    try:
        submitted = await engine.submit(body.to_generation_request(user.id))
    except ServiceError as e:
        logger.warning(
            "generate.submit_failed", user_id=user.id, error_type=type(e).__name__, error=str(e)
        )
        raise to_http_error(e)

    return SubmitResponse(task_id=submitted.task_id)


@router.get("/status/{task_id}", response_model=TaskStatusResponse, status_code=status.HTTP_200_OK)
async def get_status(
    task_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    engine: GenerationEngine = Depends(get_engine),
) -> TaskStatusResponse:
    """Check a submitted task.

    Safe to call repeatedly: a finished task returns the same outcome every time
    and its image is published once.
    """
    try:
        view = await engine.get_status(user.id, task_id)
    except ServiceError as e:
        raise to_http_error(e)

    return TaskStatusResponse(status=view.status.value, image_url=view.image_url, error=view.reason)
