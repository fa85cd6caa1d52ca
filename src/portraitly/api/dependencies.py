"""FastAPI dependencies for request validation and common operations.

This module provides reusable FastAPI dependencies for:
- Settings and app.state collaborators (UoW factory, engine, ledger)
- Bearer-token authentication against Supabase Auth
"""

from typing import Annotated, Callable

from fastapi import Depends, Header, HTTPException, Request, status

from portraitly.core.config import Settings
from portraitly.services.auth.supabase_auth import AuthenticatedUser, SupabaseAuthClient
from portraitly.services.credits.ledger import CreditLedger
from portraitly.services.exceptions import IdentityUnavailableError, UnauthorizedError
from portraitly.services.generation.engine import GenerationEngine
from portraitly.uow import UnitOfWork


def get_settings() -> Settings:
    """Get application settings instance.

    Returns:
        Settings instance loaded from environment variables.
    """
    return Settings()  # type: ignore[call-arg]  # Pydantic loads from env vars


def get_uow_factory(request: Request) -> Callable[[], UnitOfWork]:
    """Get UnitOfWork factory from app state.

    Example:
        >>> @router.get("/endpoint")
        >>> async def endpoint(uow_factory=Depends(get_uow_factory)):
        ...     async with await uow_factory() as uow:
        ...         await uow.generation_records.list_by_user(user.id)
    """
    return request.app.state.uow_factory


def get_engine(request: Request) -> GenerationEngine:
    """Get the GenerationEngine built during app lifespan."""
    return request.app.state.engine


def get_ledger(request: Request) -> CreditLedger:
    """Get the CreditLedger built during app lifespan."""
    return request.app.state.ledger


def get_auth_client(request: Request) -> SupabaseAuthClient:
    return request.app.state.auth_client


async def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
    auth_client: SupabaseAuthClient = Depends(get_auth_client),
) -> AuthenticatedUser:
    """Resolve the caller from the Authorization: Bearer header.

    Raises:
        HTTPException: 401 if the header is missing or the token is rejected,
            503 if Supabase Auth cannot be reached
    """
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = authorization.split(" ", 1)[1].strip()
    try:
        return await auth_client.get_user(token)
    except UnauthorizedError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except IdentityUnavailableError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication service unavailable. Please try again later.",
        )
