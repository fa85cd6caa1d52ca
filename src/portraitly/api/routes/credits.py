"""Credit balance endpoint."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field

from portraitly.api.dependencies import get_current_user, get_ledger
from portraitly.services.auth.supabase_auth import AuthenticatedUser
from portraitly.services.credits.ledger import CreditLedger
from portraitly.services.exceptions import LedgerUnavailableError

router = APIRouter(prefix="/api/credits", tags=["credits"])


class CreditsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    credits: int = Field(..., description="Credits available right now")
    last_reset_at: Optional[datetime] = Field(default=None, alias="lastResetAt")
    next_reset_at: Optional[datetime] = Field(
        default=None,
        alias="nextResetAt",
        description="When the quota refreshes (null if it refreshes on next use)",
    )
    daily_limit: int = Field(..., alias="dailyLimit")


@router.get("", response_model=CreditsResponse, status_code=status.HTTP_200_OK)
async def get_credits(
    user: AuthenticatedUser = Depends(get_current_user),
    ledger: CreditLedger = Depends(get_ledger),
) -> CreditsResponse:
    """Report the caller's balance without consuming or resetting anything."""
    try:
        balance = await ledger.balance(user.id)
    except LedgerUnavailableError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Credit service unavailable. Please try again later.",
        )

    return CreditsResponse(
        credits=balance.credits,
        last_reset_at=balance.last_reset_at,
        next_reset_at=balance.next_reset_at,
        daily_limit=ledger.daily_limit,
    )
