"""CreditAccount entity - Per-user generation quota with rolling daily reset."""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import CheckConstraint
from sqlmodel import Field, SQLModel

from portraitly.models.types import UTCDateTime


class CreditAccount(SQLModel, table=True):
    """CreditAccount holds a user's remaining credits and the time of the last reset.

    A NULL ``last_reset_at`` means the account has never been reset; the next
    admission always resets it to the daily limit.
    """

    __tablename__ = "credit_accounts"  # type: ignore[assignment]
    __table_args__ = (CheckConstraint("credits >= 0", name="ck_credit_accounts_non_negative"),)

    user_id: str = Field(primary_key=True, max_length=255)
    credits: int = Field(default=0, ge=0)
    last_reset_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)

    def is_due_for_reset(self, now: datetime, window: timedelta) -> bool:
        """Return True if the quota window has elapsed (or never started)."""
        if self.last_reset_at is None:
            return True
        return now - self.last_reset_at >= window

    def next_reset_at(self, window: timedelta) -> Optional[datetime]:
        """Time at which the next reset becomes due, or None if never reset."""
        if self.last_reset_at is None:
            return None
        return self.last_reset_at + window
