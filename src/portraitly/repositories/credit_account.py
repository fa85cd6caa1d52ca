"""CreditAccount repository for Portraitly.

Every mutation is a single conditional statement so concurrent admissions for
the same user cannot both act on a stale read.
"""

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from portraitly.models.credit_account import CreditAccount


class CreditAccountRepository:
    """Repository for CreditAccount entities.

    Methods:
    - get: Retrieve account by user id
    - ensure_exists: Lazily create an account row (INSERT ... ON CONFLICT DO NOTHING)
    - reset_if_unchanged: Compare-and-swap reset keyed on the observed last_reset_at
    - debit_if_sufficient: Atomic conditional debit returning the new balance
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    def _insert(self):
        # ON CONFLICT is dialect specific; PostgreSQL in production, SQLite in local tests
        if self.session.bind is not None and self.session.bind.dialect.name == "sqlite":
            return sqlite.insert(CreditAccount)
        return postgresql.insert(CreditAccount)

    async def get(self, user_id: str) -> CreditAccount | None:
        """Retrieve a user's credit account with fresh column values.

        Args:
            user_id: Identity of the account owner

        Returns:
            CreditAccount if found, None otherwise
        """
        result = await self.session.execute(
            select(CreditAccount)
            .where(CreditAccount.user_id == user_id)  # type: ignore[arg-type]
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def ensure_exists(self, user_id: str) -> None:
        """Create an empty, never-reset account if none exists.

        Query explanation:
        - INSERT (credits=0, last_reset_at=NULL): NULL forces a reset on first admission
        - ON CONFLICT (user_id) DO NOTHING: concurrent first requests are harmless
        """
        stmt = (
            self._insert()
            .values(user_id=user_id, credits=0, last_reset_at=None)
            .on_conflict_do_nothing(index_elements=["user_id"])
        )
        await self.session.execute(stmt)

    async def reset_if_unchanged(
        self,
        user_id: str,
        observed_last_reset_at: datetime | None,
        credits: int,
        now: datetime,
    ) -> bool:
        """Reset credits only if no concurrent request reset them first.

        Args:
            user_id: Identity of the account owner
            observed_last_reset_at: last_reset_at value read before deciding to reset
            credits: New credit balance (the daily limit)
            now: Timestamp recorded as the new last_reset_at

        Returns:
            True if this call performed the reset, False if another request won
        """
        if observed_last_reset_at is None:
            condition = CreditAccount.last_reset_at.is_(None)  # type: ignore[union-attr]
        else:
            condition = CreditAccount.last_reset_at == observed_last_reset_at  # type: ignore[arg-type]

        result = await self.session.execute(
            update(CreditAccount)
            .where(CreditAccount.user_id == user_id)  # type: ignore[arg-type]
            .where(condition)
            .values(credits=credits, last_reset_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def debit_if_sufficient(self, user_id: str, cost: int) -> int | None:
        """Debit credits atomically when the balance covers the cost.

        Query explanation:
        - UPDATE ... SET credits = credits - cost
        - WHERE credits >= cost: the sufficiency check and the write are one statement
        - RETURNING credits: new balance, no row when the check failed

        Args:
            user_id: Identity of the account owner
            cost: Number of credits to debit (positive)

        Returns:
            Remaining credits after the debit, or None if the balance was insufficient
        """
        result = await self.session.execute(
            update(CreditAccount)
            .where(CreditAccount.user_id == user_id)  # type: ignore[arg-type]
            .where(CreditAccount.credits >= cost)  # type: ignore[arg-type]
            .values(credits=CreditAccount.credits - cost)
            .returning(CreditAccount.credits)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()
