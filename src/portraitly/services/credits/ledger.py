"""Credit ledger: per-user generation quota with a rolling reset window.

Admission is three statements in one transaction:

1. INSERT ... ON CONFLICT DO NOTHING (lazy account creation)
2. Compare-and-swap reset when the window has elapsed (or never started)
3. Conditional debit (WHERE credits >= cost) returning the new balance

A reset is committed even when the debit is then refused, since the user is
entitled to the refreshed quota.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

import structlog
from sqlalchemy.exc import SQLAlchemyError

from portraitly.core.timezone import utc_now
from portraitly.services.exceptions import LedgerUnavailableError

logger = structlog.get_logger(__name__)

# Bound on compare-and-swap retries when concurrent requests race on the same reset
MAX_RESET_ATTEMPTS = 3


@dataclass(frozen=True)
class Admission:
    """Outcome of one admission decision."""

    admitted: bool
    remaining: int


@dataclass(frozen=True)
class CreditBalance:
    """Read-only view of a user's quota."""

    credits: int
    last_reset_at: datetime | None
    next_reset_at: datetime | None


class CreditLedger:
    """Gates generation attempts against each user's credit account."""

    def __init__(
        self,
        uow_factory: Callable,
        daily_limit: int,
        reset_window: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize ledger.

        Args:
            uow_factory: Factory producing UnitOfWork instances
            daily_limit: Credits granted at each reset
            reset_window: Minimum time between resets (default: 24 hours)
            clock: Source of the current (aware UTC) time, injectable for tests
        """
        self.uow_factory = uow_factory
        self.daily_limit = daily_limit
        self.reset_window = reset_window
        self.clock = clock

    async def admit(self, user_id: str, cost: int) -> Admission:
        """Reset the quota if due, then debit cost if the balance covers it.

        Args:
            user_id: Identity of the account owner
            cost: Credits required by the attempt (positive)

        Returns:
            Admission with admitted flag and the balance after the decision

        Raises:
            ValueError: If cost is not positive
            LedgerUnavailableError: If the account could not be read or written
        """
        if cost <= 0:
            raise ValueError(f"cost must be positive, got {cost}")

        try:
            async with await self.uow_factory() as uow:
                repo = uow.credit_accounts
                await repo.ensure_exists(user_id)

                account = await repo.get(user_id)
                for _ in range(MAX_RESET_ATTEMPTS):
                    if account is None:
                        raise LedgerUnavailableError(f"Credit account for {user_id} vanished")

                    now = self.clock()
                    if not account.is_due_for_reset(now, self.reset_window):
                        break

                    if await repo.reset_if_unchanged(
                        user_id, account.last_reset_at, self.daily_limit, now
                    ):
                        logger.info(
                            "credits.reset",
                            user_id=user_id,
                            previous_credits=account.credits,
                            daily_limit=self.daily_limit,
                            first_reset=account.last_reset_at is None,
                        )
                        break

                    # Another request reset first; re-read and re-evaluate
                    account = await repo.get(user_id)
                else:
                    # Every compare-and-swap lost; only proceed if a reset did land
                    if account is None or account.is_due_for_reset(
                        self.clock(), self.reset_window
                    ):
                        logger.error(
                            "credits.reset_contention",
                            user_id=user_id,
                            attempts=MAX_RESET_ATTEMPTS,
                        )
                        raise LedgerUnavailableError(
                            f"Could not apply credit reset for {user_id}"
                        )

                remaining = await repo.debit_if_sufficient(user_id, cost)
                if remaining is None:
                    current = await repo.get(user_id)
                    balance = current.credits if current else 0
                    logger.info(
                        "credits.denied", user_id=user_id, cost=cost, remaining=balance
                    )
                    return Admission(admitted=False, remaining=balance)

            logger.info("credits.debited", user_id=user_id, cost=cost, remaining=remaining)
            return Admission(admitted=True, remaining=remaining)

        except SQLAlchemyError as e:
            logger.error(
                "credits.storage_error",
                user_id=user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise LedgerUnavailableError(f"Credit storage error: {e}") from e

    async def balance(self, user_id: str) -> CreditBalance:
        """Read the current balance without applying a reset.

        A never-used account reports the daily limit it will receive on first use.

        Raises:
            LedgerUnavailableError: If the account could not be read
        """
        try:
            async with await self.uow_factory() as uow:
                account = await uow.credit_accounts.get(user_id)
        except SQLAlchemyError as e:
            raise LedgerUnavailableError(f"Credit storage error: {e}") from e

        if account is None or account.is_due_for_reset(self.clock(), self.reset_window):
            return CreditBalance(
                credits=self.daily_limit,
                last_reset_at=account.last_reset_at if account else None,
                next_reset_at=None,
            )
        return CreditBalance(
            credits=account.credits,
            last_reset_at=account.last_reset_at,
            next_reset_at=account.next_reset_at(self.reset_window),
        )
