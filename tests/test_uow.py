"""Unit of Work tests.

Tests focus on transaction management:
- Successful commits persist changes
- Exceptions trigger rollback and propagate
- Debit and record writes in one UoW are atomic
"""

from datetime import datetime, timezone

import pytest

from portraitly.models import CreditAccount, GenerationRecord

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_uow_commits_on_successful_exit(uow_factory):
    async with await uow_factory() as uow:
        await uow.generation_records.add(
            GenerationRecord(
                image_url="https://storage.example.com/a.png",
                style_id="classic_bw",
                user_id="user-1",
            )
        )

    async with await uow_factory() as uow:
        assert await uow.generation_records.count_by_user("user-1") == 1


@pytest.mark.asyncio
async def test_uow_rollback_on_exception(uow_factory):
    """Changes are rolled back and the exception is not swallowed."""
    async with await uow_factory() as uow:
        uow.session.add(CreditAccount(user_id="user-1", credits=5, last_reset_at=NOW))

    with pytest.raises(ValueError, match="Simulated error"):
        async with await uow_factory() as uow:
            await uow.credit_accounts.debit_if_sufficient("user-1", 1)
            await uow.generation_records.add(
                GenerationRecord(
                    image_url="https://storage.example.com/a.png",
                    style_id="classic_bw",
                    user_id="user-1",
                )
            )
            raise ValueError("Simulated error")

    async with await uow_factory() as uow:
        assert (await uow.credit_accounts.get("user-1")).credits == 5
        assert await uow.generation_records.count_by_user("user-1") == 0


@pytest.mark.asyncio
async def test_uow_provides_all_repositories(uow_factory):
    async with await uow_factory() as uow:
        assert uow.credit_accounts is not None
        assert uow.generation_records is not None
        assert uow.generation_tasks is not None
