"""Repository tests against a SQLite database.

Covers the conditional statements the services rely on:
- CreditAccountRepository: lazy creation, compare-and-swap reset, conditional debit
- GenerationRecordRepository: newest-first listing scoped to the owner
- GenerationTaskRepository: owner scoping, single publishing claim, fail_if_active
- Timestamp columns: timezone-aware storage, naive values refused
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import StatementError

from portraitly.models import (
    CreditAccount,
    GenerationRecord,
    GenerationTask,
    GenerationTaskStatus,
)
from portraitly.models.types import UTCDateTime
from portraitly.repositories import (
    CreditAccountRepository,
    GenerationRecordRepository,
    GenerationTaskRepository,
)

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


# CreditAccountRepository


@pytest.mark.asyncio
async def test_ensure_exists_creates_never_reset_account(session):
    repo = CreditAccountRepository(session)

    await repo.ensure_exists("user-1")
    account = await repo.get("user-1")

    assert account.credits == 0
    assert account.last_reset_at is None


@pytest.mark.asyncio
async def test_ensure_exists_is_idempotent(session):
    repo = CreditAccountRepository(session)
    session.add(CreditAccount(user_id="user-1", credits=9, last_reset_at=NOW))
    await session.flush()

    await repo.ensure_exists("user-1")

    account = await repo.get("user-1")
    assert account.credits == 9
    assert account.last_reset_at == NOW


@pytest.mark.asyncio
async def test_reset_if_unchanged_only_matches_observed_timestamp(session):
    repo = CreditAccountRepository(session)
    session.add(CreditAccount(user_id="user-1", credits=0, last_reset_at=NOW))
    await session.flush()

    stale = await repo.reset_if_unchanged("user-1", NOW - timedelta(days=1), 50, NOW)
    fresh = await repo.reset_if_unchanged("user-1", NOW, 50, NOW + timedelta(days=1))

    assert stale is False
    assert fresh is True
    account = await repo.get("user-1")
    assert account.credits == 50
    assert account.last_reset_at == NOW + timedelta(days=1)


@pytest.mark.asyncio
async def test_reset_if_unchanged_handles_null_timestamp(session):
    repo = CreditAccountRepository(session)
    await repo.ensure_exists("user-1")

    assert await repo.reset_if_unchanged("user-1", None, 50, NOW) is True
    # Second reset with the same (now stale) observation loses
    assert await repo.reset_if_unchanged("user-1", None, 50, NOW) is False


@pytest.mark.asyncio
async def test_debit_if_sufficient(session):
    repo = CreditAccountRepository(session)
    session.add(CreditAccount(user_id="user-1", credits=3, last_reset_at=NOW))
    await session.flush()

    assert await repo.debit_if_sufficient("user-1", 2) == 1
    assert await repo.debit_if_sufficient("user-1", 2) is None
    assert (await repo.get("user-1")).credits == 1


# GenerationRecordRepository


@pytest.mark.asyncio
async def test_list_by_user_newest_first(session):
    repo = GenerationRecordRepository(session)
    for minutes, style in [(0, "old"), (10, "middle"), (20, "new")]:
        await repo.add(
            GenerationRecord(
                image_url=f"https://storage.example.com/{style}.png",
                style_id=style,
                user_id="owner",
                created_at=NOW + timedelta(minutes=minutes),
            )
        )
    await repo.add(
        GenerationRecord(
            image_url="https://storage.example.com/x.png", style_id="x", user_id="other"
        )
    )

    records = await repo.list_by_user("owner")

    assert [r.style_id for r in records] == ["new", "middle", "old"]
    assert await repo.count_by_user("owner") == 3
    assert [r.style_id for r in await repo.list_by_user("owner", limit=1, offset=1)] == ["middle"]


# GenerationTaskRepository


async def add_task(session, task_id="task-1", user_id="owner") -> GenerationTask:
    task = GenerationTask(
        task_id=task_id,
        user_id=user_id,
        provider_id="nanobanana",
        style_id="studio_professional",
        submitted_at=NOW,
    )
    await GenerationTaskRepository(session).add(task)
    return task


@pytest.mark.asyncio
async def test_get_for_user_hides_foreign_tasks(session):
    repo = GenerationTaskRepository(session)
    await add_task(session)

    assert await repo.get_for_user("task-1", "owner") is not None
    assert await repo.get_for_user("task-1", "someone-else") is None
    assert await repo.get_for_user("missing", "owner") is None


@pytest.mark.asyncio
async def test_claim_for_publishing_succeeds_once(session):
    repo = GenerationTaskRepository(session)
    await add_task(session)

    assert await repo.claim_for_publishing("task-1", NOW) is True
    assert await repo.claim_for_publishing("task-1", NOW + timedelta(minutes=1)) is False

    task = await repo.get_for_user("task-1", "owner")
    assert task.status == GenerationTaskStatus.PUBLISHING
    assert task.claimed_at == NOW


@pytest.mark.asyncio
async def test_fail_if_active_leaves_terminal_tasks_alone(session):
    repo = GenerationTaskRepository(session)
    task = await add_task(session)
    task.status = GenerationTaskStatus.PUBLISHING
    task.mark_complete("https://storage.example.com/done.png", NOW)
    await repo.save(task)

    assert await repo.fail_if_active("task-1", "Generation failed", NOW) is False

    stored = await repo.get_for_user("task-1", "owner")
    assert stored.status == GenerationTaskStatus.COMPLETE
    assert stored.error is None


@pytest.mark.asyncio
async def test_fail_if_active_fails_processing_task(session):
    repo = GenerationTaskRepository(session)
    await add_task(session)

    assert await repo.fail_if_active("task-1", "Generation timed out", NOW) is True

    stored = await repo.get_for_user("task-1", "owner")
    assert stored.status == GenerationTaskStatus.FAILED
    assert stored.error == "Generation timed out"
    assert stored.completed_at == NOW


# Timestamp columns


def test_timestamp_columns_are_timezone_aware():
    columns = [
        CreditAccount.__table__.c.last_reset_at,
        GenerationRecord.__table__.c.created_at,
        GenerationTask.__table__.c.submitted_at,
        GenerationTask.__table__.c.claimed_at,
        GenerationTask.__table__.c.completed_at,
    ]
    for column in columns:
        assert isinstance(column.type, UTCDateTime), column.name
        assert column.type.impl.timezone is True


@pytest.mark.asyncio
async def test_timestamps_round_trip_as_aware_utc(session_factory):
    plus_three = timezone(timedelta(hours=3))
    async with session_factory() as session:
        session.add(
            CreditAccount(user_id="user-1", credits=1, last_reset_at=NOW.astimezone(plus_three))
        )
        await session.commit()

    async with session_factory() as session:
        account = await CreditAccountRepository(session).get("user-1")

    assert account.last_reset_at == NOW
    assert account.last_reset_at.utcoffset() == timedelta(0)


@pytest.mark.asyncio
async def test_naive_timestamp_is_rejected(session):
    session.add(CreditAccount(user_id="user-1", credits=1, last_reset_at=datetime(2026, 3, 1)))

    with pytest.raises(StatementError, match="naive datetime"):
        await session.flush()
