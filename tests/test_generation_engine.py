"""Tests for GenerationEngine (blocking and split request shapes).

The ledger and GenerationTask state use the SQLite database; providers,
publisher and captioner are in-memory fakes.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from fakes import (
    PROCESSING,
    FakeAsyncProvider,
    FakeCaptioner,
    FakePublisher,
    FakeSyncProvider,
    FakeTextToImage,
    failed,
    success,
)
from portraitly.models.credit_account import CreditAccount
from portraitly.models.generation_task import GenerationTaskStatus
from portraitly.repositories.generation_task import GenerationTaskRepository
from portraitly.services.credits.ledger import CreditLedger
from portraitly.services.exceptions import (
    AllProvidersExhaustedError,
    GenerationCancelled,
    PermanentError,
    PersistenceError,
    QuotaExceededError,
    SourceImageError,
    TaskNotFoundError,
    TransientError,
)
from portraitly.services.generation.engine import (
    DEFAULT_PUBLISH_LEASE,
    REASON_FAILED,
    REASON_TIMED_OUT,
    REASON_UPLOAD_FAILED,
    GenerationEngine,
    GenerationRequest,
)
from portraitly.services.image_generation.orchestrator import FallbackOrchestrator
from portraitly.services.image_generation.poller import TaskPoller

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
DAILY_LIMIT = 5
SOURCE_URL = "https://uploads.example.com/me.png"


class Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def source_transport(status_code: int = 200) -> httpx.AsyncClient:
    def handler(request):
        return httpx.Response(
            status_code, content=b"source-bytes", headers={"content-type": "image/jpeg"}
        )

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def clock():
    return Clock(NOW)


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def make_engine(uow_factory, clock, publisher):
    def build(candidates, text_to_image=None, captioner=None, http_status=200):
        poller = TaskPoller(interval_seconds=2.0, timeout_seconds=300.0)
        return GenerationEngine(
            ledger=CreditLedger(uow_factory, daily_limit=DAILY_LIMIT, clock=clock),
            orchestrator=FallbackOrchestrator(candidates, text_to_image, poller),
            publisher=publisher,
            uow_factory=uow_factory,
            http_client=source_transport(http_status),
            captioner=captioner,
            credits_per_generation=1,
            clock=clock,
        )

    return build


async def credits_of(uow_factory, user_id):
    async with await uow_factory() as uow:
        account = await uow.credit_accounts.get(user_id)
    return account.credits if account else None


def request(user_id="user-1", style_id="classic_bw", filters=("smooth_skin",)):
    return GenerationRequest.build(user_id, SOURCE_URL, style_id, filters)


# Blocking shape


@pytest.mark.asyncio
async def test_generate_happy_path(make_engine, publisher, uow_factory):
    provider = FakeSyncProvider("p1")
    captioner = FakeCaptioner("a man in a suit")
    engine = make_engine([provider], captioner=captioner)

    result = await engine.generate(request())

    assert result.image_url == publisher.url
    assert result.style_id == "classic_bw"
    assert result.provider_id == "p1"
    assert result.remaining_credits == DAILY_LIMIT - 1
    assert await credits_of(uow_factory, "user-1") == DAILY_LIMIT - 1

    source, prompt = provider.calls[0]
    assert source.data == b"source-bytes"
    assert source.content_type == "image/jpeg"
    assert prompt.positive.startswith("(a man in a suit), ")
    assert "smooth skin texture" in prompt.positive

    assert publisher.published == [("user-1", "classic_bw", provider.image)]


@pytest.mark.asyncio
async def test_generate_unknown_style_uses_default(make_engine, publisher):
    engine = make_engine([FakeSyncProvider("p1")])

    result = await engine.generate(request(style_id="vaporwave"))

    assert result.style_id == "studio_professional"
    assert publisher.published[0][1] == "studio_professional"


@pytest.mark.asyncio
async def test_quota_exceeded_makes_no_provider_calls(make_engine, publisher, uow_factory):
    async with await uow_factory() as uow:
        uow.session.add(CreditAccount(user_id="user-1", credits=0, last_reset_at=NOW))
    provider = FakeSyncProvider("p1")
    engine = make_engine([provider])

    with pytest.raises(QuotaExceededError) as exc_info:
        await engine.generate(request())

    assert exc_info.value.remaining == 0
    assert str(exc_info.value) == "Daily limit reached. Come back tomorrow!"
    assert provider.calls == []
    assert publisher.published == []


@pytest.mark.asyncio
async def test_exhausted_chain_publishes_nothing_and_keeps_debit(
    make_engine, publisher, uow_factory
):
    engine = make_engine(
        [FakeSyncProvider("p1", error=TransientError("down"))],
        text_to_image=FakeTextToImage(error=PermanentError("rejected")),
    )

    with pytest.raises(AllProvidersExhaustedError):
        await engine.generate(request())

    assert publisher.published == []
    assert await credits_of(uow_factory, "user-1") == DAILY_LIMIT - 1


@pytest.mark.asyncio
async def test_unreachable_source_image(make_engine, publisher):
    provider = FakeSyncProvider("p1")
    engine = make_engine([provider], http_status=404)

    with pytest.raises(SourceImageError):
        await engine.generate(request())

    assert provider.calls == []


@pytest.mark.asyncio
async def test_cancel_after_generation_skips_publication(make_engine, publisher):
    cancel_event = asyncio.Event()

    class CancelsWhileRunning(FakeSyncProvider):
        async def transform(self, source, prompt):
            cancel_event.set()
            return await super().transform(source, prompt)

    engine = make_engine([CancelsWhileRunning("p1")])

    with pytest.raises(GenerationCancelled):
        await engine.generate(request(), cancel_event)

    assert publisher.published == []


@pytest.mark.asyncio
async def test_publish_failure_propagates(make_engine, publisher):
    publisher.error = PersistenceError("Upload failed (500)")
    engine = make_engine([FakeSyncProvider("p1")])

    with pytest.raises(PersistenceError):
        await engine.generate(request())


# Split shape


@pytest.mark.asyncio
async def test_submit_records_processing_task(make_engine, uow_factory):
    provider = FakeAsyncProvider("nanobanana", task_id="remote-1")
    engine = make_engine([FakeSyncProvider("sync-only"), provider])

    submitted = await engine.submit(request())

    assert submitted.task_id == "remote-1"
    assert submitted.provider_id == "nanobanana"
    assert submitted.remaining_credits == DAILY_LIMIT - 1
    async with await uow_factory() as uow:
        task = await uow.generation_tasks.get_for_user("remote-1", "user-1")
    assert task.status == GenerationTaskStatus.PROCESSING
    assert task.style_id == "classic_bw"
    assert task.submitted_at == NOW


@pytest.mark.asyncio
async def test_submit_without_async_provider_is_exhausted(make_engine):
    engine = make_engine([FakeSyncProvider("sync-only")])

    with pytest.raises(AllProvidersExhaustedError):
        await engine.submit(request())


@pytest.mark.asyncio
async def test_submit_quota_exceeded(make_engine, uow_factory):
    async with await uow_factory() as uow:
        uow.session.add(CreditAccount(user_id="user-1", credits=0, last_reset_at=NOW))
    provider = FakeAsyncProvider("nanobanana")
    engine = make_engine([provider])

    with pytest.raises(QuotaExceededError):
        await engine.submit(request())

    assert provider.submit_calls == 0


@pytest.mark.asyncio
async def test_status_progresses_to_complete_and_publishes_once(make_engine, publisher):
    provider = FakeAsyncProvider(
        "nanobanana",
        task_id="remote-1",
        statuses=[PROCESSING, success("https://cdn.test/out.png")],
    )
    engine = make_engine([provider])
    await engine.submit(request())

    first = await engine.get_status("user-1", "remote-1")
    second = await engine.get_status("user-1", "remote-1")
    third = await engine.get_status("user-1", "remote-1")

    assert first.status == GenerationTaskStatus.PROCESSING
    assert second.status == GenerationTaskStatus.COMPLETE
    assert second.image_url == publisher.url
    assert third == second
    assert provider.status_calls == 2
    assert len(publisher.published) == 1
    assert publisher.published[0][2].url == "https://cdn.test/out.png"


@pytest.mark.asyncio
async def test_concurrent_status_check_during_publication_sees_processing(
    make_engine, publisher
):
    provider = FakeAsyncProvider("nanobanana", task_id="remote-1", default=success())
    engine = make_engine([provider])
    await engine.submit(request())
    nested = []

    original_publish = publisher.publish

    async def publish_with_interleaved_check(user_id, style_id, image):
        nested.append(await engine.get_status("user-1", "remote-1"))
        return await original_publish(user_id, style_id, image)

    publisher.publish = publish_with_interleaved_check

    view = await engine.get_status("user-1", "remote-1")

    assert view.status == GenerationTaskStatus.COMPLETE
    assert nested[0].status == GenerationTaskStatus.PROCESSING
    assert len(publisher.published) == 1


@pytest.mark.asyncio
async def test_status_failed_task_is_terminal(make_engine, publisher):
    provider = FakeAsyncProvider(
        "nanobanana", task_id="remote-1", statuses=[failed("500", "internal upstream detail")]
    )
    engine = make_engine([provider])
    await engine.submit(request())

    first = await engine.get_status("user-1", "remote-1")
    second = await engine.get_status("user-1", "remote-1")

    assert first.status == GenerationTaskStatus.FAILED
    assert first.reason == REASON_FAILED
    assert "internal upstream detail" not in first.reason
    assert second == first
    assert provider.status_calls == 1
    assert publisher.published == []


@pytest.mark.asyncio
async def test_status_past_budget_times_out_without_query(make_engine, clock):
    provider = FakeAsyncProvider("nanobanana", task_id="remote-1")
    engine = make_engine([provider])
    await engine.submit(request())
    clock.now = NOW + timedelta(seconds=301)

    view = await engine.get_status("user-1", "remote-1")

    assert view.status == GenerationTaskStatus.FAILED
    assert view.reason == REASON_TIMED_OUT
    assert provider.status_calls == 0


@pytest.mark.asyncio
async def test_status_transient_error_reports_processing(make_engine):
    provider = FakeAsyncProvider(
        "nanobanana", task_id="remote-1", statuses=[TransientError("502")]
    )
    engine = make_engine([provider])
    await engine.submit(request())

    view = await engine.get_status("user-1", "remote-1")

    assert view.status == GenerationTaskStatus.PROCESSING


@pytest.mark.asyncio
async def test_status_success_without_reference_fails(make_engine):
    provider = FakeAsyncProvider("nanobanana", task_id="remote-1", statuses=[success("")])
    engine = make_engine([provider])
    await engine.submit(request())

    view = await engine.get_status("user-1", "remote-1")

    assert view.status == GenerationTaskStatus.FAILED


@pytest.mark.asyncio
async def test_status_upload_failure(make_engine, publisher):
    publisher.error = PersistenceError("Upload failed (403)")
    provider = FakeAsyncProvider("nanobanana", task_id="remote-1", default=success())
    engine = make_engine([provider])
    await engine.submit(request())

    view = await engine.get_status("user-1", "remote-1")

    assert view.status == GenerationTaskStatus.FAILED
    assert view.reason == REASON_UPLOAD_FAILED


@pytest.mark.asyncio
async def test_cancelled_publication_releases_claim(make_engine, publisher, clock):
    publisher.error = asyncio.CancelledError()
    provider = FakeAsyncProvider("nanobanana", task_id="remote-1", default=success())
    engine = make_engine([provider])
    await engine.submit(request())

    with pytest.raises(asyncio.CancelledError):
        await engine.get_status("user-1", "remote-1")

    clock.now = NOW + timedelta(hours=6)
    views = [await engine.get_status("user-1", "remote-1") for _ in range(3)]

    assert all(v.status == GenerationTaskStatus.FAILED for v in views)
    assert all(v.reason == REASON_UPLOAD_FAILED for v in views)
    assert provider.status_calls == 1
    assert len(publisher.published) == 1


@pytest.mark.asyncio
async def test_abandoned_claim_fails_once_lease_expires(make_engine, publisher, clock, uow_factory):
    provider = FakeAsyncProvider("nanobanana", task_id="remote-1", default=success())
    engine = make_engine([provider])
    await engine.submit(request())
    # A worker claimed the task and died before publishing
    async with await uow_factory() as uow:
        assert await uow.generation_tasks.claim_for_publishing("remote-1", NOW)

    clock.now = NOW + DEFAULT_PUBLISH_LEASE - timedelta(seconds=1)
    within_lease = await engine.get_status("user-1", "remote-1")
    clock.now = NOW + DEFAULT_PUBLISH_LEASE
    expired = await engine.get_status("user-1", "remote-1")
    clock.now = NOW + timedelta(hours=6)
    later = await engine.get_status("user-1", "remote-1")

    assert within_lease.status == GenerationTaskStatus.PROCESSING
    assert expired.status == GenerationTaskStatus.FAILED
    assert expired.reason == REASON_UPLOAD_FAILED
    assert later == expired
    assert provider.status_calls == 0
    assert publisher.published == []


@pytest.mark.asyncio
async def test_late_completion_does_not_override_expired_claim(make_engine, publisher, clock):
    provider = FakeAsyncProvider("nanobanana", task_id="remote-1", default=success())
    engine = make_engine([provider])
    await engine.submit(request())
    nested = []

    original_publish = publisher.publish

    async def slow_publish(user_id, style_id, image):
        clock.now = NOW + DEFAULT_PUBLISH_LEASE + timedelta(minutes=1)
        nested.append(await engine.get_status("user-1", "remote-1"))
        return await original_publish(user_id, style_id, image)

    publisher.publish = slow_publish

    view = await engine.get_status("user-1", "remote-1")
    stored = await engine.get_status("user-1", "remote-1")

    assert nested[0].status == GenerationTaskStatus.FAILED
    assert view.status == GenerationTaskStatus.FAILED
    assert view.reason == REASON_UPLOAD_FAILED
    assert stored == view


@pytest.mark.asyncio
async def test_completion_write_failure_fails_task(make_engine, publisher, monkeypatch):
    provider = FakeAsyncProvider("nanobanana", task_id="remote-1", default=success())
    engine = make_engine([provider])
    await engine.submit(request())

    async def broken_save(self, task):
        raise OperationalError("UPDATE generation_tasks", {}, Exception("disk I/O error"))

    monkeypatch.setattr(GenerationTaskRepository, "save", broken_save)

    with pytest.raises(PersistenceError, match="task completion"):
        await engine.get_status("user-1", "remote-1")

    view = await engine.get_status("user-1", "remote-1")

    assert view.status == GenerationTaskStatus.FAILED
    assert view.reason == REASON_UPLOAD_FAILED
    assert provider.status_calls == 1
    assert len(publisher.published) == 1


@pytest.mark.asyncio
async def test_status_of_foreign_or_unknown_task(make_engine):
    engine = make_engine([FakeAsyncProvider("nanobanana", task_id="remote-1")])
    await engine.submit(request())

    with pytest.raises(TaskNotFoundError):
        await engine.get_status("someone-else", "remote-1")
    with pytest.raises(TaskNotFoundError):
        await engine.get_status("user-1", "never-submitted")


@pytest.mark.asyncio
async def test_status_when_provider_no_longer_configured(make_engine):
    submitting = make_engine([FakeAsyncProvider("old-provider", task_id="remote-1")])
    await submitting.submit(request())
    engine = make_engine([FakeAsyncProvider("new-provider")])

    view = await engine.get_status("user-1", "remote-1")

    assert view.status == GenerationTaskStatus.FAILED
