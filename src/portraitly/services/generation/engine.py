"""Generation engine: credit gate → prompt composition → provider chain → publication.

Two request shapes share the same admission and composition steps:

- generate(): blocking. Runs the whole fallback chain (polling async
  candidates inline) and publishes before returning.
- submit() / get_status(): split. submit() hands the job to the first async
  provider that accepts it and records a GenerationTask; each get_status()
  call performs at most one provider status query. The caller that wins the
  processing → publishing claim is the only one that publishes.

Credits are debited at admission and never refunded.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

import httpx
import structlog
from sqlalchemy.exc import SQLAlchemyError

from portraitly.core.timezone import utc_now
from portraitly.models.generation_task import GenerationTask, GenerationTaskStatus
from portraitly.services.captioning.captioner import BestEffortCaptioner
from portraitly.services.credits.ledger import CreditLedger
from portraitly.services.exceptions import (
    GenerationCancelled,
    PersistenceError,
    PollFailedError,
    QuotaExceededError,
    ServiceError,
    SourceImageError,
    TaskNotFoundError,
    TransientError,
)
from portraitly.services.generation.job import GenerationJob
from portraitly.services.image_generation.base import GeneratedImage, SourceImage, TaskState
from portraitly.services.image_generation.orchestrator import FallbackOrchestrator
from portraitly.services.image_generation.poller import TaskPoller
from portraitly.services.prompting.catalog import get_style
from portraitly.services.prompting.composer import ComposedPrompt, compose
from portraitly.services.publishing.publisher import ResultPublisher
from portraitly.services.storage.supabase_storage import download_image

logger = structlog.get_logger(__name__)

# User-facing failure reasons; provider details stay in the logs
REASON_FAILED = "Generation failed"
REASON_TIMED_OUT = "Generation timed out"
REASON_UPLOAD_FAILED = "Upload failed"

# Download + upload of one result comfortably fits in this window
DEFAULT_PUBLISH_LEASE = timedelta(minutes=10)


@dataclass(frozen=True)
class GenerationRequest:
    user_id: str
    image_url: str
    style_id: Optional[str] = None
    filter_ids: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def build(
        cls,
        user_id: str,
        image_url: str,
        style_id: Optional[str] = None,
        filter_ids: Iterable[str] = (),
    ) -> "GenerationRequest":
        return cls(user_id, image_url, style_id, frozenset(filter_ids))


@dataclass(frozen=True)
class GenerationResult:
    image_url: str
    style_id: str
    provider_id: str
    remaining_credits: int


@dataclass(frozen=True)
class SubmittedTask:
    task_id: str
    provider_id: str
    remaining_credits: int


@dataclass(frozen=True)
class TaskStatusView:
    """What a status check reports. PUBLISHING is shown as processing."""

    status: GenerationTaskStatus
    image_url: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def from_task(cls, task: GenerationTask) -> "TaskStatusView":
        if task.status == GenerationTaskStatus.COMPLETE:
            return cls(GenerationTaskStatus.COMPLETE, image_url=task.image_url)
        if task.status == GenerationTaskStatus.FAILED:
            return cls(GenerationTaskStatus.FAILED, reason=task.error or REASON_FAILED)
        return cls(GenerationTaskStatus.PROCESSING)


class GenerationEngine:
    """Runs generation jobs end to end for both request shapes."""

    def __init__(
        self,
        ledger: CreditLedger,
        orchestrator: FallbackOrchestrator,
        publisher: ResultPublisher,
        uow_factory: Callable,
        http_client: httpx.AsyncClient,
        captioner: Optional[BestEffortCaptioner] = None,
        credits_per_generation: int = 1,
        publish_lease: timedelta = DEFAULT_PUBLISH_LEASE,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize engine.

        Args:
            ledger: Credit gate consulted before any provider call
            orchestrator: Ordered provider chain
            publisher: Stores the final image and writes the GenerationRecord
            uow_factory: Factory producing UnitOfWork instances (GenerationTask state)
            http_client: Shared httpx client used to fetch source photos
            captioner: Optional caption step (None skips captioning)
            credits_per_generation: Cost of one job
            publish_lease: How long a publishing claim may stay unfinished before
                status checks treat it as abandoned
            clock: Source of the current (aware UTC) time, injectable for tests
        """
        self.ledger = ledger
        self.orchestrator = orchestrator
        self.publisher = publisher
        self.uow_factory = uow_factory
        self.http_client = http_client
        self.captioner = captioner
        self.credits_per_generation = credits_per_generation
        self.publish_lease = publish_lease
        self.clock = clock

    @property
    def poller(self) -> TaskPoller:
        return self.orchestrator.poller

    async def _admit(self, user_id: str) -> int:
        admission = await self.ledger.admit(user_id, self.credits_per_generation)
        if not admission.admitted:
            raise QuotaExceededError(admission.remaining)
        return admission.remaining

    async def _load_source(self, image_url: str) -> SourceImage:
        try:
            data, content_type = await download_image(self.http_client, image_url)
        except httpx.HTTPError as e:
            logger.warning("generation.source_fetch_failed", image_url=image_url, error=str(e))
            raise SourceImageError(f"Could not fetch source image: {e}") from e
        return SourceImage(url=image_url, data=data, content_type=content_type)

    async def _compose(self, job: GenerationJob, source: SourceImage) -> ComposedPrompt:
        caption = None
        if self.captioner is not None and source.data is not None:
            caption = await self.captioner.describe(source.data, source.content_type)
        return compose(job.style_id, job.filter_ids, caption)

    async def generate(
        self, request: GenerationRequest, cancel_event: Optional[asyncio.Event] = None
    ) -> GenerationResult:
        """Run one blocking generation.

        Args:
            request: Who, which source photo, which style and filters
            cancel_event: Set by the caller to stop further attempts and skip publication

        Returns:
            GenerationResult with the public URL of the stored image

        Raises:
            QuotaExceededError: Not enough credits (nothing debited)
            LedgerUnavailableError: Credit storage unavailable
            SourceImageError: Source photo could not be fetched
            AllProvidersExhaustedError: Chain exhausted (GenerationTimeoutError on a poll timeout)
            GenerationCancelled: cancel_event fired before publication
            PersistenceError: Upload failed
        """
        style_id = get_style(request.style_id).id
        job = GenerationJob(
            user_id=request.user_id,
            source_image_url=request.image_url,
            style_id=style_id,
            filter_ids=request.filter_ids,
        )
        log = logger.bind(user_id=request.user_id, style_id=style_id)

        try:
            remaining = await self._admit(request.user_id)

            job.start_composing()
            source = await self._load_source(request.image_url)
            prompt = await self._compose(job, source)

            job.start_attempting()
            outcome = await self.orchestrator.generate(source, prompt, cancel_event)

            # No publication once the caller has gone away
            if cancel_event is not None and cancel_event.is_set():
                raise GenerationCancelled("Job cancelled before publication")

            image_url = await self.publisher.publish(request.user_id, style_id, outcome.image)
        except (ServiceError, asyncio.CancelledError):
            job.fail()
            log.info("generation.job_failed", status=job.status.value)
            raise

        job.succeed()
        log.info(
            "generation.job_succeeded",
            provider_id=outcome.provider_id,
            attempt_count=len(outcome.attempts),
        )
        return GenerationResult(
            image_url=image_url,
            style_id=style_id,
            provider_id=outcome.provider_id,
            remaining_credits=remaining,
        )

    async def submit(self, request: GenerationRequest) -> SubmittedTask:
        """Start a split-shape generation and return its task id.

        Raises:
            QuotaExceededError: Not enough credits (nothing debited)
            LedgerUnavailableError: Credit storage unavailable
            SourceImageError: Source photo could not be fetched (only when captioning)
            AllProvidersExhaustedError: No asynchronous provider accepted the task
            PersistenceError: Task could not be recorded
        """
        style_id = get_style(request.style_id).id
        job = GenerationJob(
            user_id=request.user_id,
            source_image_url=request.image_url,
            style_id=style_id,
            filter_ids=request.filter_ids,
        )

        remaining = await self._admit(request.user_id)

        job.start_composing()
        if self.captioner is not None:
            source = await self._load_source(request.image_url)
        else:
            source = SourceImage(url=request.image_url)
        prompt = await self._compose(job, source)

        job.start_attempting()
        submission = await self.orchestrator.submit(source, prompt)

        try:
            async with await self.uow_factory() as uow:
                await uow.generation_tasks.add(
                    GenerationTask(
                        task_id=submission.task_id,
                        user_id=request.user_id,
                        provider_id=submission.provider.provider_id,
                        style_id=style_id,
                        submitted_at=self.clock(),
                    )
                )
        except SQLAlchemyError as e:
            logger.error(
                "generation.task_record_failed",
                user_id=request.user_id,
                task_id=submission.task_id,
                error=str(e),
            )
            raise PersistenceError(f"Failed to record task: {e}") from e

        logger.info(
            "generation.task_submitted",
            user_id=request.user_id,
            task_id=submission.task_id,
            provider_id=submission.provider.provider_id,
        )
        return SubmittedTask(
            task_id=submission.task_id,
            provider_id=submission.provider.provider_id,
            remaining_credits=remaining,
        )

    async def _fail(self, task: GenerationTask, reason: str) -> TaskStatusView:
        async with await self.uow_factory() as uow:
            changed = await uow.generation_tasks.fail_if_active(task.task_id, reason, self.clock())
            if not changed:
                current = await uow.generation_tasks.get_for_user(task.task_id, task.user_id)
                if current is not None:
                    return TaskStatusView.from_task(current)
        logger.info("generation.task_failed", task_id=task.task_id, reason=reason)
        return TaskStatusView(GenerationTaskStatus.FAILED, reason=reason)

    async def get_status(self, user_id: str, task_id: str) -> TaskStatusView:
        """Check a submitted task once, publishing its result if it just succeeded.

        Repeated calls on a finished task return the stored outcome without
        contacting the provider again. A publishing claim older than the
        publish lease is treated as abandoned and the task is failed.

        Raises:
            TaskNotFoundError: Unknown task id, or a task owned by another user
        """
        async with await self.uow_factory() as uow:
            task = await uow.generation_tasks.get_for_user(task_id, user_id)
        if task is None:
            raise TaskNotFoundError(f"Task {task_id} not found")

        if task.status == GenerationTaskStatus.PUBLISHING:
            claimed_at = task.claimed_at or task.submitted_at
            if self.clock() - claimed_at >= self.publish_lease:
                logger.warning("generation.publish_lease_expired", task_id=task_id)
                return await self._fail(task, REASON_UPLOAD_FAILED)
            return TaskStatusView.from_task(task)

        if task.status != GenerationTaskStatus.PROCESSING:
            return TaskStatusView.from_task(task)

        elapsed = (self.clock() - task.submitted_at).total_seconds()
        if self.poller.budget_exceeded(elapsed):
            logger.warning("poller.timeout", task_id=task_id, elapsed_seconds=elapsed)
            return await self._fail(task, REASON_TIMED_OUT)

        provider = self.orchestrator.get_async_provider(task.provider_id)
        if provider is None:
            logger.error(
                "generation.provider_unavailable", task_id=task_id, provider_id=task.provider_id
            )
            return await self._fail(task, REASON_FAILED)

        try:
            status = await provider.get_task_status(task_id)
        except TransientError as e:
            logger.debug("poller.transient_error", task_id=task_id, error=str(e))
            return TaskStatusView(GenerationTaskStatus.PROCESSING)
        except PollFailedError as e:
            logger.warning("poller.task_failed", task_id=task_id, code=e.code, message=e.message)
            return await self._fail(task, REASON_FAILED)

        if status.state == TaskState.PROCESSING:
            return TaskStatusView(GenerationTaskStatus.PROCESSING)

        if status.state == TaskState.FAILED:
            logger.warning(
                "poller.task_failed", task_id=task_id, code=status.code, message=status.message
            )
            return await self._fail(task, REASON_FAILED)

        if not status.result_ref:
            logger.error("poller.result_missing", task_id=task_id)
            return await self._fail(task, REASON_FAILED)

        return await self._publish_once(task, status.result_ref)

    async def _release_claim(self, task: GenerationTask) -> None:
        """Fail a claimed task whose publication was interrupted."""
        try:
            await self._fail(task, REASON_UPLOAD_FAILED)
        except Exception as e:
            # The publish lease fails the task on a later status check
            logger.error(
                "generation.claim_release_failed",
                task_id=task.task_id,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def _publish_once(self, task: GenerationTask, result_ref: str) -> TaskStatusView:
        async with await self.uow_factory() as uow:
            claimed = await uow.generation_tasks.claim_for_publishing(task.task_id, self.clock())
        if not claimed:
            # Another status check is publishing (or already finished)
            async with await self.uow_factory() as uow:
                current = await uow.generation_tasks.get_for_user(task.task_id, task.user_id)
            if current is None:
                raise TaskNotFoundError(f"Task {task.task_id} not found")
            return TaskStatusView.from_task(current)

        try:
            image_url = await self.publisher.publish(
                task.user_id, task.style_id, GeneratedImage(url=result_ref)
            )
        except PersistenceError as e:
            logger.error("generation.publish_failed", task_id=task.task_id, error=str(e))
            return await self._fail(task, REASON_UPLOAD_FAILED)
        except BaseException:
            await self._release_claim(task)
            raise

        try:
            async with await self.uow_factory() as uow:
                current = await uow.generation_tasks.get_for_user(task.task_id, task.user_id)
                if current is None:
                    raise TaskNotFoundError(f"Task {task.task_id} not found")
                if current.status != GenerationTaskStatus.PUBLISHING:
                    # Claim expired while publishing; the stored outcome stands
                    return TaskStatusView.from_task(current)
                current.mark_complete(image_url, self.clock())
                await uow.generation_tasks.save(current)
        except SQLAlchemyError as e:
            logger.error("generation.task_complete_failed", task_id=task.task_id, error=str(e))
            await self._release_claim(task)
            raise PersistenceError(f"Failed to record task completion: {e}") from e
        except BaseException:
            await self._release_claim(task)
            raise

        logger.info("generation.task_completed", task_id=task.task_id, image_url=image_url)
        return TaskStatusView(GenerationTaskStatus.COMPLETE, image_url=image_url)
