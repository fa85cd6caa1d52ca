"""Provider fallback orchestration.

Candidates are tried strictly in declared order, one at a time. A failed
candidate is recorded and never retried; when every image-to-image candidate
has failed, the text-to-image terminal provider is tried with the composed
prompt alone. There is no scoring or load-based selection.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence, Union

import structlog

from portraitly.services.exceptions import (
    AllProvidersExhaustedError,
    GenerationCancelled,
    GenerationTimeoutError,
    PollTimeoutError,
    ProviderError,
    TransientError,
)
from portraitly.services.image_generation.base import (
    AsyncImageProvider,
    GeneratedImage,
    ProviderMode,
    SourceImage,
    SyncImageProvider,
    TextToImageProvider,
)
from portraitly.services.image_generation.cancellation import raise_if_cancelled, run_cancellable
from portraitly.services.image_generation.poller import TaskPoller
from portraitly.services.prompting.composer import ComposedPrompt

logger = structlog.get_logger(__name__)

ImageProvider = Union[SyncImageProvider, AsyncImageProvider]


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class ProviderAttempt:
    """One try against one candidate; kept for diagnostics only."""

    provider_id: str
    mode: ProviderMode
    outcome: AttemptOutcome
    error_detail: Optional[str] = None


@dataclass
class GenerationOutcome:
    image: GeneratedImage
    provider_id: str
    attempts: list[ProviderAttempt] = field(default_factory=list)


@dataclass
class Submission:
    provider: AsyncImageProvider
    task_id: str
    attempts: list[ProviderAttempt] = field(default_factory=list)


class FallbackOrchestrator:
    """Drives one job through the ordered provider chain."""

    def __init__(
        self,
        candidates: Sequence[ImageProvider],
        text_to_image: Optional[TextToImageProvider],
        poller: TaskPoller,
        request_timeout: Optional[float] = 120.0,
    ):
        """Initialize orchestrator.

        Args:
            candidates: Image-to-image providers in priority order
            text_to_image: Terminal fallback provider (None disables the fallback)
            poller: Poller used for async candidates
            request_timeout: Bound on each sync call and each async submission
        """
        self.candidates = list(candidates)
        self.text_to_image = text_to_image
        self.poller = poller
        self.request_timeout = request_timeout

    @property
    def async_candidates(self) -> list[AsyncImageProvider]:
        return [c for c in self.candidates if isinstance(c, AsyncImageProvider)]

    def get_async_provider(self, provider_id: str) -> Optional[AsyncImageProvider]:
        for candidate in self.async_candidates:
            if candidate.provider_id == provider_id:
                return candidate
        return None

    def _record(
        self,
        attempts: list[ProviderAttempt],
        provider_id: str,
        mode: ProviderMode,
        outcome: AttemptOutcome,
        error: Optional[BaseException] = None,
    ) -> None:
        detail = f"{type(error).__name__}: {error}" if error is not None else None
        attempts.append(ProviderAttempt(provider_id, mode, outcome, detail))
        if outcome == AttemptOutcome.SUCCESS:
            logger.info("provider.attempt.succeeded", provider_id=provider_id, mode=mode.value)
        else:
            logger.warning(
                "provider.attempt.failed",
                provider_id=provider_id,
                mode=mode.value,
                outcome=outcome.value,
                error_detail=detail,
            )

    async def _call(self, awaitable, cancel_event: Optional[asyncio.Event]):
        try:
            return await run_cancellable(awaitable, cancel_event, timeout=self.request_timeout)
        except asyncio.TimeoutError as e:
            raise TransientError(f"Request timed out after {self.request_timeout}s") from e

    async def _try_candidate(
        self,
        candidate: ImageProvider,
        source: SourceImage,
        prompt: ComposedPrompt,
        cancel_event: Optional[asyncio.Event],
    ) -> GeneratedImage:
        if isinstance(candidate, AsyncImageProvider):
            task_id = await self._call(candidate.submit(source, prompt), cancel_event)
            logger.info(
                "provider.task_submitted", provider_id=candidate.provider_id, task_id=task_id
            )
            outcome = await self.poller.poll(candidate, task_id, cancel_event)
            return GeneratedImage(url=outcome.result_ref)
        return await self._call(candidate.transform(source, prompt), cancel_event)

    async def generate(
        self,
        source: SourceImage,
        prompt: ComposedPrompt,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> GenerationOutcome:
        """Produce one image, falling back through the chain.

        Args:
            source: Source photo (URL, plus bytes once downloaded)
            prompt: Composed positive/negative prompt
            cancel_event: Optional per-job cancellation signal

        Returns:
            GenerationOutcome with image, winning provider id and the attempt log

        Raises:
            AllProvidersExhaustedError: Every candidate and the fallback failed
            GenerationTimeoutError: As above, with the chain ending on a poll timeout
            GenerationCancelled: cancel_event fired before a result was produced
        """
        attempts: list[ProviderAttempt] = []
        last_error: Optional[Exception] = None

        for candidate in self.candidates:
            raise_if_cancelled(cancel_event)
            try:
                image = await self._try_candidate(candidate, source, prompt, cancel_event)
            except GenerationCancelled:
                logger.info("generation.cancelled", provider_id=candidate.provider_id)
                raise
            except PollTimeoutError as e:
                self._record(
                    attempts, candidate.provider_id, candidate.mode, AttemptOutcome.TIMEOUT, e
                )
                last_error = e
                continue
            except ProviderError as e:
                outcome = AttemptOutcome.ERROR
                if isinstance(e.__cause__, asyncio.TimeoutError):
                    outcome = AttemptOutcome.TIMEOUT
                self._record(attempts, candidate.provider_id, candidate.mode, outcome, e)
                last_error = e
                continue

            self._record(attempts, candidate.provider_id, candidate.mode, AttemptOutcome.SUCCESS)
            return GenerationOutcome(
                image=image, provider_id=candidate.provider_id, attempts=attempts
            )

        if self.text_to_image is not None:
            raise_if_cancelled(cancel_event)
            provider = self.text_to_image
            logger.warning("generation.text_to_image_fallback", provider_id=provider.provider_id)
            try:
                image = await self._call(provider.generate(prompt), cancel_event)
            except ProviderError as e:
                self._record(attempts, provider.provider_id, provider.mode, AttemptOutcome.ERROR, e)
                last_error = e
            else:
                self._record(attempts, provider.provider_id, provider.mode, AttemptOutcome.SUCCESS)
                return GenerationOutcome(
                    image=image, provider_id=provider.provider_id, attempts=attempts
                )

        logger.error(
            "generation.exhausted",
            attempt_count=len(attempts),
            last_error=str(last_error) if last_error else None,
        )
        if isinstance(last_error, PollTimeoutError):
            raise GenerationTimeoutError(attempts, last_error)
        raise AllProvidersExhaustedError(attempts, last_error)

    async def submit(
        self,
        source: SourceImage,
        prompt: ComposedPrompt,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Submission:
        """Submit to the first asynchronous candidate that accepts the task.

        Used by callers that cannot hold a connection open; status is checked later.

        Raises:
            AllProvidersExhaustedError: No asynchronous candidate accepted the task
        """
        attempts: list[ProviderAttempt] = []
        last_error: Optional[Exception] = None

        for candidate in self.async_candidates:
            raise_if_cancelled(cancel_event)
            try:
                task_id = await self._call(candidate.submit(source, prompt), cancel_event)
            except ProviderError as e:
                self._record(
                    attempts, candidate.provider_id, candidate.mode, AttemptOutcome.ERROR, e
                )
                last_error = e
                continue

            self._record(attempts, candidate.provider_id, candidate.mode, AttemptOutcome.SUCCESS)
            return Submission(provider=candidate, task_id=task_id, attempts=attempts)

        logger.error("generation.submit_exhausted", attempt_count=len(attempts))
        raise AllProvidersExhaustedError(attempts, last_error)
