"""Async task poller for submit-then-poll providers.

State machine per task: processing → {success, failed, timed out}.

- Wait the poll interval (waking immediately on cancellation), then query once
- Transport errors and unparseable responses are transient no-ops
- processing (or no status signal) → keep polling
- success → result reference required, otherwise the attempt fails
- failed → PollFailedError carrying the provider's code/message verbatim

The loop is bounded both by wall clock and by the equivalent attempt count.
Abandoned tasks are not cancelled on the provider side; the poller only stops
polling.
"""

import asyncio
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional

import structlog

from portraitly.services.exceptions import (
    GenerationCancelled,
    PollFailedError,
    PollTimeoutError,
    TransientError,
)
from portraitly.services.image_generation.base import AsyncImageProvider, TaskState
from portraitly.services.image_generation.cancellation import sleep_or_cancel

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PollOutcome:
    result_ref: str
    attempts: int


@dataclass
class PollingTask:
    """In-flight bookkeeping for one submitted task (never shared between jobs)."""

    task_id: str
    submitted_at: float
    attempts_made: int = 0
    status: TaskState = TaskState.PROCESSING
    result_ref: Optional[str] = None


class TaskPoller:
    """Polls an AsyncImageProvider task until it reaches a terminal state."""

    def __init__(
        self,
        interval_seconds: float = 2.0,
        timeout_seconds: float = 300.0,
        max_attempts: Optional[int] = None,
        unbounded: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize poller.

        Args:
            interval_seconds: Wait before each status query (default: 2s)
            timeout_seconds: Wall-clock budget per task (default: 5 minutes)
            max_attempts: Explicit attempt budget; derived from timeout/interval when omitted
            unbounded: Disable both budgets (trusted contexts only, e.g. local development)
            clock: Monotonic clock, injectable for tests
        """
        self.interval_seconds = interval_seconds
        self.timeout_seconds = timeout_seconds
        self.unbounded = unbounded
        self.clock = clock

        if max_attempts is None and interval_seconds > 0:
            max_attempts = max(1, math.ceil(timeout_seconds / interval_seconds))
        self.max_attempts = max_attempts

    def budget_exceeded(self, elapsed_seconds: float) -> bool:
        """True if a task running for elapsed_seconds is past the wall-clock budget."""
        return not self.unbounded and elapsed_seconds >= self.timeout_seconds

    def _out_of_budget(self, task: PollingTask) -> bool:
        if self.unbounded:
            return False
        if self.max_attempts is not None and task.attempts_made >= self.max_attempts:
            return True
        return self.budget_exceeded(self.clock() - task.submitted_at)

    async def poll(
        self,
        provider: AsyncImageProvider,
        task_id: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PollOutcome:
        """Block until the task succeeds, fails, times out or is cancelled.

        Args:
            provider: Adapter that issued the task
            task_id: Provider-issued task id
            cancel_event: Optional per-job cancellation signal

        Returns:
            PollOutcome with the result reference and number of status queries made

        Raises:
            PollFailedError: Provider reported failure, or success without an artifact
            PollTimeoutError: Budget exhausted while still processing
            GenerationCancelled: cancel_event fired
        """
        task = PollingTask(task_id=task_id, submitted_at=self.clock())
        log = logger.bind(provider_id=provider.provider_id, task_id=task_id)

        while True:
            if self._out_of_budget(task):
                elapsed = self.clock() - task.submitted_at
                log.warning("poller.timeout", attempts=task.attempts_made, elapsed_seconds=elapsed)
                raise PollTimeoutError(task_id, task.attempts_made, elapsed)

            try:
                await sleep_or_cancel(self.interval_seconds, cancel_event)
            except GenerationCancelled:
                log.info("poller.abandoned", attempts=task.attempts_made)
                raise

            task.attempts_made += 1
            try:
                status = await provider.get_task_status(task_id)
            except TransientError as e:
                log.debug("poller.transient_error", attempt=task.attempts_made, error=str(e))
                continue

            if status.state == TaskState.PROCESSING:
                continue

            task.status = status.state

            if status.state == TaskState.FAILED:
                log.warning(
                    "poller.task_failed",
                    attempts=task.attempts_made,
                    code=status.code,
                    message=status.message,
                )
                raise PollFailedError(status.message or "Generation failed", code=status.code)

            if not status.result_ref:
                log.error("poller.result_missing", attempts=task.attempts_made)
                raise PollFailedError("Task succeeded but no result reference was returned")

            task.result_ref = status.result_ref
            log.info("poller.succeeded", attempts=task.attempts_made)
            return PollOutcome(result_ref=status.result_ref, attempts=task.attempts_made)
