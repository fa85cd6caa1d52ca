"""GenerationJob - in-memory lifecycle of one generation request."""

from dataclasses import dataclass, field
from enum import Enum

from portraitly.models.generation_task import InvalidStateTransition


class JobStatus(str, Enum):
    PENDING = "pending"
    COMPOSING = "composing"
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


_ALLOWED_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.COMPOSING, JobStatus.FAILED},
    JobStatus.COMPOSING: {JobStatus.ATTEMPTING, JobStatus.FAILED},
    JobStatus.ATTEMPTING: {JobStatus.SUCCEEDED, JobStatus.FAILED},
    JobStatus.SUCCEEDED: set(),
    JobStatus.FAILED: set(),
}


@dataclass
class GenerationJob:
    """One user-initiated request for one image in one style.

    Not durable: discarded once it reaches a terminal status.
    """

    user_id: str
    source_image_url: str
    style_id: str
    filter_ids: frozenset[str] = field(default_factory=frozenset)
    status: JobStatus = JobStatus.PENDING

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.SUCCEEDED, JobStatus.FAILED)

    def transition(self, new_status: JobStatus) -> None:
        """Move to new_status.

        Raises:
            InvalidStateTransition: If the move is not allowed from the current status
        """
        if new_status not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidStateTransition(
                f"Cannot transition job from {self.status.value} to {new_status.value}"
            )
        self.status = new_status

    def start_composing(self) -> None:
        self.transition(JobStatus.COMPOSING)

    def start_attempting(self) -> None:
        self.transition(JobStatus.ATTEMPTING)

    def succeed(self) -> None:
        self.transition(JobStatus.SUCCEEDED)

    def fail(self) -> None:
        self.transition(JobStatus.FAILED)
