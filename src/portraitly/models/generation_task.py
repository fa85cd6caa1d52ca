"""GenerationTask entity - Server-side state of a submitted asynchronous generation."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel

from portraitly.core.timezone import utc_now
from portraitly.models.types import UTCDateTime


class GenerationTaskStatus(str, Enum):
    """GenerationTask lifecycle status."""

    PROCESSING = "processing"
    PUBLISHING = "publishing"
    COMPLETE = "complete"
    FAILED = "failed"


TERMINAL_TASK_STATUSES = (GenerationTaskStatus.COMPLETE, GenerationTaskStatus.FAILED)


class InvalidStateTransition(Exception):
    """Raised when attempting an invalid generation task state transition."""

    pass


class GenerationTask(SQLModel, table=True):
    """GenerationTask tracks one provider task handle for the submit/status flow.

    Only the caller that moves the row from processing to publishing may run
    the publisher, so repeated status checks never publish twice.
    ``claimed_at`` records when that claim was taken so an abandoned claim can
    be expired.
    """

    __tablename__ = "generation_tasks"  # type: ignore[assignment]

    task_id: str = Field(primary_key=True, max_length=255)
    user_id: str = Field(max_length=255, index=True)
    provider_id: str = Field(max_length=255)
    style_id: str = Field(max_length=100)
    status: GenerationTaskStatus = Field(default=GenerationTaskStatus.PROCESSING, index=True)
    image_url: Optional[str] = Field(default=None)
    error: Optional[str] = Field(default=None, max_length=1000)
    submitted_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime)
    claimed_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    completed_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_TASK_STATUSES

    def mark_complete(self, image_url: str, now: datetime) -> None:
        """Transition from publishing to complete.

        Raises:
            InvalidStateTransition: If current status is not publishing
            ValueError: If image_url is empty
        """
        if self.status != GenerationTaskStatus.PUBLISHING:
            raise InvalidStateTransition(
                f"Cannot mark complete from {self.status.value}. "
                "Task must be in publishing state."
            )
        if not image_url:
            raise ValueError("image_url is required")
        self.image_url = image_url
        self.status = GenerationTaskStatus.COMPLETE
        self.completed_at = now

    def mark_failed(self, reason: str, now: datetime) -> None:
        """Transition from any non-terminal state to failed.

        Raises:
            InvalidStateTransition: If current status is already terminal
        """
        if self.is_terminal:
            raise InvalidStateTransition(
                f"Cannot mark failed from terminal state {self.status.value}."
            )
        self.error = reason[:1000]
        self.status = GenerationTaskStatus.FAILED
        self.completed_at = now
