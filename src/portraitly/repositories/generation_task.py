"""GenerationTask repository for Portraitly.

Provides data access for the submit/status flow, including the atomic
processing → publishing claim that guarantees single publication.
"""

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from portraitly.models.generation_task import GenerationTask, GenerationTaskStatus


class GenerationTaskRepository:
    """Repository for GenerationTask entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, task: GenerationTask) -> GenerationTask:
        """Persist new generation task to database.

        Args:
            task: GenerationTask entity to persist

        Returns:
            Persisted task
        """
        self.session.add(task)
        await self.session.flush()
        return task

    async def get_for_user(self, task_id: str, user_id: str) -> GenerationTask | None:
        """Retrieve a task by provider task id, scoped to its owner.

        Tasks owned by other users are reported as not found.

        Args:
            task_id: Provider-issued task identifier
            user_id: Identity of the requesting user

        Returns:
            GenerationTask if found and owned by user_id, None otherwise
        """
        result = await self.session.execute(
            select(GenerationTask)
            .where(GenerationTask.task_id == task_id)  # type: ignore[arg-type]
            .where(GenerationTask.user_id == user_id)  # type: ignore[arg-type]
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def claim_for_publishing(self, task_id: str, now: datetime) -> bool:
        """Atomically move a task from processing to publishing.

        Query explanation:
        - UPDATE ... SET status = 'publishing', claimed_at = now
        - WHERE status = 'processing': only one concurrent caller can match

        Args:
            task_id: Provider-issued task identifier
            now: Claim timestamp (starts the publishing lease)

        Returns:
            True if this caller owns publication, False otherwise
        """
        result = await self.session.execute(
            update(GenerationTask)
            .where(GenerationTask.task_id == task_id)  # type: ignore[arg-type]
            .where(GenerationTask.status == GenerationTaskStatus.PROCESSING)  # type: ignore[arg-type]
            .values(status=GenerationTaskStatus.PUBLISHING, claimed_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def fail_if_active(self, task_id: str, reason: str, now: datetime) -> bool:
        """Mark a non-terminal task as failed.

        Args:
            task_id: Provider-issued task identifier
            reason: Failure reason stored for status checks
            now: Completion timestamp

        Returns:
            True if the task was failed by this call, False if already terminal
        """
        result = await self.session.execute(
            update(GenerationTask)
            .where(GenerationTask.task_id == task_id)  # type: ignore[arg-type]
            .where(
                GenerationTask.status.in_(  # type: ignore[attr-defined]
                    [GenerationTaskStatus.PROCESSING, GenerationTaskStatus.PUBLISHING]
                )
            )
            .values(status=GenerationTaskStatus.FAILED, error=reason[:1000], completed_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def save(self, task: GenerationTask) -> GenerationTask:
        """Flush in-memory changes of a task (e.g., after mark_complete)."""
        self.session.add(task)
        await self.session.flush()
        return task
