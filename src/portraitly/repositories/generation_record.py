"""GenerationRecord repository for Portraitly.

Provides data access methods for GenerationRecord entities (the gallery index).
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from portraitly.models.generation_record import GenerationRecord


class GenerationRecordRepository:
    """Repository for GenerationRecord entities.

    Records are insert-only; there are no update or delete methods.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, record: GenerationRecord) -> GenerationRecord:
        """Persist new generation record to database.

        Args:
            record: GenerationRecord entity to persist

        Returns:
            Persisted record with generated ID
        """
        self.session.add(record)
        await self.session.flush()
        return record

    async def list_by_user(
        self, user_id: str, limit: int = 50, offset: int = 0
    ) -> list[GenerationRecord]:
        """Retrieve a user's generation records, newest first.

        Args:
            user_id: Identity of the record owner
            limit: Maximum number of records to return (default: 50)
            offset: Number of records to skip (default: 0)

        Returns:
            List of records ordered by creation time (newest first)
        """
        result = await self.session.execute(
            select(GenerationRecord)
            .where(GenerationRecord.user_id == user_id)  # type: ignore[arg-type]
            .order_by(GenerationRecord.created_at.desc())  # type: ignore[attr-defined]
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def count_by_user(self, user_id: str) -> int:
        """Count all generation records owned by a user."""
        result = await self.session.execute(
            select(func.count())
            .select_from(GenerationRecord)
            .where(GenerationRecord.user_id == user_id)  # type: ignore[arg-type]
        )
        return result.scalar_one()
