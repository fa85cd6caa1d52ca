"""SQLModel database entities.

All models are imported here to ensure they're registered with SQLModel metadata
for Alembic autogenerate support.
"""

from portraitly.models.credit_account import CreditAccount
from portraitly.models.generation_record import GenerationRecord
from portraitly.models.generation_task import (
    GenerationTask,
    GenerationTaskStatus,
    InvalidStateTransition,
)

__all__ = [
    "CreditAccount",
    "GenerationRecord",
    "GenerationTask",
    "GenerationTaskStatus",
    "InvalidStateTransition",
]
