"""Repository layer for Portraitly.

Provides data access abstractions for all domain entities.
No base classes - each repository is self-contained.
"""

from portraitly.repositories.credit_account import CreditAccountRepository
from portraitly.repositories.generation_record import GenerationRecordRepository
from portraitly.repositories.generation_task import GenerationTaskRepository

__all__ = [
    "CreditAccountRepository",
    "GenerationRecordRepository",
    "GenerationTaskRepository",
]
