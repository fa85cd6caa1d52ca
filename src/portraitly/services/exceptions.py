"""Service error hierarchy for credit gating, image generation and publishing.

This module defines the exception hierarchy for service-level errors:
- ServiceError: Base for all service errors
- ProviderError: A single provider candidate failed (recovered by the fallback chain)
- Errors surfaced to callers: QuotaExceededError, AllProvidersExhaustedError,
  PollTimeoutError, PersistenceError
"""


class ServiceError(Exception):
    """Base exception for all service errors."""

    pass


class UnauthorizedError(ServiceError):
    """Missing or invalid caller identity."""

    pass


# Credit ledger errors
class QuotaExceededError(ServiceError):
    """Insufficient credits; no debit was applied."""

    def __init__(self, remaining: int, message: str = "Daily limit reached. Come back tomorrow!"):
        super().__init__(message)
        self.remaining = remaining


class LedgerUnavailableError(ServiceError):
    """Credit storage could not be read or written; no generation may proceed."""

    pass


# Provider errors
class ProviderError(ServiceError):
    """Base class for a single provider candidate's failure.

    Recoverable by moving to the next candidate in the fallback chain.
    """

    retryable: bool = False


class TransientError(ProviderError):
    """Transient provider errors (network, rate limits, service unavailability)."""

    retryable = True


class ContentPolicyError(ProviderError):
    """Content policy violation reported by the provider."""

    retryable = True


class PermanentError(ProviderError):
    """Permanent provider errors (auth, validation, malformed responses)."""

    retryable = False


class PollFailedError(ProviderError):
    """Asynchronous task reached a failed state (or claimed success without an artifact).

    The provider's code and message are kept verbatim for diagnostics.
    """

    def __init__(self, message: str, code: str | int | None = None):
        super().__init__(message)
        self.code = code
        self.message = message


class PollTimeoutError(ProviderError):
    """Asynchronous task exceeded its polling budget."""

    def __init__(self, task_id: str, attempts: int, elapsed_seconds: float):
        super().__init__(
            f"Task {task_id} still processing after {attempts} polls "
            f"({elapsed_seconds:.1f}s)"
        )
        self.task_id = task_id
        self.attempts = attempts
        self.elapsed_seconds = elapsed_seconds


class AllProvidersExhaustedError(ServiceError):
    """Every candidate, including the text-to-image fallback, failed."""

    def __init__(self, attempts: list, last_error: Exception | None):
        detail = f"{type(last_error).__name__}: {last_error}" if last_error else "no candidates"
        super().__init__(f"All generation attempts failed. Last error: {detail}")
        self.attempts = attempts
        self.last_error = last_error


class GenerationTimeoutError(AllProvidersExhaustedError):
    """The fallback chain ended on an asynchronous task that exceeded its polling budget."""

    pass


# Publishing errors
class PersistenceError(ServiceError):
    """Upload or record write failed after a successful generation."""

    pass


# Job control
class GenerationCancelled(ServiceError):
    """The caller cancelled the job; no further attempts and no publication."""

    pass


class TaskNotFoundError(ServiceError):
    """Unknown task id, or a task owned by another user."""

    pass


class IdentityUnavailableError(ServiceError):
    """Identity provider could not be reached; the caller's token was not checked."""

    pass


class SourceImageError(ServiceError):
    """Source photo could not be fetched."""

    pass
