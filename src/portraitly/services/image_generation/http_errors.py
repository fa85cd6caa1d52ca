"""HTTP status classification shared by provider adapters."""

import httpx

from portraitly.services.exceptions import (
    ContentPolicyError,
    PermanentError,
    ProviderError,
    TransientError,
)

# Upstream bodies are truncated before they reach logs
MAX_BODY_EXCERPT = 300


def body_excerpt(response: httpx.Response) -> str:
    try:
        text = response.text
    except (UnicodeDecodeError, httpx.ResponseNotRead):
        return "<unreadable body>"
    return text[:MAX_BODY_EXCERPT]


def classify_status(status: int, excerpt: str, provider_id: str) -> ProviderError:
    """Map a non-2xx provider status onto a ProviderError category.

    Classification rules:
        - 429 (rate limit) → TransientError
        - 500/502/503/504 (includes model cold start) → TransientError
        - 401/403 (authentication) → PermanentError
        - 400/422 mentioning safety/nsfw → ContentPolicyError
        - Other 4xx → PermanentError
    """
    if status == 429:
        return TransientError(f"{provider_id}: rate limit exceeded: {excerpt}")
    if status >= 500:
        return TransientError(f"{provider_id}: service unavailable ({status}): {excerpt}")
    if status in (401, 403):
        return PermanentError(f"{provider_id}: authentication failed ({status})")

    lowered = excerpt.lower()
    if "nsfw" in lowered or "safety" in lowered or "content policy" in lowered:
        return ContentPolicyError(f"{provider_id}: content policy violation: {excerpt}")
    return PermanentError(f"{provider_id}: bad request ({status}): {excerpt}")


def raise_for_provider_status(response: httpx.Response, provider_id: str) -> None:
    """Raise a categorized ProviderError for a non-2xx provider response."""
    if response.status_code < 400:
        return
    raise classify_status(response.status_code, body_excerpt(response), provider_id)


def transport_error(e: httpx.HTTPError, provider_id: str) -> TransientError:
    """Wrap an httpx transport failure (timeout, connection reset) as transient."""
    if isinstance(e, httpx.TimeoutException):
        return TransientError(f"{provider_id}: request timeout: {e}")
    return TransientError(f"{provider_id}: network error: {e}")
