"""Replicate API adapter for image-to-image generation with error classification."""

import asyncio
from typing import Any

import replicate
from replicate.exceptions import ReplicateError as ReplicateAPIError

from portraitly.services.exceptions import (
    ContentPolicyError,
    PermanentError,
    ProviderError,
    TransientError,
)
from portraitly.services.image_generation.base import (
    GeneratedImage,
    SourceImage,
    SyncImageProvider,
)
from portraitly.services.prompting.composer import ComposedPrompt


def classify_error(exception: Exception) -> ProviderError:
    """Classify exception into retry category.

    Args:
        exception: Original exception from Replicate SDK or network layer

    Returns:
        Classified ProviderError subclass instance

    Classification rules:
        - Timeout errors → TransientError
        - 429 (rate limit) → TransientError
        - 503 (service unavailable) → TransientError
        - 401/403 (authentication) → PermanentError
        - Content policy violations → ContentPolicyError
        - Other HTTP errors → PermanentError
        - Connection errors → TransientError
    """
    error_message = str(exception)
    error_message_lower = error_message.lower()

    if "timeout" in error_message_lower:
        return TransientError(f"Network timeout: {error_message}")

    if "429" in error_message or "rate limit" in error_message_lower:
        return TransientError(f"Rate limit exceeded: {error_message}")

    if "503" in error_message or "service unavailable" in error_message_lower:
        return TransientError(f"Service unavailable: {error_message}")

    if (
        "401" in error_message
        or "403" in error_message
        or "unauthorized" in error_message_lower
        or "forbidden" in error_message_lower
        or "authentication" in error_message_lower
        or "invalid api token" in error_message_lower
    ):
        return PermanentError(f"Authentication failed: {error_message}")

    if (
        "content policy" in error_message_lower
        or "nsfw" in error_message_lower
        or "safety" in error_message_lower
        or "inappropriate" in error_message_lower
    ):
        return ContentPolicyError(f"Content policy violation: {error_message}")

    if isinstance(exception, (ConnectionError, OSError)):
        return TransientError(f"Connection error: {error_message}")

    return PermanentError(f"Permanent error: {error_message}")


class ReplicateImg2ImgProvider(SyncImageProvider):
    """Synchronous image-to-image generation through a Replicate model.

    The Replicate SDK is blocking, so each run is moved to a worker thread.
    """

    def __init__(
        self,
        api_token: str,
        model_version: str = "stability-ai/sdxl",
        strength: float = 0.75,
        guidance_scale: float = 7.5,
    ):
        self.api_token = api_token
        self.model_version = model_version
        self.strength = strength
        self.guidance_scale = guidance_scale
        self.provider_id = f"replicate:{model_version}"

    def _build_input(self, source: SourceImage, prompt: ComposedPrompt) -> dict[str, Any]:
        return {
            "image": source.url,
            "prompt": prompt.positive,
            "negative_prompt": prompt.negative,
            "prompt_strength": self.strength,
            "guidance_scale": self.guidance_scale,
        }

    async def transform(self, source: SourceImage, prompt: ComposedPrompt) -> GeneratedImage:
        """Generate image using Replicate API.

        Returns:
            GeneratedImage pointing at the Replicate CDN URL (expires after a few days)

        Raises:
            TransientError: Temporary failure
            ContentPolicyError: Content policy violation
            PermanentError: Permanent failure (auth, unexpected output)
        """
        if not self.api_token:
            raise PermanentError("REPLICATE_API_TOKEN not configured")

        client = replicate.Client(api_token=self.api_token)
        model_input = self._build_input(source, prompt)

        try:
            output = await asyncio.to_thread(client.run, self.model_version, input=model_input)
        except ReplicateAPIError as e:
            raise classify_error(e) from e
        except (ConnectionError, OSError, TimeoutError) as e:
            raise classify_error(e) from e
        except Exception as e:
            # Unexpected SDK errors are permanent for this candidate
            raise PermanentError(f"Unexpected error: {e}") from e

        # Extract URL from output (format varies by model)
        if isinstance(output, list) and len(output) > 0:
            image_url = str(output[0])
        elif isinstance(output, str):
            image_url = output
        elif output is not None and hasattr(output, "url"):
            image_url = str(output.url)
        else:
            raise PermanentError(f"Unexpected output format from Replicate: {type(output)}")

        return GeneratedImage(url=image_url)
