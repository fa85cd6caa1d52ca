"""Hugging Face Inference adapters (image-to-image, text-to-image, captioning).

All three go through huggingface_hub's AsyncInferenceClient; its errors are
mapped onto the ProviderError categories the orchestrator understands.
"""

import asyncio
import io
from typing import Any, Optional

import httpx
from huggingface_hub import AsyncInferenceClient, InferenceTimeoutError
from huggingface_hub.errors import HfHubHTTPError

from portraitly.services.exceptions import PermanentError, ProviderError, TransientError
from portraitly.services.image_generation.base import (
    GeneratedImage,
    SourceImage,
    SyncImageProvider,
    TextToImageProvider,
)
from portraitly.services.image_generation.http_errors import MAX_BODY_EXCERPT, classify_status
from portraitly.services.prompting.composer import ComposedPrompt


def classify_inference_error(e: Exception, provider_id: str) -> ProviderError:
    """Categorize a failure raised by AsyncInferenceClient."""
    if isinstance(e, InferenceTimeoutError):
        return TransientError(f"{provider_id}: request timeout: {e}")

    if isinstance(e, HfHubHTTPError):
        excerpt = (e.server_message or str(e))[:MAX_BODY_EXCERPT]
        if e.response is None:
            return TransientError(f"{provider_id}: network error: {excerpt}")
        return classify_status(e.response.status_code, excerpt, provider_id)

    # aiohttp-backed releases raise ClientResponseError, which carries .status
    status = getattr(e, "status", None)
    if isinstance(status, int):
        return classify_status(status, str(e)[:MAX_BODY_EXCERPT], provider_id)

    if isinstance(e, (asyncio.TimeoutError, OSError, httpx.HTTPError)):
        return TransientError(f"{provider_id}: network error: {e}")
    return PermanentError(f"{provider_id}: unexpected error: {type(e).__name__}: {e}")


def png_bytes(image: Any) -> bytes:
    """Serialize a PIL image returned by the inference client."""
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


class HuggingFaceClient:
    """Shared AsyncInferenceClient plus the error mapping for every HF adapter."""

    def __init__(
        self,
        api_key: str,
        timeout: Optional[float] = None,
        inference_client: Optional[AsyncInferenceClient] = None,
    ):
        """Initialize client.

        Args:
            api_key: Hugging Face access token (from HUGGINGFACE_API_KEY env var)
            timeout: Per-request timeout in seconds
            inference_client: Preconfigured client (tests inject a fake)
        """
        self.api_key = api_key
        self.inference = inference_client or AsyncInferenceClient(
            token=api_key or None, timeout=timeout
        )

    async def call(self, provider_id: str, method: str, *args, **kwargs) -> Any:
        """Invoke one AsyncInferenceClient task, raising ProviderError subclasses on failure."""
        if not self.api_key:
            raise PermanentError(f"{provider_id}: HUGGINGFACE_API_KEY not configured")
        try:
            return await getattr(self.inference, method)(*args, **kwargs)
        except Exception as e:
            raise classify_inference_error(e, provider_id) from e


class HuggingFaceImg2ImgProvider(SyncImageProvider):
    """Synchronous image-to-image transform against one hosted diffusion model."""

    def __init__(self, client: HuggingFaceClient, model: str, guidance_scale: float = 7.5):
        self.client = client
        self.model = model
        self.guidance_scale = guidance_scale
        self.provider_id = f"huggingface:{model}"

    async def transform(self, source: SourceImage, prompt: ComposedPrompt) -> GeneratedImage:
        if source.data is None:
            raise PermanentError(f"{self.provider_id}: source image bytes not loaded")

        image = await self.client.call(
            self.provider_id,
            "image_to_image",
            source.data,
            prompt=prompt.positive,
            negative_prompt=prompt.negative,
            guidance_scale=self.guidance_scale,
            model=self.model,
        )
        return GeneratedImage(data=png_bytes(image), content_type="image/png")


class HuggingFaceTextToImageProvider(TextToImageProvider):
    """Terminal text-to-image fallback; never sees the source photo."""

    def __init__(self, client: HuggingFaceClient, model: str, guidance_scale: float = 7.5):
        self.client = client
        self.model = model
        self.guidance_scale = guidance_scale
        self.provider_id = f"huggingface:{model}"

    async def generate(self, prompt: ComposedPrompt) -> GeneratedImage:
        image = await self.client.call(
            self.provider_id,
            "text_to_image",
            prompt.positive,
            negative_prompt=prompt.negative,
            guidance_scale=self.guidance_scale,
            model=self.model,
        )
        return GeneratedImage(data=png_bytes(image), content_type="image/png")


class HuggingFaceCaptioner:
    """Image-to-text captioning backend. Raises on failure; wrap with BestEffortCaptioner."""

    def __init__(self, client: HuggingFaceClient, model: str):
        self.client = client
        self.model = model
        self.provider_id = f"huggingface:{model}"

    async def describe(self, image: bytes, content_type: str = "image/png") -> str:
        result = await self.client.call(self.provider_id, "image_to_text", image, model=self.model)

        # ImageToTextOutput in current releases; older ones return the bare string
        text = getattr(result, "generated_text", result)
        if not isinstance(text, str) or not text.strip():
            raise PermanentError(f"{self.provider_id}: caption response had no generated_text")
        return text.strip()
