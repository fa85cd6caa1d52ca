"""Builds the ordered provider chain from settings.

PROVIDER_ORDER names provider families; each family expands to its
candidates in place (Hugging Face contributes one candidate per configured
img2img model). Families without credentials are skipped so the chain only
contains providers that can actually be called.
"""

from typing import Optional

import httpx
import structlog

from portraitly.core.config import Settings
from portraitly.services.captioning.captioner import BestEffortCaptioner
from portraitly.services.image_generation.base import TextToImageProvider
from portraitly.services.image_generation.huggingface_client import (
    HuggingFaceCaptioner,
    HuggingFaceClient,
    HuggingFaceImg2ImgProvider,
    HuggingFaceTextToImageProvider,
)
from portraitly.services.image_generation.nanobanana_client import NanoBananaProvider
from portraitly.services.image_generation.orchestrator import ImageProvider
from portraitly.services.image_generation.replicate_client import ReplicateImg2ImgProvider

logger = structlog.get_logger(__name__)

KNOWN_FAMILIES = ("huggingface", "replicate", "nanobanana")


def huggingface_client(settings: Settings) -> HuggingFaceClient:
    return HuggingFaceClient(
        settings.huggingface_api_key, timeout=settings.provider_timeout_seconds
    )


def build_candidates(settings: Settings, http_client: httpx.AsyncClient) -> list[ImageProvider]:
    """Image-to-image candidates in PROVIDER_ORDER.

    Raises:
        ValueError: PROVIDER_ORDER names an unknown family
    """
    hf_client = huggingface_client(settings)
    candidates: list[ImageProvider] = []

    for family in settings.provider_order_list:
        if family not in KNOWN_FAMILIES:
            raise ValueError(
                f"Unknown provider '{family}' in PROVIDER_ORDER "
                f"(expected one of: {', '.join(KNOWN_FAMILIES)})"
            )

        if family == "huggingface":
            if not settings.huggingface_api_key:
                logger.info("providers.skipped", family=family, reason="no_credentials")
                continue
            candidates.extend(
                HuggingFaceImg2ImgProvider(
                    hf_client,
                    model,
                    guidance_scale=settings.guidance_scale,
                )
                for model in settings.huggingface_img2img_model_list
            )
        elif family == "replicate":
            if not settings.replicate_api_token:
                logger.info("providers.skipped", family=family, reason="no_credentials")
                continue
            candidates.append(
                ReplicateImg2ImgProvider(
                    settings.replicate_api_token,
                    settings.replicate_model_version,
                    strength=settings.img2img_strength,
                    guidance_scale=settings.guidance_scale,
                )
            )
        elif family == "nanobanana":
            if not settings.nanobanana_api_key:
                logger.info("providers.skipped", family=family, reason="no_credentials")
                continue
            candidates.append(
                NanoBananaProvider(
                    http_client,
                    settings.nanobanana_api_key,
                    base_url=settings.nanobanana_base_url,
                    resolution=settings.nanobanana_resolution,
                    callback_url=settings.nanobanana_callback_url,
                )
            )

    logger.info("providers.chain_built", providers=[c.provider_id for c in candidates])
    return candidates


def build_text_to_image(settings: Settings) -> Optional[TextToImageProvider]:
    if not settings.huggingface_api_key or not settings.huggingface_text2img_model:
        return None
    return HuggingFaceTextToImageProvider(
        huggingface_client(settings),
        settings.huggingface_text2img_model,
        guidance_scale=settings.guidance_scale,
    )


def build_captioner(settings: Settings) -> Optional[BestEffortCaptioner]:
    """Captioner over the configured caption models, or None when captioning is off.

    Without a Hugging Face key the captioner has no backends and always
    returns the default caption.
    """
    if not settings.caption_enabled:
        return None
    backends = []
    if settings.huggingface_api_key:
        hf_client = huggingface_client(settings)
        backends = [HuggingFaceCaptioner(hf_client, model) for model in settings.caption_model_list]
    return BestEffortCaptioner(backends, default_caption=settings.default_caption)
