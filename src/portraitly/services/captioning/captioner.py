"""Best-effort caption extraction.

BestEffortCaptioner wraps one or more raising captioning backends and always
returns a string, so prompt composition never branches on caption failures.
"""

from typing import Protocol, Sequence

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_CAPTION = "portrait of a person"


class CaptionBackend(Protocol):
    provider_id: str

    async def describe(self, image: bytes, content_type: str = "image/png") -> str: ...


class BestEffortCaptioner:
    """Tries caption backends in order and falls back to a fixed caption."""

    def __init__(self, backends: Sequence[CaptionBackend], default_caption: str = DEFAULT_CAPTION):
        self.backends = list(backends)
        self.default_caption = default_caption

    async def describe(self, image: bytes, content_type: str = "image/png") -> str:
        """Describe the image. Never raises.

        Cancellation still propagates; it is not a caption failure.
        """
        for backend in self.backends:
            try:
                caption = await backend.describe(image, content_type)
            except Exception as e:
                logger.warning(
                    "caption.backend_failed",
                    provider_id=backend.provider_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            if caption and caption.strip():
                logger.debug("caption.extracted", provider_id=backend.provider_id)
                return caption.strip()

        logger.info("caption.default_used", caption=self.default_caption)
        return self.default_caption
