"""Result publisher: durable storage of the final image plus one gallery record."""

import secrets
from typing import Callable

import httpx
import structlog

from portraitly.core.timezone import utc_now
from portraitly.models.generation_record import GenerationRecord
from portraitly.services.exceptions import PersistenceError
from portraitly.services.image_generation.base import GeneratedImage
from portraitly.services.storage.supabase_storage import SupabaseStorageClient, download_image

logger = structlog.get_logger(__name__)


# Unknown content types are stored as PNG, the format every provider can return
EXTENSIONS = {"image/png": "png", "image/jpeg": "jpg", "image/jpg": "jpg", "image/webp": "webp"}


def object_name(user_id: str, now_millis: int, content_type: str = "image/png") -> str:
    """Storage name from the owner, the current time and a random suffix.

    The suffix keeps two publications in the same millisecond from colliding;
    the extension follows the stored content type.
    """
    media_type = content_type.split(";", 1)[0].strip().lower()
    extension = EXTENSIONS.get(media_type, "png")
    return f"gen-{user_id}-{now_millis}-{secrets.token_hex(4)}.{extension}"


class ResultPublisher:
    """Uploads generated images and writes their GenerationRecord."""

    def __init__(
        self,
        storage: SupabaseStorageClient,
        uow_factory: Callable,
        http_client: httpx.AsyncClient,
        clock: Callable = utc_now,
    ):
        self.storage = storage
        self.uow_factory = uow_factory
        self.http_client = http_client
        self.clock = clock

    async def _materialize(self, image: GeneratedImage) -> tuple[bytes, str]:
        if image.data is not None:
            return image.data, image.content_type
        try:
            return await download_image(self.http_client, image.url)  # type: ignore[arg-type]
        except httpx.HTTPError as e:
            raise PersistenceError(f"Failed to download image: {e}") from e

    async def publish(self, user_id: str, style_id: str, image: GeneratedImage) -> str:
        """Store the image and record it in the gallery index.

        A failed record write is logged but does not fail the publication; the
        image is already reachable through the returned URL.

        Args:
            user_id: Owner of the generation
            style_id: Style the image was generated with
            image: Provider output (bytes or a provider-hosted URL)

        Returns:
            Public URL of the stored image

        Raises:
            PersistenceError: Download or upload failed
        """
        data, content_type = await self._materialize(image)

        name = object_name(user_id, int(self.clock().timestamp() * 1000), content_type)
        public_url = await self.storage.put(name, data, content_type=content_type)
        logger.info("publisher.uploaded", user_id=user_id, object_name=name, size=len(data))

        try:
            async with await self.uow_factory() as uow:
                await uow.generation_records.add(
                    GenerationRecord(image_url=public_url, style_id=style_id, user_id=user_id)
                )
        except Exception as e:
            logger.error(
                "publisher.record_write_failed",
                user_id=user_id,
                image_url=public_url,
                error=str(e),
                error_type=type(e).__name__,
            )

        return public_url
