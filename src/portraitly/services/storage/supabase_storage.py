"""Supabase Storage client for publishing generated images."""

import httpx

from portraitly.services.exceptions import PersistenceError


class SupabaseStorageClient:
    """Object store backed by a public Supabase Storage bucket."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        supabase_url: str,
        api_key: str,
        bucket: str = "user-uploads",
    ):
        """Initialize storage client.

        Args:
            http_client: Shared httpx client (owned by the application lifespan)
            supabase_url: Project URL (from SUPABASE_URL env var)
            api_key: Service role key (anon key works when bucket policies allow inserts)
            bucket: Public bucket receiving generated images
        """
        self.http_client = http_client
        self.base_url = supabase_url.rstrip("/")
        self.api_key = api_key
        self.bucket = bucket

    def get_public_url(self, name: str) -> str:
        """Public URL of an object in the bucket.

        Returns:
            URL (e.g., "https://<project>.supabase.co/storage/v1/object/public/<bucket>/<name>")
        """
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{name}"

    async def put(self, name: str, data: bytes, content_type: str = "image/png") -> str:
        """Upload bytes under name without overwriting, and return the public URL.

        Raises:
            PersistenceError: Upload rejected or storage unreachable
        """
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "apikey": self.api_key,
            "Content-Type": content_type,
            "x-upsert": "false",
        }
        try:
            response = await self.http_client.post(
                f"{self.base_url}/storage/v1/object/{self.bucket}/{name}",
                headers=headers,
                content=data,
            )
        except httpx.HTTPError as e:
            raise PersistenceError(f"Upload failed: network error: {e}") from e

        if response.status_code == 401 or response.status_code == 403:
            raise PersistenceError(
                "Upload failed: unauthorized. Check SUPABASE_SERVICE_ROLE_KEY and bucket policies."
            )
        if response.status_code >= 400:
            raise PersistenceError(f"Upload failed ({response.status_code}): {response.text[:300]}")

        return self.get_public_url(name)


async def download_image(
    http_client: httpx.AsyncClient, url: str, timeout: float = 30.0
) -> tuple[bytes, str]:
    """Download an image over HTTP.

    Returns:
        (image bytes, content type)

    Raises:
        httpx.HTTPError: Transport failure or non-2xx status (caller categorizes)
    """
    response = await http_client.get(url, timeout=timeout, follow_redirects=True)
    response.raise_for_status()
    content_type = response.headers.get("content-type", "image/png").split(";")[0]
    return response.content, content_type
