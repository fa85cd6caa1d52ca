"""Supabase Auth token verification.

Access tokens are opaque to this service: each one is resolved to a user by
asking Supabase (``GET /auth/v1/user``). No local JWT validation.
"""

from dataclasses import dataclass
from typing import Optional

import httpx
import structlog

from portraitly.services.exceptions import IdentityUnavailableError, UnauthorizedError

logger = structlog.get_logger()


@dataclass(frozen=True)
class AuthenticatedUser:
    """Caller identity resolved from an access token."""

    id: str
    email: Optional[str] = None


class SupabaseAuthClient:
    """Resolves bearer tokens to Supabase users."""

    def __init__(self, http_client: httpx.AsyncClient, supabase_url: str, anon_key: str):
        self.http_client = http_client
        self.base_url = supabase_url.rstrip("/")
        self.anon_key = anon_key

    async def get_user(self, access_token: str) -> AuthenticatedUser:
        """Look up the user owning access_token.

        Raises:
            UnauthorizedError: Token missing, expired or rejected
            IdentityUnavailableError: Supabase unreachable or returned a server error
        """
        if not access_token:
            raise UnauthorizedError("Missing access token")

        try:
            response = await self.http_client.get(
                f"{self.base_url}/auth/v1/user",
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "apikey": self.anon_key,
                },
                timeout=10.0,
            )
        except httpx.TimeoutException as e:
            logger.error("auth.timeout", error=str(e))
            raise IdentityUnavailableError(f"Supabase Auth timeout: {e}") from e
        except httpx.RequestError as e:
            logger.error("auth.network_error", error=str(e), error_type=type(e).__name__)
            raise IdentityUnavailableError(f"Network error during token check: {e}") from e

        if response.status_code in (401, 403):
            logger.info("auth.token_rejected", status_code=response.status_code)
            raise UnauthorizedError("Invalid or expired access token")
        if response.status_code >= 500:
            raise IdentityUnavailableError(f"Supabase Auth error ({response.status_code})")
        if response.status_code >= 400:
            raise UnauthorizedError(f"Token check rejected ({response.status_code})")

        try:
            body = response.json()
        except ValueError as e:
            raise IdentityUnavailableError("Supabase Auth returned a non-JSON body") from e

        user_id = body.get("id") if isinstance(body, dict) else None
        if not user_id:
            raise UnauthorizedError("Token did not resolve to a user")

        return AuthenticatedUser(id=str(user_id), email=body.get("email"))
