"""
Supabase Storage resolver - signs object paths into short-lived URLs.

Implements the ObjectResolver capability.
"""

import httpx

from chatgate.exceptions import UpstreamResolutionError
from chatgate.models.domain import StorageBucket
from chatgate.observability.logging import get_logger

logger = get_logger(__name__)


class SupabaseStorageResolver:
    """Supabase Storage REST client for signed URLs and downloads."""

    def __init__(
        self,
        supabase_url: str,
        service_role: str,
        image_bucket: str,
        voice_bucket: str,
        expires_in: int = 3600,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.supabase_url = supabase_url.rstrip("/")
        self.storage_url = f"{self.supabase_url}/storage/v1"
        self.service_role = service_role
        self.buckets = {StorageBucket.IMAGES: image_bucket, StorageBucket.VOICES: voice_bucket}
        self.expires_in = expires_in
        self.timeout = timeout
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def sign_url(self, path: str, bucket: StorageBucket) -> str:
        """Produce a signed URL for an object in the image or voice bucket."""
        bucket_name = self.buckets[bucket]
        if not self.supabase_url or not self.service_role or not bucket_name:
            raise UpstreamResolutionError(path, "object storage is not configured")

        url = f"{self.storage_url}/object/sign/{bucket_name}/{path.lstrip('/')}"
        try:
            response = await self.http_client.post(
                url,
                json={"expiresIn": self.expires_in},
                headers={"Authorization": f"Bearer {self.service_role}"},
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "storage_sign_failed",
                path=path,
                bucket=bucket.value,
                status=e.response.status_code,
            )
            raise UpstreamResolutionError(path, f"status {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("storage_sign_error", path=path, bucket=bucket.value, error=str(e))
            raise UpstreamResolutionError(path, str(e)) from e

        signed = body.get("signedURL") if isinstance(body, dict) else None
        if not isinstance(signed, str) or not signed:
            raise UpstreamResolutionError(path, "no signedURL in response")
        return f"{self.storage_url}{signed}"

    async def download(self, url: str) -> bytes:
        """Fetch object bytes from a signed URL."""
        try:
            response = await self.http_client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise UpstreamResolutionError(url, f"download status {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise UpstreamResolutionError(url, str(e)) from e
        return response.content

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
