# cas_core/backend.py
"""
Backend Adapter for the Filebase IPFS API.

One network round trip per call, bounded by a timeout. Every failure surfaces
as BackendUnavailable; retry policy belongs to the caller (StorageClient).
"""
import logging
from typing import Optional

import httpx

from cas_core.cid import gateway_url, is_valid_cid
from cas_core.config import Settings
from cas_core.errors import BackendUnavailable

logger = logging.getLogger("CAS_Core").getChild("Backend")

UPLOAD_PATH = "/v1/ipfs"


class FilebaseAdapter:
    """Thin async client for upload (multipart POST) and gateway download (GET)."""

    def __init__(
        self,
        api_key: str,
        *,
        api_url: str,
        gateway: str,
        bucket: str,
        upload_timeout: float = 30.0,
        download_timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_key:
            raise ValueError("FilebaseAdapter requires an API key")
        self._api_key = api_key
        self.api_url = api_url.rstrip("/")
        self.gateway = gateway
        self.bucket = bucket
        self.upload_timeout = upload_timeout
        self.download_timeout = download_timeout
        # Only close clients this adapter created itself.
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()

    @classmethod
    def from_settings(cls, settings: Settings, http_client: Optional[httpx.AsyncClient] = None) -> "FilebaseAdapter":
        return cls(
            settings.FILEBASE_API_KEY,
            api_url=settings.FILEBASE_API_URL,
            gateway=settings.FILEBASE_GATEWAY,
            bucket=settings.FILEBASE_BUCKET,
            upload_timeout=settings.UPLOAD_TIMEOUT_SECONDS,
            download_timeout=settings.DOWNLOAD_TIMEOUT_SECONDS,
            http_client=http_client,
        )

    async def upload(self, data: bytes, filename: str) -> str:
        """POSTs `data` as the multipart part 'file' and returns the `Hash` from the response."""
        url = f"{self.api_url}{UPLOAD_PATH}"
        headers = {"Authorization": f"Bearer {self._api_key}"}
        files = {"file": (filename, data, "application/json")}
        logger.debug(f"Uploading {len(data)} bytes to {url} as '{filename}' (bucket: {self.bucket})")
        try:
            response = await self._client.post(
                url,
                headers=headers,
                files=files,
                data={"bucket": self.bucket},
                timeout=self.upload_timeout,
            )
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as e:
            raise BackendUnavailable(f"Upload timed out after {self.upload_timeout}s: {e}") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise BackendUnavailable(f"Upload rejected with HTTP {status}: {e.response.text[:200]}", status_code=status) from e
        except httpx.RequestError as e:
            raise BackendUnavailable(f"Could not reach {url}: {e}") from e
        except httpx.InvalidURL as e:
            raise BackendUnavailable(f"Invalid upload URL {url!r}: {e}") from e
        except ValueError as e:
            raise BackendUnavailable(f"Upload response is not JSON: {e}") from e

        cid = body.get("Hash") if isinstance(body, dict) else None
        if not is_valid_cid(cid):
            raise BackendUnavailable(f"Upload response has no valid 'Hash' field: {str(body)[:200]}")
        logger.info(f"Uploaded '{filename}' to Filebase: {cid}")
        return cid

    async def download(self, cid: str) -> bytes:
        """GETs `{gateway}{cid}` and returns the raw body."""
        url = gateway_url(self.gateway, cid)
        try:
            response = await self._client.get(url, timeout=self.download_timeout, follow_redirects=True)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise BackendUnavailable(f"Download timed out after {self.download_timeout}s: {e}") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise BackendUnavailable(f"Gateway returned HTTP {status} for {cid}", status_code=status) from e
        except httpx.RequestError as e:
            raise BackendUnavailable(f"Could not reach gateway {url}: {e}") from e
        except httpx.InvalidURL as e:
            raise BackendUnavailable(f"Invalid gateway URL {url!r}: {e}") from e
        logger.info(f"Downloaded {len(response.content)} bytes for {cid} from gateway")
        return response.content

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
