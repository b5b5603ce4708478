# cas_core/storage.py
"""
Core Storage Client.

Facade over the envelope encoder, the Filebase adapter and the deterministic
fallback generator. Each call decides real-vs-fallback in two steps:

1. Attempt the backend (skipped entirely when no credentials are configured)
   and turn the outcome into a tagged BackendAttempt.
2. If the attempt carries no result, serve the call from the fallback
   generator and say so in `used_backend` / `source`.

Backend failures are logged, never raised. Bad input (unserializable payload,
malformed CID) is raised to the caller as a typed StorageError.
"""
import json
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence, Union

import httpx

from cas_core.backend import FilebaseAdapter
from cas_core.batch import BatchCoordinator
from cas_core.cid import gateway_url, validate_cid
from cas_core.config import Settings
from cas_core.envelope import decode_envelope, encode_envelope
from cas_core.errors import BackendUnavailable, EncodingError, ReconstructionMiss
from cas_core.fallback import FallbackGenerator
from cas_core.models import (
    ANALYSIS_KIND, MEASUREMENT_KIND,
    BackendKind, BatchItem, BatchOutcome, DownloadResult, UploadResult,
)
from cas_core.utils import now_ms, utc_now_iso

logger = logging.getLogger("CAS_Core").getChild("Storage")

OFFLINE_REASON = "offline mode: no backend credentials configured"


@dataclass(frozen=True)
class BackendAttempt:
    """Outcome of trying the real backend: either a value or the reason there is none."""
    value: Any = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.reason is None


class StorageClient:
    """Publishes payloads by CID and reads them back, degrading to offline mode when needed.

    Build one per process from an explicit Settings object; configuration is
    read once here and never changes afterwards.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        adapter: Optional[FilebaseAdapter] = None,
        fallback: Optional[FallbackGenerator] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings
        self._fallback = fallback or FallbackGenerator.from_settings(settings)
        self._adapter: Optional[FilebaseAdapter] = None
        if settings.has_credentials:
            self._adapter = adapter or FilebaseAdapter.from_settings(settings, http_client=http_client)
        elif adapter is not None:
            logger.warning("Backend adapter supplied without credentials; staying in offline mode.")
        self._max_attempts = max(1, settings.BACKEND_MAX_ATTEMPTS)
        self._retry_delay = max(0.0, settings.BACKEND_RETRY_DELAY_SECONDS)
        mode = "offline" if self.is_offline else "online"
        logger.info(f"StorageClient initialized in {mode} mode.")

    @property
    def is_offline(self) -> bool:
        return self._adapter is None

    @property
    def fallback(self) -> FallbackGenerator:
        return self._fallback

    def gateway_url(self, cid: str) -> str:
        return gateway_url(self.settings.FILEBASE_GATEWAY, cid)

    # --- Step 1: backend attempts (the only place BackendUnavailable is absorbed) ---

    async def _attempt_backend(self, operation: str, *args) -> BackendAttempt:
        if self._adapter is None:
            return BackendAttempt(reason=OFFLINE_REASON)
        call = getattr(self._adapter, operation)
        last_error: Optional[BackendUnavailable] = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                return BackendAttempt(value=await call(*args))
            except BackendUnavailable as e:
                last_error = e
                logger.warning(f"Backend {operation} failed (attempt {attempt}/{self._max_attempts}): {e.reason}")
                if attempt < self._max_attempts and self._retry_delay:
                    await asyncio.sleep(self._retry_delay * attempt)
        return BackendAttempt(reason=f"backend unavailable: {last_error.reason}")

    # --- Upload ---

    async def upload(
        self,
        payload: Any,
        kind: str,
        metadata: Optional[Mapping[str, Any]] = None,
        *,
        filename: Optional[str] = None,
    ) -> UploadResult:
        """Envelopes `payload` and stores it, returning the CID and which path produced it.

        Raises EncodingError for unserializable input. Never raises for backend trouble.
        """
        data, envelope = encode_envelope(kind, payload, metadata, version=self.settings.ENVELOPE_VERSION)
        filename = filename or f"{kind}-{now_ms()}.json"

        attempt = await self._attempt_backend("upload", data, filename)
        if attempt.ok:
            return UploadResult(cid=attempt.value, size_bytes=len(data), used_backend=BackendKind.REAL, kind=kind, filename=filename)

        if self._adapter is not None:
            logger.warning(f"Falling back to synthesized CID for '{filename}': {attempt.reason}")
        cid = await self._fallback.upload(data, kind=envelope.kind, filename=filename)
        return UploadResult(
            cid=cid,
            size_bytes=len(data),
            used_backend=BackendKind.FALLBACK,
            kind=kind,
            filename=filename,
            fallback_reason=attempt.reason,
        )

    async def upload_measurement(
        self,
        record: Mapping[str, Any],
        uploader: str,
        *,
        processing_method: str = "FHEVM",
    ) -> UploadResult:
        """Uploads a measurement record with uploader and declared processing metadata.

        `encrypted`/`encryptionMethod` are declarations carried in metadata;
        nothing is encrypted here.
        """
        metadata = {
            "uploader": uploader,
            "uploadedAt": utc_now_iso(),
            "encrypted": True,
            "encryptionMethod": processing_method,
        }
        filename = f"measurement-{uploader}-{now_ms()}.json"
        return await self.upload(dict(record), MEASUREMENT_KIND, metadata, filename=filename)

    async def upload_analysis_result(
        self,
        result: Any,
        analysis_type: Union[str, int],
        *,
        processing_method: str = "FHEVM",
    ) -> UploadResult:
        metadata = {
            "analysisType": analysis_type,
            "generatedAt": utc_now_iso(),
            "encrypted": True,
            "encryptionMethod": processing_method,
        }
        filename = f"analysis-{analysis_type}-{now_ms()}.json"
        return await self.upload(result, ANALYSIS_KIND, metadata, filename=filename)

    async def upload_many(self, items: Sequence[Union[BatchItem, Mapping[str, Any]]]) -> List[BatchOutcome]:
        return await BatchCoordinator(self).upload_many(items)

    # --- Download ---

    async def download(self, cid: str) -> DownloadResult:
        """Fetches the envelope stored under `cid`.

        Raises CIDValidationError for malformed CIDs. When neither the backend
        nor the tag index knows the CID, returns found=False instead of guessing.
        """
        validate_cid(cid)

        attempt = await self._attempt_backend("download", cid)
        if attempt.ok:
            return self._result_from_bytes(cid, attempt.value)

        try:
            envelope = await self._fallback.reconstruct(cid)
        except ReconstructionMiss as e:
            logger.warning(f"No content available for {cid}: {e.detail}")
            return DownloadResult(cid=cid, source=BackendKind.FALLBACK, synthesized=False, found=False, reason=e.detail)
        return DownloadResult(cid=cid, source=BackendKind.FALLBACK, synthesized=True, envelope=envelope, reason=attempt.reason)

    @staticmethod
    def _result_from_bytes(cid: str, data: bytes) -> DownloadResult:
        try:
            envelope = decode_envelope(data)
            return DownloadResult(cid=cid, source=BackendKind.REAL, synthesized=False, envelope=envelope)
        except EncodingError as e:
            logger.info(f"Content for {cid} is not a data envelope ({e}); returning it as-is.")
        try:
            content = json.loads(data)
        except ValueError:
            content = data.decode("utf-8", errors="replace")
        return DownloadResult(cid=cid, source=BackendKind.REAL, synthesized=False, content=content)

    # --- Lifecycle ---

    async def aclose(self) -> None:
        if self._adapter is not None:
            await self._adapter.aclose()

    async def __aenter__(self) -> "StorageClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
