# cas_core/fallback.py
"""
Deterministic Fallback Generator (offline / mock mode).

`synthesize_cid` maps content bytes to a CID-shaped string using a 32-bit
rolling hash (h = h*31 + byte, wrap-around). This is a checksum-grade
fingerprint for deterministic addressing in offline mode. It is NOT
cryptographic, offers no confidentiality and is not collision resistant:
distinct contents can and will share a fallback CID.

Reconstruction is driven by a tag index (CID -> kind) written when a fallback
CID is synthesized. The CID text itself is never inspected for meaning.
"""
import asyncio
import json
import random
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from cas_core.cid import BASE58_ALPHABET, CID_BODY_LENGTH, CID_PREFIX
from cas_core.config import Settings
from cas_core.errors import ReconstructionMiss
from cas_core.models import ANALYSIS_KIND, MEASUREMENT_KIND, DataEnvelope
from cas_core.utils import utc_now_iso

logger = logging.getLogger("CAS_Core").getChild("Fallback")

_WORD_MASK = 0xFFFFFFFF

# A template builds (payload, metadata) for a kind; it receives the generator's RNG.
TemplateFactory = Callable[[random.Random], Tuple[Any, Dict[str, Any]]]


# --- Synthesis ---

def rolling_hash(data: bytes) -> int:
    """h = h*31 + byte over `data`, truncated to a signed 32-bit word."""
    h = 0
    for byte in data:
        h = (h * 31 + byte) & _WORD_MASK
    if h >= 0x80000000:
        h -= 0x100000000
    return h


def expand_hash(h: int) -> str:
    """Expands a hash into "Qm" + 44 alphabet characters (index = |h + position| mod 58)."""
    size = len(BASE58_ALPHABET)
    body = "".join(BASE58_ALPHABET[abs(h + i) % size] for i in range(CID_BODY_LENGTH))
    return CID_PREFIX + body


def synthesize_cid(data: bytes) -> str:
    """Same bytes always yield the same CID. Pure; no latency, no tagging."""
    return expand_hash(rolling_hash(data))


# --- Latency simulation ---

class LatencySimulator:
    """Sleeps for a random duration in [min_seconds, max_seconds] to emulate network variance."""

    def __init__(
        self,
        min_seconds: float = 0.0,
        max_seconds: float = 0.0,
        *,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if min_seconds < 0 or max_seconds < min_seconds:
            raise ValueError(f"Invalid latency bounds: [{min_seconds}, {max_seconds}]")
        self.min_seconds = min_seconds
        self.max_seconds = max_seconds
        self._rng = rng or random.Random()
        self._sleep = sleep

    @classmethod
    def disabled(cls) -> "LatencySimulator":
        return cls(0.0, 0.0)

    @property
    def enabled(self) -> bool:
        return self.max_seconds > 0

    def next_delay(self) -> float:
        if not self.enabled:
            return 0.0
        return self._rng.uniform(self.min_seconds, self.max_seconds)

    async def wait(self) -> float:
        delay = self.next_delay()
        if delay > 0:
            await self._sleep(delay)
        return delay


# --- Tag index ---

class TagIndex:
    """CID -> kind side index, in memory or persisted as a JSON file."""

    def __init__(self, path: Optional[str] = None):
        self._entries: Dict[str, str] = {}
        self._path = Path(path).expanduser() if path else None
        if self._path is not None:
            self._load()

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Tag index at {self._path} unreadable ({e}); starting empty.")
            return
        if isinstance(data, dict):
            self._entries = {str(k): str(v) for k, v in data.items()}
            logger.info(f"Loaded {len(self._entries)} tag index entries from {self._path}")

    def _persist(self) -> None:
        temp_path = self._path.with_suffix(".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            temp_path.write_text(json.dumps(self._entries, indent=2, sort_keys=True), encoding="utf-8")
            temp_path.replace(self._path)
        except OSError as e:
            # The in-memory entry still serves this process.
            logger.warning(f"Could not persist tag index to {self._path} ({e}); keeping entries in memory.")
            try:
                temp_path.unlink(missing_ok=True)
            except OSError:
                logger.debug(f"Could not remove temporary tag index file {temp_path}")

    def record(self, cid: str, kind: str) -> None:
        previous = self._entries.get(cid)
        if previous == kind:
            return
        if previous is not None:
            # Checksum-grade CIDs collide; last writer wins.
            logger.warning(f"Fallback CID {cid} re-tagged from '{previous}' to '{kind}'")
        self._entries[cid] = kind
        if self._path is not None:
            self._persist()

    def lookup(self, cid: str) -> Optional[str]:
        return self._entries.get(cid)

    def __contains__(self, cid: object) -> bool:
        return cid in self._entries

    def __len__(self) -> int:
        return len(self._entries)


# --- Canned payload templates ---

def _measurement_template(rng: random.Random) -> Tuple[Any, Dict[str, Any]]:
    now = utc_now_iso()
    payload = {
        "bloodGlucose": round(120 + rng.random() * 80, 1),
        "measurementTime": now,
        "notes": "2h post-meal measurement",
        "loincCode": "2345-7", # Glucose [Mass/volume] in Blood
    }
    return payload, {"uploadedAt": now, "encrypted": True, "encryptionMethod": "FHEVM"}


def _analysis_template(rng: random.Random) -> Tuple[Any, Dict[str, Any]]:
    payload = {
        "analysisType": 0,
        "results": {
            "average": 142.5,
            "standardDeviation": 28.3,
            "sampleSize": 268,
            "distribution": {"low": 23, "normal": 156, "high": 89},
        },
    }
    return payload, {"generatedAt": utc_now_iso(), "encrypted": True, "encryptionMethod": "FHEVM"}


DEFAULT_TEMPLATES: Dict[str, TemplateFactory] = {
    MEASUREMENT_KIND: _measurement_template,
    ANALYSIS_KIND: _analysis_template,
}


class FallbackGenerator:
    """Offline stand-in for the backend: synthesizes CIDs and reconstructs canned content."""

    def __init__(
        self,
        *,
        upload_latency: Optional[LatencySimulator] = None,
        download_latency: Optional[LatencySimulator] = None,
        tag_index: Optional[TagIndex] = None,
        rng: Optional[random.Random] = None,
        version: str = "1.0",
    ):
        self.upload_latency = upload_latency or LatencySimulator.disabled()
        self.download_latency = download_latency or LatencySimulator.disabled()
        self.tag_index = tag_index if tag_index is not None else TagIndex()
        self._rng = rng or random.Random()
        self._version = version
        self._templates: Dict[str, TemplateFactory] = dict(DEFAULT_TEMPLATES)

    @classmethod
    def from_settings(cls, settings: Settings) -> "FallbackGenerator":
        if settings.FALLBACK_LATENCY_ENABLED:
            upload_latency = LatencySimulator(settings.FALLBACK_UPLOAD_LATENCY_MIN, settings.FALLBACK_UPLOAD_LATENCY_MAX)
            download_latency = LatencySimulator(settings.FALLBACK_DOWNLOAD_LATENCY_MIN, settings.FALLBACK_DOWNLOAD_LATENCY_MAX)
        else:
            upload_latency = download_latency = LatencySimulator.disabled()
        return cls(
            upload_latency=upload_latency,
            download_latency=download_latency,
            tag_index=TagIndex(settings.TAG_INDEX_PATH),
            version=settings.ENVELOPE_VERSION,
        )

    def register_template(self, kind: str, factory: TemplateFactory) -> None:
        self._templates[kind] = factory

    async def upload(self, data: bytes, kind: Optional[str] = None, filename: Optional[str] = None) -> str:
        """Simulated upload: waits, synthesizes the CID and tags it with `kind`."""
        await self.upload_latency.wait()
        cid = synthesize_cid(data)
        if kind:
            self.tag_index.record(cid, kind)
        logger.info(f"Fallback upload: filename={filename}, cid={cid}, size={len(data)}")
        return cid

    async def reconstruct(self, cid: str) -> DataEnvelope:
        """Canned envelope for the kind `cid` was tagged with.

        Raises ReconstructionMiss when the CID has no tag or its kind has no template.
        """
        await self.download_latency.wait()
        kind = self.tag_index.lookup(cid)
        if kind is None:
            raise ReconstructionMiss(cid)
        factory = self._templates.get(kind)
        if factory is None:
            raise ReconstructionMiss(cid, f"no reconstruction template for kind '{kind}'")
        payload, metadata = factory(self._rng)
        logger.info(f"Fallback reconstruction for {cid} (kind '{kind}')")
        return DataEnvelope(
            kind=kind,
            version=self._version,
            created_at=utc_now_iso(),
            payload=payload,
            metadata=metadata,
        )
