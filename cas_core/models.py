# cas_core/models.py
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Dict, Any, Union
from enum import Enum

# --- Well-known envelope kinds ---
MEASUREMENT_KIND = "measurement-record"
ANALYSIS_KIND = "analysis-result"

Scalar = Union[str, int, float, bool, None]


class BackendKind(str, Enum):
    """Which path actually produced (or served) a CID."""
    REAL = "real"
    FALLBACK = "fallback"


# --- Core Data Models ---

class DataEnvelope(BaseModel):
    """Versioned, typed, timestamped wrapper placed around every stored payload.

    Unknown fields written by future versions are kept (extra='allow') so a
    decode/re-encode cycle does not drop them.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    kind: str = Field(..., description="Caller-chosen discriminator, e.g. 'measurement-record'")
    version: str = Field(..., description="Envelope schema version")
    created_at: str = Field(..., alias="createdAt", description="ISO-8601 UTC timestamp set at encode time")
    payload: Any = Field(default=None, description="Caller-supplied structured value, opaque to the core")
    metadata: Dict[str, Scalar] = Field(default_factory=dict, description="String keys to scalar values")

    def to_wire(self) -> Dict[str, Any]:
        """Logical wire shape using the camelCase field names."""
        return self.model_dump(by_alias=True)


class UploadResult(BaseModel):
    cid: str
    size_bytes: int = Field(..., description="Length of the serialized envelope in bytes")
    used_backend: BackendKind
    kind: Optional[str] = None
    filename: Optional[str] = None
    fallback_reason: Optional[str] = Field(None, description="Why the real backend was not used (None when used_backend is real)")


class DownloadResult(BaseModel):
    """Envelope (or raw content) fetched for a CID, plus where it came from."""
    cid: str
    source: BackendKind
    synthesized: bool = Field(..., description="True when the content was reconstructed locally, not retrieved")
    found: bool = True
    envelope: Optional[DataEnvelope] = None
    content: Any = Field(default=None, description="Decoded body when it is not a DataEnvelope")
    reason: Optional[str] = None

    @property
    def payload(self) -> Any:
        if self.envelope is not None:
            return self.envelope.payload
        return self.content


class ErrorDetail(BaseModel):
    """Per-position failure in a batch upload."""
    index: int
    error_type: str
    message: str


class BatchItem(BaseModel):
    """One upload request: the payload plus the kind/metadata to envelope it with."""
    kind: str
    payload: Any = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    filename: Optional[str] = None


BatchOutcome = Union[UploadResult, ErrorDetail]


# --- Service Request/Response Models ---

class BatchUploadRequest(BaseModel):
    items: List[BatchItem]


class CidInfo(BaseModel):
    cid: str
    valid: bool
    gateway_url: Optional[str] = None


class ServiceResponse(BaseModel):
    """Standard response wrapper for the storage service."""
    status: str = Field(description="'success' or 'error'")
    data: Any | None = Field(default=None, description="The primary data payload (depends on the endpoint)")
    message: Optional[str] = Field(default=None, description="Optional status message or error details")
