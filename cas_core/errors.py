# cas_core/errors.py
"""
Typed failures raised by the storage core.

Failures with a safe local remedy (backend down -> fallback) are absorbed by
StorageClient; the rest propagate to the caller with their kind attached.
"""
from typing import Optional


class StorageError(Exception):
    """Base class for every failure raised by cas_core."""
    kind: str = "storage_error"


class EncodingError(StorageError):
    """Payload or metadata cannot be serialized into an envelope."""
    kind = "encoding_error"


class BackendUnavailable(StorageError):
    """Network failure, timeout, non-2xx or malformed response from the real backend."""
    kind = "backend_unavailable"

    def __init__(self, reason: str, status_code: Optional[int] = None):
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code


class CIDValidationError(StorageError):
    """A string does not conform to the CID text format."""
    kind = "validation_error"

    def __init__(self, cid: object):
        super().__init__(f"Invalid CID: {cid!r}")
        self.cid = cid


class ReconstructionMiss(StorageError):
    """Fallback download for a CID with no tag index entry (or no template for its kind)."""
    kind = "reconstruction_miss"

    def __init__(self, cid: str, detail: str = "unknown content"):
        super().__init__(f"{detail}: {cid}")
        self.cid = cid
        self.detail = detail
