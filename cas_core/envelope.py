# cas_core/envelope.py
"""
Envelope Encoder.

Wraps a caller payload into a DataEnvelope and produces its canonical byte
form. The fallback CID is derived from these bytes, so serialization must be
stable: sorted keys, no insignificant whitespace, UTF-8.

Two encodes of the same input differ only in `createdAt`. Callers that need
byte-identical output (and therefore identical fallback CIDs) pass a fixed
`created_at`.
"""
import json
import logging
import datetime
from typing import Any, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from cas_core.errors import EncodingError
from cas_core.models import DataEnvelope
from cas_core.utils import canonical_json, to_iso8601, utc_now_iso

logger = logging.getLogger("CAS_Core").getChild("Envelope")

DEFAULT_ENVELOPE_VERSION = "1.0"
_SCALAR_TYPES = (str, int, float, bool, type(None))


def _check_metadata(metadata: Optional[Mapping[str, Any]]) -> dict:
    if metadata is None:
        return {}
    if not isinstance(metadata, Mapping):
        raise EncodingError(f"metadata must be a mapping, got {type(metadata).__name__}")
    checked = {}
    for key, value in metadata.items():
        if not isinstance(key, str):
            raise EncodingError(f"metadata keys must be strings, got {key!r}")
        if not isinstance(value, _SCALAR_TYPES):
            raise EncodingError(f"metadata value for '{key}' must be a scalar, got {type(value).__name__}")
        checked[key] = value
    return checked


def _resolve_created_at(created_at: Union[str, datetime.datetime, None]) -> str:
    if created_at is None:
        return utc_now_iso()
    if isinstance(created_at, datetime.datetime):
        return to_iso8601(created_at)
    return str(created_at)


def encode_envelope(
    kind: str,
    payload: Any,
    metadata: Optional[Mapping[str, Any]] = None,
    *,
    created_at: Union[str, datetime.datetime, None] = None,
    version: str = DEFAULT_ENVELOPE_VERSION,
) -> Tuple[bytes, DataEnvelope]:
    """Builds an envelope around `payload` and returns (canonical bytes, envelope).

    Raises EncodingError when kind is empty, metadata is not a flat mapping of
    scalars, or the payload cannot be represented as JSON (cycles, handles,
    NaN, non-string keys).
    """
    if not isinstance(kind, str) or not kind.strip():
        raise EncodingError("kind must be a non-empty string")

    record = {
        "kind": kind,
        "version": version,
        "createdAt": _resolve_created_at(created_at),
        "payload": payload,
        "metadata": _check_metadata(metadata),
    }

    try:
        data = canonical_json(record)
    except (TypeError, ValueError, RecursionError) as e:
        logger.error(f"Failed to serialize '{kind}' envelope: {e}")
        raise EncodingError(f"Payload is not serializable: {e}") from e

    # Re-read from the bytes so the envelope holds exactly what was serialized
    # (tuples become lists, etc.).
    envelope = DataEnvelope.model_validate_json(data)
    logger.debug(f"Encoded '{kind}' envelope: {len(data)} bytes")
    return data, envelope


def serialize_envelope(envelope: DataEnvelope) -> bytes:
    """Canonical bytes for an existing envelope, unknown fields included."""
    try:
        return canonical_json(envelope.to_wire())
    except (TypeError, ValueError) as e:
        raise EncodingError(f"Envelope is not serializable: {e}") from e


def decode_envelope(data: Union[bytes, str]) -> DataEnvelope:
    """Parses envelope bytes. Unknown fields and unknown versions are preserved."""
    try:
        raw = json.loads(data)
    except (TypeError, ValueError) as e:
        raise EncodingError(f"Content is not valid JSON: {e}") from e
    if not isinstance(raw, dict):
        raise EncodingError(f"Content is not a data envelope (got {type(raw).__name__})")
    try:
        return DataEnvelope.model_validate(raw)
    except ValidationError as e:
        raise EncodingError(f"Content is not a data envelope: {e.error_count()} field error(s)") from e
