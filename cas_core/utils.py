# cas_core/utils.py
"""
Core Utility Functions.

Canonical JSON and timestamp helpers shared by the envelope encoder, the
fallback generator and the storage client.
"""
import json
import time
import datetime
from typing import Any


def canonical_json(value: Any) -> bytes:
    """Serializes `value` to deterministic UTF-8 JSON bytes (sorted keys, no whitespace).

    Raises ValueError for cyclic structures and NaN/Infinity, TypeError for
    values JSON cannot represent.
    """
    text = json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
    return text.encode("utf-8")


def to_iso8601(moment: datetime.datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a 'Z' suffix."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=datetime.timezone.utc)
    moment = moment.astimezone(datetime.timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_now_iso() -> str:
    return to_iso8601(datetime.datetime.now(datetime.timezone.utc))


def now_ms() -> int:
    return int(time.time() * 1000)
