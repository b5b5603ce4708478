import json
import datetime

import pytest

from cas_core.envelope import decode_envelope, encode_envelope, serialize_envelope
from cas_core.errors import EncodingError
from cas_core.models import DataEnvelope

FIXED_TIME = "2024-05-01T12:00:00.000Z"


def test_encode_returns_bytes_and_envelope():
    data, envelope = encode_envelope("measurement-record", {"value": 120}, {"uploader": "0xabc"}, created_at=FIXED_TIME)

    assert isinstance(data, bytes)
    assert isinstance(envelope, DataEnvelope)
    assert envelope.kind == "measurement-record"
    assert envelope.version == "1.0"
    assert envelope.created_at == FIXED_TIME
    assert envelope.payload == {"value": 120}
    assert envelope.metadata == {"uploader": "0xabc"}


def test_wire_shape_uses_camel_case_created_at():
    data, _ = encode_envelope("analysis-result", [1, 2], created_at=FIXED_TIME)
    wire = json.loads(data)
    assert set(wire) == {"kind", "version", "createdAt", "payload", "metadata"}
    assert wire["createdAt"] == FIXED_TIME
    assert wire["metadata"] == {}


def test_serialization_is_canonical_regardless_of_key_order():
    first, _ = encode_envelope("k", {"b": 1, "a": {"y": 2, "x": 3}}, {"z": 1, "m": "v"}, created_at=FIXED_TIME)
    second, _ = encode_envelope("k", {"a": {"x": 3, "y": 2}, "b": 1}, {"m": "v", "z": 1}, created_at=FIXED_TIME)
    assert first == second
    assert b" " not in first


def test_identical_inputs_differ_only_in_created_at():
    first, env1 = encode_envelope("k", {"value": 1}, created_at="2024-01-01T00:00:00.000Z")
    second, env2 = encode_envelope("k", {"value": 1}, created_at="2024-01-02T00:00:00.000Z")
    assert first != second
    assert env1.model_dump(exclude={"created_at"}) == env2.model_dump(exclude={"created_at"})


def test_created_at_defaults_to_utc_now():
    before = datetime.datetime.now(datetime.timezone.utc) - datetime.timedelta(seconds=1)
    _, envelope = encode_envelope("k", None)
    stamp = datetime.datetime.fromisoformat(envelope.created_at.replace("Z", "+00:00"))
    assert envelope.created_at.endswith("Z")
    assert stamp >= before


def test_created_at_accepts_datetime():
    moment = datetime.datetime(2024, 5, 1, 12, 0, tzinfo=datetime.timezone.utc)
    _, envelope = encode_envelope("k", None, created_at=moment)
    assert envelope.created_at == FIXED_TIME


def test_non_ascii_payload_is_utf8_encoded():
    data, envelope = encode_envelope("k", {"notes": "餐后2小时"}, created_at=FIXED_TIME)
    assert "餐后2小时".encode("utf-8") in data
    assert envelope.payload["notes"] == "餐后2小时"


@pytest.mark.parametrize("kind", ["", "   ", None, 5])
def test_empty_or_non_string_kind_is_rejected(kind):
    with pytest.raises(EncodingError):
        encode_envelope(kind, {"value": 1})


def test_cyclic_payload_raises_encoding_error():
    payload = {"value": 1}
    payload["self"] = payload
    with pytest.raises(EncodingError):
        encode_envelope("k", payload)


def test_non_serializable_handle_raises_encoding_error():
    with pytest.raises(EncodingError):
        encode_envelope("k", {"handle": object()})


def test_nan_payload_raises_encoding_error():
    with pytest.raises(EncodingError):
        encode_envelope("k", {"value": float("nan")})


@pytest.mark.parametrize("metadata", [
    {"nested": {"a": 1}},
    {"list": [1, 2]},
    {1: "non-string key"},
    ["not", "a", "mapping"],
])
def test_non_scalar_metadata_is_rejected(metadata):
    with pytest.raises(EncodingError):
        encode_envelope("k", {}, metadata)


def test_scalar_metadata_types_are_preserved():
    metadata = {"s": "x", "i": 3, "f": 1.5, "b": True, "n": None}
    data, envelope = encode_envelope("k", {}, metadata, created_at=FIXED_TIME)
    assert envelope.metadata == metadata
    assert decode_envelope(data).metadata["b"] is True


def test_decode_round_trips_encoded_bytes():
    data, envelope = encode_envelope("k", {"value": 120, "tags": ["a", "b"]}, {"flag": False}, created_at=FIXED_TIME)
    assert decode_envelope(data) == envelope
    assert serialize_envelope(decode_envelope(data)) == data


def test_decode_preserves_unknown_future_fields():
    raw = {
        "kind": "k",
        "version": "9.0",
        "createdAt": FIXED_TIME,
        "payload": {"value": 1},
        "metadata": {},
        "signature": "future-field",
    }
    envelope = decode_envelope(json.dumps(raw).encode("utf-8"))
    assert envelope.version == "9.0"
    assert envelope.to_wire()["signature"] == "future-field"
    assert json.loads(serialize_envelope(envelope))["signature"] == "future-field"


@pytest.mark.parametrize("data", [b"not json", b"[1, 2, 3]", b'{"payload": 1}', b"\xff\xfe\x00"])
def test_decode_rejects_non_envelopes(data):
    with pytest.raises(EncodingError):
        decode_envelope(data)
