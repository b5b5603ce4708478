import pytest

from cas_core.cid import BASE58_ALPHABET, CID_LENGTH, gateway_url, is_valid_cid, validate_cid
from cas_core.errors import CIDValidationError, StorageError

REAL_CID = "QmYwAPJzv5CZsnA625s3Xf2nemtYgPpHdWEz79ojWnPbdG"


def test_alphabet_has_58_symbols_without_ambiguous_characters():
    assert len(BASE58_ALPHABET) == 58
    assert len(set(BASE58_ALPHABET)) == 58
    for ch in "0OIl":
        assert ch not in BASE58_ALPHABET


def test_real_cid_is_valid():
    assert len(REAL_CID) == CID_LENGTH == 46
    assert is_valid_cid(REAL_CID) is True


@pytest.mark.parametrize("candidate", [
    "",
    "Qm123",                                   # too short
    REAL_CID + "a",                            # too long
    "Qn" + REAL_CID[2:],                       # wrong prefix
    "qm" + REAL_CID[2:],                       # prefix is case sensitive
    REAL_CID[:-1] + "0",                       # excluded symbol
    REAL_CID[:-1] + "O",
    REAL_CID[:-1] + "I",
    REAL_CID[:-1] + "l",
    REAL_CID[:-1] + "\n",                      # no trailing newline tolerance
    " " + REAL_CID[:-1],
    "bafybeigdyrzt5sfp7udm7hu76uh7y26nf3efuylqabf3oclgtqy55fbzdi",  # CIDv1 is not accepted
])
def test_malformed_strings_are_invalid(candidate):
    assert is_valid_cid(candidate) is False


@pytest.mark.parametrize("candidate", [None, 42, b"QmYwAPJzv5CZsnA625s3Xf2nemtYgPpHdWEz79ojWnPbdG", ["Qm"], {}])
def test_non_strings_are_invalid_without_raising(candidate):
    assert is_valid_cid(candidate) is False


def test_validate_cid_returns_input_unchanged():
    assert validate_cid(REAL_CID) is REAL_CID


def test_validate_cid_raises_typed_error():
    with pytest.raises(CIDValidationError) as exc_info:
        validate_cid("Qm123")
    assert isinstance(exc_info.value, StorageError)
    assert exc_info.value.kind == "validation_error"
    assert exc_info.value.cid == "Qm123"


def test_validate_cid_does_not_strip_whitespace():
    with pytest.raises(CIDValidationError):
        validate_cid(f" {REAL_CID} ")


def test_gateway_url_appends_cid_verbatim():
    assert gateway_url("https://ipfs.filebase.io/ipfs/", REAL_CID) == f"https://ipfs.filebase.io/ipfs/{REAL_CID}"
