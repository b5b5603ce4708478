# cas_core/cid.py
"""CID format helpers.

The accepted format is the CIDv0 text shape: "Qm" followed by exactly 44
characters of the base58btc alphabet (no 0, O, I or l), 46 characters total.
This is a format check only; it does not decode the multihash.
"""
import re

from cas_core.errors import CIDValidationError

CID_PREFIX = "Qm"
CID_BODY_LENGTH = 44
CID_LENGTH = len(CID_PREFIX) + CID_BODY_LENGTH
BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"

_CID_RE = re.compile(r"Qm[1-9A-HJ-NP-Za-km-z]{44}")  # base58btc (no 0,O,I,l)


def is_valid_cid(cid: object) -> bool:
    """True iff `cid` is a string in the CID text format. Never raises."""
    if not isinstance(cid, str) or len(cid) != CID_LENGTH:
        return False
    return _CID_RE.fullmatch(cid) is not None


def validate_cid(cid: object) -> str:
    """Returns `cid` unchanged when valid, otherwise raises CIDValidationError.

    Malformed CIDs are never trimmed or corrected.
    """
    if not is_valid_cid(cid):
        raise CIDValidationError(cid)
    return cid


def gateway_url(gateway_base: str, cid: str) -> str:
    """Gateway URL for a CID: the configured base with the CID appended verbatim."""
    return f"{gateway_base}{cid}"
