"""
noteledger/core/canonical.py

RFC 8785 (JCS) canonical JSON. Spend-authorization messages, audit entry
signatures, chain hashes and registry snapshots all go through here.

Values that JSON cannot carry are lowered first:

    bytes / bytearray   → lowercase hex, no 0x prefix
    tuple               → list
    Enum                → its value

RFC 8785: https://www.rfc-editor.org/rfc/rfc8785
"""

import hashlib
from enum import Enum
from typing import Any

import jcs


def plain(obj: Any) -> Any:
    """Recursively lower obj to JSON primitives."""
    if isinstance(obj, (bytes, bytearray)):
        return bytes(obj).hex()
    if isinstance(obj, Enum):
        return plain(obj.value)
    if isinstance(obj, dict):
        return {str(k): plain(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [plain(v) for v in obj]
    if isinstance(obj, float):
        raise TypeError("floats are not canonical here; use integers")
    return obj


def canonicalize(obj: Any) -> bytes:
    """UTF-8 canonical JSON bytes of obj, suitable for signing."""
    return jcs.canonicalize(plain(obj))


def canonical_hash(obj: Any) -> str:
    """Lowercase hex SHA-256 of the canonical form."""
    return hashlib.sha256(canonicalize(obj)).hexdigest()
