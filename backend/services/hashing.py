"""
Content hashing for metadata integrity.

Canonical JSON policy:
- object keys are sorted at every depth
- keys whose value is None are dropped at every depth (absent == null)
- floats with an integral value are written as integers (100.0 -> 100)
- compact separators, UTF-8, no ASCII escaping

The bytes that get hashed are exactly the bytes of the document we pin, so a
client can re-fetch the IPFS content and verify it against the on-chain hash.
"""

import hashlib
import json
import re
from typing import Any

from pydantic import BaseModel

_HEX64 = re.compile(r"[0-9a-f]{64}")


def _normalize(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return _normalize(value.model_dump(by_alias=True, exclude_none=True))
    if isinstance(value, dict):
        return {str(k): _normalize(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def to_document(obj: Any) -> Any:
    """Plain JSON-ready structure after applying the null/float policy"""
    return _normalize(obj)


def canonical_json(obj: Any) -> str:
    """Deterministic serialization: same content -> same string, whatever the key order"""
    return json.dumps(_normalize(obj), sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def canonical_document(obj: Any) -> Any:
    """
    The document to pin: canonical key order with the null/float policy applied.

    Serializing it compactly without ASCII escaping (what Pinata stores)
    reproduces canonical_json(obj) byte for byte.
    """
    return json.loads(canonical_json(obj))


def hash_metadata(obj: Any) -> str:
    """SHA-256 of the canonical JSON form, 64 lowercase hex chars"""
    return hashlib.sha256(canonical_json(obj).encode("utf-8")).hexdigest()


def hash_content(data: bytes) -> str:
    """SHA-256 of raw bytes (file fingerprint)"""
    return hashlib.sha256(data).hexdigest()


def to_bytes32_hex(value: str) -> str:
    """Normalize a 32-byte hash to '0x' + 64 lowercase hex"""
    if not isinstance(value, str):
        raise ValueError("Hash must be a hex string")
    stripped = value[2:] if value[:2].lower() == "0x" else value
    stripped = stripped.lower()
    if not _HEX64.fullmatch(stripped):
        raise ValueError(f"Hash is not 32 bytes of hex: {value!r}")
    return "0x" + stripped


def to_bytes32(value: str) -> bytes:
    """Raw 32 bytes for ABI encoding"""
    return bytes.fromhex(to_bytes32_hex(value)[2:])
