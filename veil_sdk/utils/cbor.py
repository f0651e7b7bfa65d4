"""
Deterministic (canonical) CBOR encoding for notes, accounts and requests.

Notes travel between clients as bytes, and a note's identity is a digest over
its canonical encoding, so the same logical value must always produce the
same bytes. We use `cbor2` in canonical mode (RFC 8949 deterministic map-key
ordering, minimal integers) and map its errors onto the SDK's `CodecError`.

API
---
- dumps(obj) -> bytes
- loads(data: bytes|bytearray|memoryview) -> object
- dump_hex(obj, prefix=True) -> str
"""

from __future__ import annotations

from typing import Any

import cbor2

from ..errors import CodecError
from .bytes import BytesLike, ensure_bytes, to_hex


def dumps(obj: Any) -> bytes:
    """Encode *obj* to deterministic CBOR bytes."""
    try:
        return cbor2.dumps(obj, canonical=True)
    except (cbor2.CBOREncodeError, TypeError, ValueError) as e:
        raise CodecError(str(e), kind="cbor-encode") from e


def loads(data: BytesLike) -> Any:
    """Decode CBOR *data* (bytes-like) into Python objects."""
    buf = ensure_bytes(data)
    try:
        return cbor2.loads(buf)
    except (cbor2.CBORDecodeError, ValueError, EOFError) as e:
        raise CodecError(str(e), kind="cbor-decode") from e


def dump_hex(obj: Any, *, prefix: bool = True) -> str:
    """Convenience: encode and return hex string."""
    return to_hex(dumps(obj), prefix=prefix)


__all__ = ["dumps", "loads", "dump_hex"]
