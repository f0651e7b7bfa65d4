from __future__ import annotations

import hashlib
from typing import Iterable

from .bytes import BytesLike, ensure_bytes, to_hex


def sha3_256(data: BytesLike) -> bytes:
    """Return the SHA3-256 digest of *data*."""
    return hashlib.sha3_256(ensure_bytes(data)).digest()


def sha3_256_hex(data: BytesLike, *, prefix: bool = True) -> str:
    return to_hex(sha3_256(data), prefix=prefix)


def hash_concat(parts: Iterable[BytesLike], *, domain: bytes = b"") -> bytes:
    """
    SHA3-256 over a domain tag followed by each part, length-prefixed so that
    distinct splits of the same byte string never collide.
    """
    h = hashlib.sha3_256()
    h.update(len(domain).to_bytes(1, "big"))
    h.update(domain)
    for p in parts:
        b = ensure_bytes(p)
        h.update(len(b).to_bytes(4, "big"))
        h.update(b)
    return h.digest()


__all__ = ["sha3_256", "sha3_256_hex", "hash_concat"]
