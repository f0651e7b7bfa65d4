"""Small shared helpers: hex/bytes, canonical CBOR, hashing, retries."""

from .bytes import ensure_bytes, from_hex, to_hex  # noqa: F401
from .cbor import dumps as cbor_dumps, loads as cbor_loads  # noqa: F401
from .hash import sha3_256, sha3_256_hex  # noqa: F401
