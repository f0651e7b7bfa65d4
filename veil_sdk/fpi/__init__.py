"""Foreign-procedure invocation helpers."""

from .resolver import DirectorySchema, decode_entries, resolve_foreign_accounts  # noqa: F401
