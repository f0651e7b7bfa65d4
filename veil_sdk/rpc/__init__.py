"""JSON-RPC transport."""

from .http import AsyncRpcClient  # noqa: F401
