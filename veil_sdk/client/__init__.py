"""Ledger client contract, local store and JSON-RPC implementation."""

from .ledger import LedgerClient, RpcLedgerClient  # noqa: F401
from .store import LocalStore  # noqa: F401
