"""
veil SDK (Python)
Client-side orchestration for a note-based privacy ledger.
"""

from .version import __version__  # noqa: F401

# Config & errors
from .config import SDKConfig, load_config  # noqa: F401
from .errors import (  # noqa: F401
    ChainAborted,
    DependencyDecodeError,
    MissingBinding,
    NoteTransportError,
    PollCancelled,
    PollTimeout,
    RpcError,
    SubmissionFailure,
    UnmetPrecondition,
    VeilSdkError,
)

# Ledger client
from .client.ledger import LedgerClient, RpcLedgerClient  # noqa: F401
from .rpc.http import AsyncRpcClient  # noqa: F401

# Orchestration
from .fpi.resolver import DirectorySchema, resolve_foreign_accounts  # noqa: F401
from .script.template import ScriptTemplate, resolve_template  # noqa: F401
from .sync.poller import wait_for_consumable_notes  # noqa: F401
from .chain.orchestrator import ChainReport, ConsumeMode, HopState, NoteChainOrchestrator  # noqa: F401

# Types
from .types import AccountId, Note, NoteType, TransactionRequest  # noqa: F401
