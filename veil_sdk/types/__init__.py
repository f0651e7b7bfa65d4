"""Value types shared by every layer of the SDK. No network I/O happens here."""

from .account import (  # noqa: F401
    Account,
    AccountStorage,
    AccountStorageMode,
    AccountType,
    StorageSlot,
)
from .asset import AssetVault, FungibleAsset, NonFungibleAsset  # noqa: F401
from .core import AccountId, NoteId, TxId, Word, make_word, word_key  # noqa: F401
from .note import (  # noqa: F401
    ConsumableNote,
    Note,
    NoteExecutionHint,
    NoteMetadata,
    NoteRecipient,
    NoteScript,
    NoteType,
)
from .tx import (  # noqa: F401
    EpochBlock,
    ForeignAccount,
    Library,
    SyncSummary,
    TransactionRequest,
    TransactionResult,
    TransactionScript,
)
