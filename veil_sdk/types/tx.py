"""
Transaction requests, results and sync summaries.

A `TransactionRequest` is what a client hands to the ledger for execution:

  - authenticated input notes: ids of notes the executing account's synced
    view already shows as consumable,
  - unauthenticated input notes: full note objects supplied inline, which can
    be consumed before the ledger has reported them to this client,
  - own output notes: notes the executing account creates,
  - note args: a word per input note, read by that note's script,
  - an optional custom transaction script,
  - an optional list of foreign accounts the script reads from.

Requests are plain values; builders live in :mod:`veil_sdk.tx.build`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from ..utils.bytes import from_hex, to_hex
from .core import AccountId, NoteId, TxId, Word, make_word
from .note import Note

StorageRequirements = Tuple[Tuple[int, Tuple[Word, ...]], ...]


@dataclass(frozen=True)
class TransactionScript:
    """Compiled transaction script: source plus the root reported by the assembler."""

    code: str
    root: str

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "root": self.root}

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "TransactionScript":
        return cls(code=str(d["code"]), root=str(d["root"]))


@dataclass(frozen=True)
class ForeignAccount:
    """
    An account a transaction script reads from, plus the storage-map keys it reads.

    `storage_requirements` maps a slot index to the exact keys the prover must
    admit. An empty requirement admits the account without key restrictions.
    """

    account_id: AccountId
    storage_requirements: StorageRequirements = ()

    @classmethod
    def public(
        cls,
        account_id: AccountId,
        requirements: Optional[Mapping[int, Sequence[Sequence[int]]]] = None,
    ) -> "ForeignAccount":
        reqs = tuple(
            (int(slot), tuple(make_word(k) for k in keys))
            for slot, keys in sorted((requirements or {}).items())
        )
        return cls(account_id=account_id, storage_requirements=reqs)

    @property
    def is_restricted(self) -> bool:
        return bool(self.storage_requirements)

    def declared_keys(self, slot: int) -> Tuple[Word, ...]:
        for s, keys in self.storage_requirements:
            if s == slot:
                return keys
        return ()

    def declares(self, slot: int, key: Sequence[int]) -> bool:
        return make_word(key) in self.declared_keys(slot)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account_id": self.account_id.to_hex(),
            "storage": [{"slot": s, "keys": [list(k) for k in keys]} for s, keys in self.storage_requirements],
        }


@dataclass(frozen=True)
class TransactionRequest:
    authenticated_input_notes: Tuple[NoteId, ...] = ()
    unauthenticated_input_notes: Tuple[Note, ...] = ()
    own_output_notes: Tuple[Note, ...] = ()
    custom_script: Optional[TransactionScript] = None
    foreign_accounts: Tuple[ForeignAccount, ...] = ()
    expected_future_notes: Tuple[Note, ...] = ()
    note_args: Tuple[Tuple[NoteId, Word], ...] = ()

    def args_for(self, note_id: NoteId) -> Optional[Word]:
        """Arguments handed to `note_id`'s script when it runs, if any."""
        for nid, args in self.note_args:
            if nid == note_id:
                return args
        return None

    def input_note_ids(self) -> Tuple[NoteId, ...]:
        return tuple(self.authenticated_input_notes) + tuple(n.id for n in self.unauthenticated_input_notes)

    def is_empty(self) -> bool:
        return not (
            self.authenticated_input_notes
            or self.unauthenticated_input_notes
            or self.own_output_notes
            or self.custom_script
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "authenticated_input_notes": list(self.authenticated_input_notes),
            "unauthenticated_input_notes": [to_hex(n.to_bytes()) for n in self.unauthenticated_input_notes],
            "own_output_notes": [to_hex(n.to_bytes()) for n in self.own_output_notes],
            "custom_script": self.custom_script.to_dict() if self.custom_script else None,
            "foreign_accounts": [fa.to_dict() for fa in self.foreign_accounts],
            "expected_future_notes": [to_hex(n.to_bytes()) for n in self.expected_future_notes],
            "note_args": {nid: list(args) for nid, args in self.note_args},
        }


@dataclass(frozen=True)
class TransactionResult:
    """Outcome of executing (and, once submitted, broadcasting) a request."""

    tx_id: TxId
    account_id: AccountId
    block_num: int
    created_notes: Tuple[Note, ...] = ()
    consumed_note_ids: Tuple[NoteId, ...] = ()
    proven_by: Optional[str] = None

    def created_note(self, index: int = 0) -> Note:
        return self.created_notes[index]

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "TransactionResult":
        return cls(
            tx_id=str(d["tx_id"]),
            account_id=AccountId.from_hex(str(d["account_id"])),
            block_num=int(d["block_num"]),
            created_notes=tuple(Note.from_bytes(from_hex(h)) for h in d.get("created_notes", [])),
            consumed_note_ids=tuple(str(i) for i in d.get("consumed_note_ids", [])),
            proven_by=d.get("proven_by"),
        )


@dataclass(frozen=True)
class SyncSummary:
    """What one sync round observed."""

    block_num: int
    consumable: Dict[str, Tuple[NoteId, ...]] = field(default_factory=dict)
    updated_accounts: Tuple[AccountId, ...] = ()
    consumed_note_ids: Tuple[NoteId, ...] = ()

    def consumable_for(self, account_id: AccountId) -> Tuple[NoteId, ...]:
        return self.consumable.get(account_id.to_hex(), ())


@dataclass(frozen=True)
class EpochBlock:
    """Anchor block header: binds new account ids to a point in ledger history."""

    block_num: int
    commitment: str

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "EpochBlock":
        return cls(block_num=int(d["block_num"]), commitment=str(d["commitment"]))


@dataclass(frozen=True)
class Library:
    """Compiled account-component library (path + exported procedure digests)."""

    path: str
    source: str
    exports: Dict[str, str] = field(default_factory=dict)

    def procedure_digest(self, name: str) -> Optional[str]:
        return self.exports.get(name)

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, "source": self.source, "exports": dict(self.exports)}


__all__ = [
    "StorageRequirements",
    "TransactionScript",
    "ForeignAccount",
    "TransactionRequest",
    "TransactionResult",
    "SyncSummary",
    "EpochBlock",
    "Library",
]
