"""
Notes: immutable, identity-bearing bundles of assets plus a spending condition.

A note is made of
  - assets (fungible / non-fungible),
  - metadata (sender, visibility, tag, execution hint, aux counter),
  - a recipient (serial number, note script, script inputs).

Identity
--------
`Note.id` is a digest over the recipient digest and the asset commitment.
Metadata does not participate, so re-tagging a note never changes what it is.
Both digests are taken over canonical CBOR, which makes the id a pure function
of the note's content: `Note.from_bytes(n.to_bytes()).id == n.id`.

The nullifier is derived from the same content and is what the ledger records
when the note is consumed.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from functools import cached_property
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from ..errors import CodecError
from ..utils import cbor
from ..utils.bytes import from_hex, to_hex
from ..utils.hash import hash_concat
from .asset import Asset, asset_from_dict
from .core import AccountId, NoteId, Word, is_felt, make_word

NOTE_FORMAT_VERSION = 1
MAX_NOTE_ASSETS = 255
MAX_NOTE_INPUTS = 128


class NoteType(IntEnum):
    PUBLIC = 1
    PRIVATE = 2


class NoteExecutionMode(IntEnum):
    NETWORK = 0
    LOCAL = 1


def tag_for_account(account_id: AccountId, mode: NoteExecutionMode = NoteExecutionMode.LOCAL) -> int:
    """Tag routing a note to an account: the high 30 bits of its prefix plus the mode bits."""
    high = (account_id.prefix >> 34) & 0x3FFF_FFFF
    if mode == NoteExecutionMode.LOCAL:
        return 0xC000_0000 | high
    return high


def tag_for_public_use_case(use_case: int, payload: int, mode: NoteExecutionMode = NoteExecutionMode.LOCAL) -> int:
    if not 0 <= use_case < 2**14:
        raise ValueError("use_case must fit in 14 bits")
    if not 0 <= payload < 2**16:
        raise ValueError("payload must fit in 16 bits")
    return (0b01 << 30 if mode == NoteExecutionMode.LOCAL else 0) | (use_case << 16) | payload


@dataclass(frozen=True)
class NoteExecutionHint:
    """When a note may be consumed: "none", "always", or "after_block" (with `block`)."""

    kind: str = "always"
    block: int = 0

    def __post_init__(self) -> None:
        if self.kind not in ("none", "always", "after_block"):
            raise ValueError(f"unknown execution hint: {self.kind!r}")

    @classmethod
    def always(cls) -> "NoteExecutionHint":
        return cls("always")

    @classmethod
    def after_block(cls, block: int) -> "NoteExecutionHint":
        return cls("after_block", int(block))

    def can_execute(self, block_num: int) -> bool:
        if self.kind == "none":
            return False
        if self.kind == "after_block":
            return block_num >= self.block
        return True

    def to_list(self) -> list:
        return [self.kind, self.block]


@dataclass(frozen=True)
class NoteMetadata:
    sender: AccountId
    note_type: NoteType
    tag: int = 0
    execution_hint: NoteExecutionHint = NoteExecutionHint()
    aux: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sender": self.sender.to_hex(),
            "type": int(self.note_type),
            "tag": int(self.tag),
            "hint": self.execution_hint.to_list(),
            "aux": int(self.aux),
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "NoteMetadata":
        kind, block = d.get("hint", ["always", 0])
        return cls(
            sender=AccountId.from_hex(str(d["sender"])),
            note_type=NoteType(int(d["type"])),
            tag=int(d.get("tag", 0)),
            execution_hint=NoteExecutionHint(str(kind), int(block)),
            aux=int(d.get("aux", 0)),
        )


@dataclass(frozen=True)
class NoteScript:
    """Compiled note script: source text plus the MAST root reported by the assembler."""

    code: str
    root: str

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "root": self.root}

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "NoteScript":
        return cls(code=str(d["code"]), root=str(d["root"]))


@dataclass(frozen=True)
class NoteRecipient:
    serial_num: Word
    script: NoteScript
    inputs: Tuple[int, ...] = ()

    def __post_init__(self) -> None:
        make_word(self.serial_num)
        if len(self.inputs) > MAX_NOTE_INPUTS:
            raise ValueError(f"a note takes at most {MAX_NOTE_INPUTS} inputs")
        if not all(is_felt(v) for v in self.inputs):
            raise ValueError("note inputs must be field elements")

    def digest(self) -> bytes:
        serial_hash = hash_concat([cbor.dumps(list(self.serial_num))], domain=b"serial")
        return hash_concat(
            [serial_hash, from_hex(self.script.root), cbor.dumps(list(self.inputs))],
            domain=b"recipient",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"serial": list(self.serial_num), "script": self.script.to_dict(), "inputs": list(self.inputs)}

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "NoteRecipient":
        return cls(
            serial_num=make_word(d["serial"]),
            script=NoteScript.from_dict(d["script"]),
            inputs=tuple(int(v) for v in d.get("inputs", [])),
        )


@dataclass(frozen=True)
class Note:
    assets: Tuple[Asset, ...]
    metadata: NoteMetadata
    recipient: NoteRecipient

    def __post_init__(self) -> None:
        if len(self.assets) > MAX_NOTE_ASSETS:
            raise ValueError(f"a note carries at most {MAX_NOTE_ASSETS} assets")

    # --- identity -----------------------------------------------------------

    def asset_commitment(self) -> bytes:
        return hash_concat([cbor.dumps(a.to_dict()) for a in self.assets], domain=b"assets")

    @cached_property
    def id(self) -> NoteId:
        return to_hex(hash_concat([self.recipient.digest(), self.asset_commitment()], domain=b"note-id"))

    @cached_property
    def nullifier(self) -> str:
        r = self.recipient
        return to_hex(
            hash_concat(
                [cbor.dumps(list(r.serial_num)), from_hex(r.script.root), cbor.dumps(list(r.inputs)), self.asset_commitment()],
                domain=b"nullifier",
            )
        )

    @property
    def sender(self) -> AccountId:
        return self.metadata.sender

    @property
    def note_type(self) -> NoteType:
        return self.metadata.note_type

    @property
    def is_public(self) -> bool:
        return self.metadata.note_type == NoteType.PUBLIC

    # --- transport ----------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "v": NOTE_FORMAT_VERSION,
            "assets": [a.to_dict() for a in self.assets],
            "metadata": self.metadata.to_dict(),
            "recipient": self.recipient.to_dict(),
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Note":
        version = d.get("v", NOTE_FORMAT_VERSION)
        if version != NOTE_FORMAT_VERSION:
            raise CodecError(f"unsupported note format version {version!r}", kind="note")
        try:
            return cls(
                assets=tuple(asset_from_dict(a) for a in d.get("assets", [])),
                metadata=NoteMetadata.from_dict(d["metadata"]),
                recipient=NoteRecipient.from_dict(d["recipient"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise CodecError(f"malformed note: {e}", kind="note") from e

    def to_bytes(self) -> bytes:
        return cbor.dumps(self.to_dict())

    @classmethod
    def from_bytes(cls, data: bytes) -> "Note":
        obj = cbor.loads(data)
        if not isinstance(obj, dict):
            raise CodecError("note payload is not a map", kind="note")
        return cls.from_dict(obj)


@dataclass(frozen=True)
class ConsumableNote:
    """A note the last sync reported as spendable by `account_id`."""

    note_id: NoteId
    account_id: AccountId
    note: Optional[Note] = None
    block_num: Optional[int] = None

    @property
    def id(self) -> NoteId:
        return self.note_id

    @classmethod
    def from_dict(cls, d: Mapping[str, Any], account_id: AccountId) -> "ConsumableNote":
        raw = d.get("note")
        note = Note.from_bytes(from_hex(raw)) if isinstance(raw, str) else None
        return cls(
            note_id=str(d["id"]),
            account_id=account_id,
            note=note,
            block_num=int(d["block_num"]) if d.get("block_num") is not None else None,
        )


def note_ids(notes: Sequence[Note | ConsumableNote]) -> Tuple[NoteId, ...]:
    return tuple(n.id for n in notes)


__all__ = [
    "NOTE_FORMAT_VERSION",
    "NoteType",
    "NoteExecutionMode",
    "NoteExecutionHint",
    "NoteMetadata",
    "NoteScript",
    "NoteRecipient",
    "Note",
    "ConsumableNote",
    "tag_for_account",
    "tag_for_public_use_case",
    "note_ids",
]
