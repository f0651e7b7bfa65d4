"""
Account state as the client sees it.

An `Account` is an id, an asset vault, a list of storage slots and a nonce.
Storage slots are either a single value word or a key -> value map of words.
The RPC wire shape is plain JSON:

    {
      "id": "0x<prefix><suffix>",
      "nonce": 3,
      "type": "regular_updatable",
      "storage_mode": "public",
      "code_commitment": "0x...",
      "vault": [{"kind": "fungible", "faucet": "0x...", "amount": 100}],
      "storage": [
        {"type": "value", "value": [0, 0, 0, 7]},
        {"type": "map", "entries": [[[0, 0, 0, 1], [5, 0, 0, 0]]]}
      ]
    }

Snapshots can also be exchanged as canonical CBOR bytes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..utils import cbor
from ..utils.hash import hash_concat
from ..utils.bytes import to_hex
from .asset import AssetVault
from .core import EMPTY_WORD, FIELD_MODULUS, AccountId, Word, make_word


class AccountType(str, Enum):
    REGULAR_UPDATABLE = "regular_updatable"
    REGULAR_IMMUTABLE = "regular_immutable"
    FUNGIBLE_FAUCET = "fungible_faucet"
    NON_FUNGIBLE_FAUCET = "non_fungible_faucet"

    @property
    def is_faucet(self) -> bool:
        return self in (AccountType.FUNGIBLE_FAUCET, AccountType.NON_FUNGIBLE_FAUCET)


class AccountStorageMode(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


@dataclass(frozen=True)
class StorageSlot:
    """Either a value slot (`value`) or a map slot (`entries`)."""

    value: Optional[Word] = None
    entries: Optional[Tuple[Tuple[Word, Word], ...]] = None

    def __post_init__(self) -> None:
        if (self.value is None) == (self.entries is None):
            raise ValueError("storage slot must be exactly one of value or map")

    @classmethod
    def of_value(cls, w: Sequence[int] = EMPTY_WORD) -> "StorageSlot":
        return cls(value=make_word(w))

    @classmethod
    def of_map(cls, entries: Mapping[Sequence[int], Sequence[int]] | None = None) -> "StorageSlot":
        items = tuple(sorted((make_word(k), make_word(v)) for k, v in (entries or {}).items()))
        return cls(entries=items)

    @property
    def is_map(self) -> bool:
        return self.entries is not None

    def map_get(self, key: Sequence[int]) -> Word:
        if self.entries is None:
            raise TypeError("not a map slot")
        k = make_word(key)
        for ek, ev in self.entries:
            if ek == k:
                return ev
        return EMPTY_WORD

    def map_root(self) -> Word:
        """Commitment to the map contents, read back as the slot's item."""
        digest = hash_concat([cbor.dumps([list(k), list(v)]) for k, v in self.entries or ()], domain=b"map")
        return tuple(int.from_bytes(digest[i * 8:(i + 1) * 8], "big") % FIELD_MODULUS for i in range(4))  # type: ignore[return-value]

    def to_dict(self) -> Dict[str, Any]:
        if self.entries is not None:
            return {"type": "map", "entries": [[list(k), list(v)] for k, v in self.entries]}
        return {"type": "value", "value": list(self.value or EMPTY_WORD)}

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "StorageSlot":
        kind = d.get("type", "value")
        if kind == "map":
            return cls(entries=tuple((make_word(k), make_word(v)) for k, v in d.get("entries", [])))
        if kind == "value":
            return cls(value=make_word(d.get("value", EMPTY_WORD)))
        raise ValueError(f"unknown storage slot type: {kind!r}")


@dataclass(frozen=True)
class AccountStorage:
    slots: Tuple[StorageSlot, ...] = ()

    def get_item(self, index: int) -> Word:
        """Value word of slot `index`, or the map commitment for map slots."""
        if not 0 <= index < len(self.slots):
            raise IndexError(f"storage slot {index} out of range (have {len(self.slots)})")
        slot = self.slots[index]
        return slot.map_root() if slot.is_map else slot.value  # type: ignore[return-value]

    def get_map_item(self, index: int, key: Sequence[int]) -> Word:
        if not 0 <= index < len(self.slots):
            raise IndexError(f"storage slot {index} out of range (have {len(self.slots)})")
        return self.slots[index].map_get(key)

    def to_list(self) -> List[Dict[str, Any]]:
        return [s.to_dict() for s in self.slots]

    @classmethod
    def from_list(cls, items: Sequence[Mapping[str, Any]]) -> "AccountStorage":
        return cls(tuple(StorageSlot.from_dict(d) for d in items))


@dataclass
class Account:
    id: AccountId
    account_type: AccountType = AccountType.REGULAR_UPDATABLE
    storage_mode: AccountStorageMode = AccountStorageMode.PUBLIC
    vault: AssetVault = field(default_factory=AssetVault)
    storage: AccountStorage = field(default_factory=AccountStorage)
    nonce: int = 0
    code_commitment: str = "0x"

    @property
    def is_faucet(self) -> bool:
        return self.account_type.is_faucet

    @property
    def is_new(self) -> bool:
        return self.nonce == 0

    def commitment(self) -> str:
        return to_hex(hash_concat([self.to_bytes()], domain=b"account"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id.to_hex(),
            "type": self.account_type.value,
            "storage_mode": self.storage_mode.value,
            "nonce": int(self.nonce),
            "code_commitment": self.code_commitment,
            "vault": self.vault.to_list(),
            "storage": self.storage.to_list(),
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Account":
        return cls(
            id=AccountId.from_hex(str(d["id"])),
            account_type=AccountType(d.get("type", AccountType.REGULAR_UPDATABLE.value)),
            storage_mode=AccountStorageMode(d.get("storage_mode", AccountStorageMode.PUBLIC.value)),
            vault=AssetVault.from_list(d.get("vault", [])),
            storage=AccountStorage.from_list(d.get("storage", [])),
            nonce=int(d.get("nonce", 0)),
            code_commitment=str(d.get("code_commitment", "0x")),
        )

    def to_bytes(self) -> bytes:
        return cbor.dumps(self.to_dict())

    @classmethod
    def from_bytes(cls, data: bytes) -> "Account":
        return cls.from_dict(cbor.loads(data))


__all__ = [
    "AccountType",
    "AccountStorageMode",
    "StorageSlot",
    "AccountStorage",
    "Account",
]
