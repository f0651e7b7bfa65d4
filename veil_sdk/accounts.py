"""
Account builders.

A new account id is derived from a seed, an anchor (epoch) block and the
account's initial code and storage, so the id is bound to a point in ledger
history and cannot be replayed onto a different code/storage layout.

Example:
    anchor = await client.get_latest_epoch_block()
    account, seed = (
        AccountBuilder(os.urandom(32))
        .anchor(anchor)
        .account_type(AccountType.REGULAR_UPDATABLE)
        .storage_mode(AccountStorageMode.PRIVATE)
        .with_component(basic_wallet_component())
        .build()
    )
    await client.add_account(account, seed)
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from .types.account import Account, AccountStorage, AccountStorageMode, AccountType, StorageSlot
from .types.core import FIELD_MODULUS, AccountId, Word
from .types.tx import EpochBlock
from .utils import cbor
from .utils.bytes import BytesLike, ensure_bytes, to_hex
from .utils.hash import hash_concat, sha3_256

MAX_TOKEN_SYMBOL_LEN = 6
_SYMBOL_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"


@dataclass(frozen=True)
class AccountComponent:
    """A piece of account code plus the storage slots it owns."""

    code: str
    storage_slots: Tuple[StorageSlot, ...] = ()
    name: Optional[str] = None

    def commitment(self) -> bytes:
        return sha3_256(self.code.encode())


def basic_wallet_component() -> AccountComponent:
    return AccountComponent(
        code="export.::veil::contracts::wallets::basic::receive_asset\n"
        "export.::veil::contracts::wallets::basic::create_note\n"
        "export.::veil::contracts::wallets::basic::move_asset_to_note\n",
        name="basic_wallet",
    )


def encode_token_symbol(symbol: str) -> int:
    """Pack an upper-case symbol of 1..6 letters into a single felt."""
    if not 1 <= len(symbol) <= MAX_TOKEN_SYMBOL_LEN:
        raise ValueError(f"token symbol must be 1..{MAX_TOKEN_SYMBOL_LEN} characters")
    value = 0
    for ch in symbol:
        idx = _SYMBOL_ALPHABET.find(ch)
        if idx < 0:
            raise ValueError(f"token symbol must be A-Z only, got {symbol!r}")
        value = value * 26 + idx
    return value * MAX_TOKEN_SYMBOL_LEN + (len(symbol) - 1)


def decode_token_symbol(value: int) -> str:
    length = value % MAX_TOKEN_SYMBOL_LEN + 1
    rest = value // MAX_TOKEN_SYMBOL_LEN
    chars: List[str] = []
    for _ in range(length):
        rest, idx = divmod(rest, 26)
        chars.append(_SYMBOL_ALPHABET[idx])
    return "".join(reversed(chars))


def basic_fungible_faucet_component(symbol: str, decimals: int, max_supply: int) -> AccountComponent:
    """Faucet code plus its metadata slot ``[max_supply, decimals, symbol, 0]``."""
    if not 0 <= decimals <= 12:
        raise ValueError("decimals must be within 0..12")
    if not 0 < max_supply < FIELD_MODULUS:
        raise ValueError("max_supply must be a positive field element")
    metadata = StorageSlot.of_value((max_supply, decimals, encode_token_symbol(symbol), 0))
    return AccountComponent(
        code="export.::veil::contracts::faucets::basic_fungible::distribute\n"
        "export.::veil::contracts::faucets::basic_fungible::burn\n",
        storage_slots=(metadata,),
        name="basic_fungible_faucet",
    )


@dataclass
class AccountBuilder:
    """Fluent builder; call `build()` once every required field is set."""

    seed: bytes
    _anchor: Optional[EpochBlock] = None
    _account_type: AccountType = AccountType.REGULAR_UPDATABLE
    _storage_mode: AccountStorageMode = AccountStorageMode.PRIVATE
    _components: List[AccountComponent] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.seed = ensure_bytes(self.seed)
        if len(self.seed) != 32:
            raise ValueError("account seed must be 32 bytes")

    @classmethod
    def random(cls) -> "AccountBuilder":
        return cls(secrets.token_bytes(32))

    def anchor(self, block: EpochBlock) -> "AccountBuilder":
        self._anchor = block
        return self

    def account_type(self, account_type: AccountType) -> "AccountBuilder":
        self._account_type = account_type
        return self

    def storage_mode(self, mode: AccountStorageMode) -> "AccountBuilder":
        self._storage_mode = mode
        return self

    def with_component(self, component: AccountComponent) -> "AccountBuilder":
        self._components.append(component)
        return self

    def build(self) -> Tuple[Account, Word]:
        """
        Returns the new account (nonce 0) and the seed word the ledger needs
        to re-derive and check its id on registration.
        """
        if self._anchor is None:
            raise ValueError("anchor block is required")
        if not self._components:
            raise ValueError("at least one account component is required")

        slots: Tuple[StorageSlot, ...] = tuple(s for c in self._components for s in c.storage_slots)
        storage = AccountStorage(slots)
        code_commitment = hash_concat([c.commitment() for c in self._components], domain=b"code")
        seed_word = _bytes_to_word(self.seed)

        digest = hash_concat(
            [
                cbor.dumps(list(seed_word)),
                self._anchor.commitment.encode(),
                cbor.dumps(self._anchor.block_num),
                code_commitment,
                cbor.dumps(storage.to_list()),
                self._account_type.value.encode(),
                self._storage_mode.value.encode(),
            ],
            domain=b"account-id",
        )
        prefix = int.from_bytes(digest[:8], "big") % FIELD_MODULUS or 1
        suffix = int.from_bytes(digest[8:16], "big") % FIELD_MODULUS
        account = Account(
            id=AccountId(prefix=prefix, suffix=suffix),
            account_type=self._account_type,
            storage_mode=self._storage_mode,
            storage=storage,
            nonce=0,
            code_commitment=to_hex(code_commitment),
        )
        return account, seed_word


def _bytes_to_word(data: BytesLike) -> Word:
    b = ensure_bytes(data)
    return tuple(int.from_bytes(b[i * 8:(i + 1) * 8], "big") % FIELD_MODULUS for i in range(4))  # type: ignore[return-value]


def new_wallet(
    anchor: EpochBlock,
    *,
    storage_mode: AccountStorageMode = AccountStorageMode.PRIVATE,
    mutable: bool = True,
    seed: Optional[bytes] = None,
) -> Tuple[Account, Word]:
    builder = AccountBuilder(seed) if seed is not None else AccountBuilder.random()
    return (
        builder.anchor(anchor)
        .account_type(AccountType.REGULAR_UPDATABLE if mutable else AccountType.REGULAR_IMMUTABLE)
        .storage_mode(storage_mode)
        .with_component(basic_wallet_component())
        .build()
    )


def new_fungible_faucet(
    anchor: EpochBlock,
    symbol: str,
    decimals: int,
    max_supply: int,
    *,
    storage_mode: AccountStorageMode = AccountStorageMode.PUBLIC,
    seed: Optional[bytes] = None,
) -> Tuple[Account, Word]:
    builder = AccountBuilder(seed) if seed is not None else AccountBuilder.random()
    return (
        builder.anchor(anchor)
        .account_type(AccountType.FUNGIBLE_FAUCET)
        .storage_mode(storage_mode)
        .with_component(basic_fungible_faucet_component(symbol, decimals, max_supply))
        .build()
    )


def contract_account(
    anchor: EpochBlock,
    code: str,
    storage_slots: Sequence[StorageSlot] = (),
    *,
    storage_mode: AccountStorageMode = AccountStorageMode.PUBLIC,
    seed: Optional[bytes] = None,
) -> Tuple[Account, Word]:
    """Immutable-code account carrying a single custom component."""
    builder = AccountBuilder(seed) if seed is not None else AccountBuilder.random()
    return (
        builder.anchor(anchor)
        .account_type(AccountType.REGULAR_IMMUTABLE)
        .storage_mode(storage_mode)
        .with_component(AccountComponent(code=code, storage_slots=tuple(storage_slots)))
        .build()
    )


__all__ = [
    "AccountComponent",
    "AccountBuilder",
    "basic_wallet_component",
    "basic_fungible_faucet_component",
    "encode_token_symbol",
    "decode_token_symbol",
    "new_wallet",
    "new_fungible_faucet",
    "contract_account",
]
