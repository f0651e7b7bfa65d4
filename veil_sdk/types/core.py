"""
Field elements, words and account identifiers.

The ledger's storage is made of *words*: tuples of four field elements in the
prime field p = 2**64 - 2**32 + 1. Account ids are two field elements
(`prefix`, `suffix`). When an id is stored in a slot it is packed into a word
as ``[0, 0, suffix, prefix]``.

Nothing here performs network I/O; these are just types and converters.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from random import Random
from typing import Any, Iterable, Optional, Sequence, Tuple

FIELD_MODULUS = 2**64 - 2**32 + 1

Felt = int
Word = Tuple[int, int, int, int]
NoteId = str  # 0x-prefixed hex digest
TxId = str  # 0x-prefixed hex digest

EMPTY_WORD: Word = (0, 0, 0, 0)


def is_felt(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool) and 0 <= v < FIELD_MODULUS


def make_word(values: Iterable[Any]) -> Word:
    """
    Validate and normalize a 4-element word.

    Raises ValueError when the arity is wrong or an element is not a field element.
    """
    items = tuple(values)
    if len(items) != 4:
        raise ValueError(f"word must have 4 elements, got {len(items)}")
    for v in items:
        if not is_felt(v):
            raise ValueError(f"word element out of field: {v!r}")
    return items  # type: ignore[return-value]


def word_key(selector: int) -> Word:
    """Storage-map key that carries a single selector in the last element."""
    return make_word((0, 0, 0, int(selector)))


def random_word(rng: Optional[Random] = None) -> Word:
    if rng is None:
        return tuple(secrets.randbelow(FIELD_MODULUS) for _ in range(4))  # type: ignore[return-value]
    return tuple(rng.randrange(FIELD_MODULUS) for _ in range(4))  # type: ignore[return-value]


def word_to_hex(w: Sequence[int]) -> str:
    return "0x" + "".join(f"{int(v):016x}" for v in make_word(w))


@dataclass(frozen=True, order=True)
class AccountId:
    """Fixed-width account identity: two 64-bit field elements."""

    prefix: int
    suffix: int

    def __post_init__(self) -> None:
        if not is_felt(self.prefix) or not is_felt(self.suffix):
            raise ValueError(f"account id components out of field: {self.prefix!r}, {self.suffix!r}")

    # --- text ---------------------------------------------------------------

    def to_hex(self) -> str:
        return f"0x{self.prefix:016x}{self.suffix:016x}"

    def __str__(self) -> str:
        return self.to_hex()

    @classmethod
    def from_hex(cls, s: str) -> "AccountId":
        raw = s[2:] if s.startswith(("0x", "0X")) else s
        if len(raw) != 32:
            raise ValueError(f"account id hex must be 16 bytes, got {len(raw) // 2}")
        return cls(prefix=int(raw[:16], 16), suffix=int(raw[16:], 16))

    @classmethod
    def parse(cls, value: "AccountId | str") -> "AccountId":
        return value if isinstance(value, AccountId) else cls.from_hex(value)

    # --- storage packing ----------------------------------------------------

    def to_word(self) -> Word:
        return (0, 0, self.suffix, self.prefix)

    @classmethod
    def from_word(cls, w: Sequence[Any]) -> "AccountId":
        """
        Decode an id packed in a storage word (prefix = element 3, suffix = element 2).

        Raises ValueError for malformed words and for the all-zero id, which is
        what an unset slot reads as.
        """
        word = make_word(w)
        prefix, suffix = word[3], word[2]
        if prefix == 0 and suffix == 0:
            raise ValueError("empty account id")
        return cls(prefix=prefix, suffix=suffix)

    @classmethod
    def dummy(cls, rng: Optional[Random] = None) -> "AccountId":
        w = random_word(rng)
        return cls(prefix=w[0] or 1, suffix=w[1])


__all__ = [
    "FIELD_MODULUS",
    "Felt",
    "Word",
    "NoteId",
    "TxId",
    "EMPTY_WORD",
    "is_felt",
    "make_word",
    "word_key",
    "random_word",
    "word_to_hex",
    "AccountId",
]
