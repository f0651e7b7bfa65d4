from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Tuple, Union

from ..utils.bytes import from_hex, to_hex
from .core import AccountId

MAX_FUNGIBLE_AMOUNT = 2**63 - 2**31


@dataclass(frozen=True)
class FungibleAsset:
    faucet_id: AccountId
    amount: int

    def __post_init__(self) -> None:
        if not isinstance(self.amount, int) or self.amount < 0:
            raise ValueError("fungible amount must be a non-negative int")
        if self.amount > MAX_FUNGIBLE_AMOUNT:
            raise ValueError("fungible amount exceeds the ledger maximum")

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": "fungible", "faucet": self.faucet_id.to_hex(), "amount": self.amount}


@dataclass(frozen=True)
class NonFungibleAsset:
    faucet_id: AccountId
    data_hash: bytes

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": "non_fungible", "faucet": self.faucet_id.to_hex(), "data": to_hex(self.data_hash)}


Asset = Union[FungibleAsset, NonFungibleAsset]


def asset_from_dict(d: Mapping[str, Any]) -> Asset:
    kind = d.get("kind", "fungible")
    faucet = AccountId.from_hex(str(d["faucet"]))
    if kind == "fungible":
        return FungibleAsset(faucet, int(d["amount"]))
    if kind == "non_fungible":
        return NonFungibleAsset(faucet, from_hex(str(d["data"])))
    raise ValueError(f"unknown asset kind: {kind!r}")


class AssetVault:
    """Fungible balances keyed by faucet plus a set of non-fungible assets."""

    __slots__ = ("_fungible", "_non_fungible")

    def __init__(self, assets: Iterable[Asset] = ()) -> None:
        self._fungible: Dict[AccountId, int] = {}
        self._non_fungible: set[NonFungibleAsset] = set()
        for a in assets:
            self.add(a)

    def add(self, asset: Asset) -> None:
        if isinstance(asset, FungibleAsset):
            self._fungible[asset.faucet_id] = self._fungible.get(asset.faucet_id, 0) + asset.amount
        else:
            self._non_fungible.add(asset)

    def remove(self, asset: Asset) -> None:
        if isinstance(asset, FungibleAsset):
            have = self._fungible.get(asset.faucet_id, 0)
            if have < asset.amount:
                raise ValueError(f"insufficient balance for {asset.faucet_id}: {have} < {asset.amount}")
            self._fungible[asset.faucet_id] = have - asset.amount
        else:
            if asset not in self._non_fungible:
                raise ValueError("non-fungible asset not in vault")
            self._non_fungible.discard(asset)

    def get_balance(self, faucet_id: AccountId) -> int:
        return self._fungible.get(faucet_id, 0)

    def assets(self) -> Tuple[Asset, ...]:
        fungible = [FungibleAsset(f, amt) for f, amt in sorted(self._fungible.items()) if amt]
        nft = sorted(self._non_fungible, key=lambda a: (a.faucet_id, a.data_hash))
        return tuple(fungible) + tuple(nft)

    def to_list(self) -> list:
        return [a.to_dict() for a in self.assets()]

    @classmethod
    def from_list(cls, items: Iterable[Mapping[str, Any]]) -> "AssetVault":
        return cls(asset_from_dict(d) for d in items)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, AssetVault) and self.assets() == other.assets()

    def __repr__(self) -> str:  # pragma: no cover - debug aid
        return f"AssetVault({list(self.assets())!r})"


__all__ = [
    "MAX_FUNGIBLE_AMOUNT",
    "FungibleAsset",
    "NonFungibleAsset",
    "Asset",
    "asset_from_dict",
    "AssetVault",
]
