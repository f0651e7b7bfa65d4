"""
Wallet, faucet and transfer workflows.

Each function is one complete client-side flow on top of a `LedgerClient`:
create an account, mint, send, or gather notes. They never retry a
submission; failures surface as `SubmissionFailure`.
"""

from __future__ import annotations

import asyncio
import logging
from random import Random
from typing import List, Optional, Sequence, Tuple

from ..accounts import new_fungible_faucet, new_wallet
from ..client.ledger import LedgerClient
from ..sync.poller import DEFAULT_INTERVAL, DEFAULT_MAX_ATTEMPTS, DEFAULT_TIMEOUT, wait_for_consumable_notes
from ..tx.build import consume_notes, consume_unauthenticated, create_p2id_note, mint_fungible_asset, send_notes
from ..types.account import Account, AccountStorageMode
from ..types.asset import FungibleAsset
from ..types.core import AccountId
from ..types.note import Note, NoteType
from ..types.tx import TransactionResult

_log = logging.getLogger("veil_sdk.workflows")


async def create_wallet(
    client: LedgerClient,
    *,
    storage_mode: AccountStorageMode = AccountStorageMode.PRIVATE,
    mutable: bool = True,
    seed: Optional[bytes] = None,
) -> Account:
    """Build a basic wallet anchored at the latest epoch block and start tracking it."""
    anchor = await client.get_latest_epoch_block()
    account, seed_word = new_wallet(anchor, storage_mode=storage_mode, mutable=mutable, seed=seed)
    await client.add_account(account, seed_word)
    return account


async def deploy_faucet(
    client: LedgerClient,
    symbol: str,
    decimals: int,
    max_supply: int,
    *,
    storage_mode: AccountStorageMode = AccountStorageMode.PUBLIC,
    seed: Optional[bytes] = None,
) -> Account:
    anchor = await client.get_latest_epoch_block()
    account, seed_word = new_fungible_faucet(anchor, symbol, decimals, max_supply, storage_mode=storage_mode, seed=seed)
    await client.add_account(account, seed_word)
    _log.info("faucet deployed", extra={"account_id": account.id.to_hex(), "symbol": symbol})
    return account


async def mint_and_consume(
    client: LedgerClient,
    faucet_id: AccountId,
    target_id: AccountId,
    amount: int,
    *,
    note_type: NoteType = NoteType.PUBLIC,
    prover: Optional[str] = None,
    rng: Optional[Random] = None,
) -> Tuple[TransactionResult, TransactionResult]:
    """
    Mint `amount` to `target_id` and consume the minted note straight away,
    inline (unauthenticated), without waiting for a sync to see it.
    """
    request, note = mint_fungible_asset(faucet_id, target_id, amount, note_type, rng=rng)
    minted = await client.submit(faucet_id, request, prover)
    consumed = await client.submit(target_id, consume_unauthenticated([note]), prover)
    return minted, consumed


async def consolidate_notes(
    client: LedgerClient,
    account_id: AccountId,
    expected: int,
    *,
    interval: float = DEFAULT_INTERVAL,
    max_attempts: Optional[int] = DEFAULT_MAX_ATTEMPTS,
    timeout: Optional[float] = DEFAULT_TIMEOUT,
    cancel: Optional[asyncio.Event] = None,
    prover: Optional[str] = None,
) -> TransactionResult:
    """Wait until `expected` notes are consumable, then consume all of them in one transaction."""
    notes = await wait_for_consumable_notes(
        client,
        account_id,
        expected,
        interval=interval,
        max_attempts=max_attempts,
        timeout=timeout,
        cancel=cancel,
    )
    result = await client.submit(account_id, consume_notes([n.note_id for n in notes]), prover)
    _log.info("notes consolidated", extra={"account_id": account_id.to_hex(), "count": len(notes)})
    return result


async def multi_send(
    client: LedgerClient,
    sender: AccountId,
    faucet_id: AccountId,
    payments: Sequence[Tuple[AccountId, int]],
    *,
    note_type: NoteType = NoteType.PUBLIC,
    prover: Optional[str] = None,
    rng: Optional[Random] = None,
) -> Tuple[TransactionResult, List[Note]]:
    """One transaction creating a P2ID note per (target, amount) pair."""
    if not payments:
        raise ValueError("multi_send needs at least one payment")
    notes = [
        create_p2id_note(sender, target, [FungibleAsset(faucet_id, amount)], note_type, rng=rng)
        for target, amount in payments
    ]
    result = await client.submit(sender, send_notes(notes), prover)
    return result, notes


__all__ = [
    "create_wallet",
    "deploy_faucet",
    "mint_and_consume",
    "consolidate_notes",
    "multi_send",
]
