"""
In-memory local store: the client's cached view of the ledger.

The store only changes through four doors:

  - a sync round (`apply_sync`),
  - importing an account (`put_account` from `import_account`),
  - tracking a newly built account (`put_account` from `add_account`),
  - recording a local submission (`mark_in_flight` / `mark_consumed`).

Nothing here talks to the network. Consumption decisions must never rely on
the cached consumable set alone; callers resync first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ..types.account import Account
from ..types.core import AccountId, NoteId
from ..types.note import ConsumableNote
from ..types.tx import SyncSummary

_log = logging.getLogger("veil_sdk.client.store")


@dataclass
class LocalStore:
    accounts: Dict[AccountId, Account] = field(default_factory=dict)
    seeds: Dict[AccountId, Tuple[int, ...]] = field(default_factory=dict)
    consumable: Dict[AccountId, List[ConsumableNote]] = field(default_factory=dict)
    block_num: int = 0
    in_flight: Set[NoteId] = field(default_factory=set)
    consumed: Set[NoteId] = field(default_factory=set)

    # --- accounts -----------------------------------------------------------

    def put_account(self, account: Account, seed: Optional[Iterable[int]] = None) -> None:
        self.accounts[account.id] = account
        if seed is not None:
            self.seeds[account.id] = tuple(seed)

    def get_account(self, account_id: AccountId) -> Optional[Account]:
        return self.accounts.get(account_id)

    def tracked_ids(self) -> Tuple[AccountId, ...]:
        return tuple(sorted(self.accounts))

    # --- sync ---------------------------------------------------------------

    def apply_sync(
        self,
        block_num: int,
        consumable: Dict[AccountId, List[ConsumableNote]],
        updated: Iterable[Account] = (),
        consumed: Iterable[NoteId] = (),
    ) -> SyncSummary:
        """Fold one sync response into the cache. Block height never moves backwards."""
        if block_num < self.block_num:
            _log.warning(
                "sync returned an older block; keeping current height",
                extra={"current": self.block_num, "returned": block_num},
            )
        self.block_num = max(self.block_num, int(block_num))

        updated_ids: List[AccountId] = []
        for acct in updated:
            self.accounts[acct.id] = acct
            updated_ids.append(acct.id)

        consumed_ids = tuple(consumed)
        for nid in consumed_ids:
            self.consumed.add(nid)
            self.in_flight.discard(nid)

        for account_id in self.tracked_ids():
            notes = [n for n in consumable.get(account_id, []) if n.note_id not in self.consumed]
            self.consumable[account_id] = notes

        return SyncSummary(
            block_num=self.block_num,
            consumable={aid.to_hex(): tuple(n.note_id for n in notes) for aid, notes in self.consumable.items()},
            updated_accounts=tuple(updated_ids),
            consumed_note_ids=consumed_ids,
        )

    def consumable_notes(self, account_id: AccountId) -> List[ConsumableNote]:
        return list(self.consumable.get(account_id, []))

    # --- double-consume guard -----------------------------------------------

    def conflicting(self, note_ids: Iterable[NoteId]) -> Tuple[NoteId, ...]:
        """Note ids that are already in flight or consumed through this client."""
        return tuple(n for n in note_ids if n in self.in_flight or n in self.consumed)

    def mark_in_flight(self, note_ids: Iterable[NoteId]) -> None:
        self.in_flight.update(note_ids)

    def release(self, note_ids: Iterable[NoteId]) -> None:
        for n in note_ids:
            self.in_flight.discard(n)

    def mark_consumed(self, account_id: AccountId, note_ids: Iterable[NoteId]) -> None:
        ids = set(note_ids)
        self.consumed.update(ids)
        self.in_flight.difference_update(ids)
        if account_id in self.consumable:
            self.consumable[account_id] = [n for n in self.consumable[account_id] if n.note_id not in ids]


__all__ = ["LocalStore"]
