"""
Consumability polling: resync until an account can see enough notes.

The ledger is eventually consistent; a note created a moment ago is not
consumable (authenticated) until a sync observes it. `wait_for_consumable_notes`
drives that loop with explicit bounds:

  - `max_attempts`: number of sync rounds,
  - `timeout`: wall-clock seconds,
  - `cancel`: an `asyncio.Event`; setting it stops the wait promptly.

Pass `max_attempts=None, timeout=None` for an unbounded wait.
The only side effect is advancing the client's local sync state.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Collection, List, Optional

from ..client.ledger import LedgerClient
from ..errors import PollCancelled, PollTimeout
from ..types.core import AccountId, NoteId
from ..types.note import ConsumableNote

_log = logging.getLogger("veil_sdk.sync")

DEFAULT_INTERVAL = 3.0
DEFAULT_MAX_ATTEMPTS = 40
DEFAULT_TIMEOUT = 180.0


async def wait_for_consumable_notes(
    client: LedgerClient,
    account_id: AccountId,
    expected: int,
    *,
    interval: float = DEFAULT_INTERVAL,
    max_attempts: Optional[int] = DEFAULT_MAX_ATTEMPTS,
    timeout: Optional[float] = DEFAULT_TIMEOUT,
    cancel: Optional[asyncio.Event] = None,
    note_ids: Optional[Collection[NoteId]] = None,
    on_attempt: Optional[Callable[[int, int], None]] = None,
) -> List[ConsumableNote]:
    """
    Sync, count `account_id`'s consumable notes, and return them once there
    are at least `expected`. Sleeps `interval` seconds between rounds.
    With `note_ids`, only notes whose id is listed count towards `expected`.

    Raises:
        PollTimeout   when `max_attempts` rounds or `timeout` seconds pass first
        PollCancelled when `cancel` is set
    """
    if interval < 0:
        raise ValueError("interval must be non-negative")
    if max_attempts is not None and max_attempts < 1:
        raise ValueError("max_attempts must be >= 1 (or None)")

    hex_id = account_id.to_hex()
    started = time.monotonic()
    attempts = 0
    observed = 0
    block_num: Optional[int] = None

    while True:
        if cancel is not None and cancel.is_set():
            raise PollCancelled(hex_id, expected, observed, block_num, attempts=attempts)

        attempts += 1
        summary = await client.sync()
        block_num = summary.block_num
        notes = client.get_consumable_notes(account_id)
        if note_ids is not None:
            notes = [n for n in notes if n.note_id in note_ids]
        observed = len(notes)
        if on_attempt is not None:
            on_attempt(attempts, observed)

        if observed >= expected:
            _log.info(
                "consumable notes ready",
                extra={"account_id": hex_id, "observed": observed, "expected": expected, "attempts": attempts},
            )
            return notes

        elapsed = time.monotonic() - started
        if (max_attempts is not None and attempts >= max_attempts) or (timeout is not None and elapsed >= timeout):
            raise PollTimeout(hex_id, expected, observed, block_num, attempts=attempts, elapsed_s=elapsed)

        wait = interval if timeout is None else max(0.0, min(interval, timeout - elapsed))
        _log.debug(
            "waiting for consumable notes",
            extra={"account_id": hex_id, "observed": observed, "expected": expected, "block_num": block_num},
        )
        if cancel is None:
            await asyncio.sleep(wait)
            continue
        try:
            await asyncio.wait_for(cancel.wait(), timeout=wait)
        except asyncio.TimeoutError:
            continue
        raise PollCancelled(hex_id, expected, observed, block_num, attempts=attempts)


__all__ = ["wait_for_consumable_notes", "DEFAULT_INTERVAL", "DEFAULT_MAX_ATTEMPTS", "DEFAULT_TIMEOUT"]
