from __future__ import annotations

import asyncio
from random import Random
from typing import List, Tuple

import pytest

from conftest import FakeLedger, make_faucet, make_wallet
from veil_sdk.errors import PollCancelled, PollTimeout, UnmetPrecondition
from veil_sdk.sync.poller import wait_for_consumable_notes
from veil_sdk.tx.build import create_p2id_note
from veil_sdk.types.asset import FungibleAsset
from veil_sdk.types.core import AccountId
from veil_sdk.types.note import Note

pytestmark = pytest.mark.anyio


def _note_for(target: AccountId, faucet_id: AccountId, rng: Random, amount: int = 1) -> Note:
    return create_p2id_note(faucet_id, target, [FungibleAsset(faucet_id, amount)], rng=rng)


async def _tracked_wallet(ledger: FakeLedger, rng: Random) -> Tuple[AccountId, AccountId]:
    wallet = make_wallet(ledger, rng)
    faucet = make_faucet(ledger, rng)
    await ledger.import_account(wallet.id)
    return wallet.id, faucet.id


async def test_producer_delivers_expected_notes(ledger: FakeLedger, rng: Random) -> None:
    wallet_id, faucet_id = await _tracked_wallet(ledger, rng)
    produced: List[Note] = []

    def producer(lg: FakeLedger) -> None:
        if len(produced) < 5:
            note = _note_for(wallet_id, faucet_id, rng)
            produced.append(note)
            lg.publish(note)

    ledger.before_sync.append(producer)
    notes = await wait_for_consumable_notes(ledger, wallet_id, 5, interval=0)

    assert len(notes) == 5
    assert {n.note_id for n in notes} == {n.id for n in produced}
    assert ledger.sync_calls == 5


async def test_already_satisfied_returns_after_one_sync(ledger: FakeLedger, rng: Random) -> None:
    wallet_id, faucet_id = await _tracked_wallet(ledger, rng)
    ledger.publish(_note_for(wallet_id, faucet_id, rng))
    notes = await wait_for_consumable_notes(ledger, wallet_id, 1, interval=0)
    assert len(notes) == 1
    assert ledger.sync_calls == 1


async def test_attempt_bound_raises_poll_timeout(ledger: FakeLedger, rng: Random) -> None:
    wallet_id, _ = await _tracked_wallet(ledger, rng)
    with pytest.raises(PollTimeout) as ei:
        await wait_for_consumable_notes(ledger, wallet_id, 1, interval=0, max_attempts=3)
    err = ei.value
    assert isinstance(err, UnmetPrecondition)
    assert err.attempts == 3
    assert err.observed == 0
    assert err.expected == 1
    assert err.account_id == wallet_id.to_hex()
    assert ledger.sync_calls == 3


async def test_time_bound_raises_poll_timeout(ledger: FakeLedger, rng: Random) -> None:
    wallet_id, _ = await _tracked_wallet(ledger, rng)
    with pytest.raises(PollTimeout) as ei:
        await wait_for_consumable_notes(ledger, wallet_id, 1, interval=0.01, max_attempts=None, timeout=0.05)
    assert ei.value.elapsed_s >= 0.05
    assert ei.value.attempts >= 1


async def test_cancel_event_stops_waiting(ledger: FakeLedger, rng: Random) -> None:
    wallet_id, _ = await _tracked_wallet(ledger, rng)
    cancel = asyncio.Event()
    asyncio.get_running_loop().call_later(0.05, cancel.set)

    with pytest.raises(PollCancelled) as ei:
        await asyncio.wait_for(
            wait_for_consumable_notes(ledger, wallet_id, 1, interval=30, max_attempts=None, timeout=None, cancel=cancel),
            timeout=5,
        )
    assert ei.value.attempts == 1
    assert ledger.sync_calls == 1


async def test_preset_cancel_never_syncs(ledger: FakeLedger, rng: Random) -> None:
    wallet_id, _ = await _tracked_wallet(ledger, rng)
    cancel = asyncio.Event()
    cancel.set()
    with pytest.raises(PollCancelled) as ei:
        await wait_for_consumable_notes(ledger, wallet_id, 1, cancel=cancel)
    assert ei.value.attempts == 0
    assert ledger.sync_calls == 0


async def test_note_id_filter_counts_only_listed_notes(ledger: FakeLedger, rng: Random) -> None:
    wallet_id, faucet_id = await _tracked_wallet(ledger, rng)
    for _ in range(2):
        ledger.publish(_note_for(wallet_id, faucet_id, rng))
    wanted = _note_for(wallet_id, faucet_id, rng, amount=7)
    ledger.publish(wanted, delay=2)

    seen: List[Tuple[int, int]] = []
    notes = await wait_for_consumable_notes(
        ledger,
        wallet_id,
        1,
        interval=0,
        note_ids={wanted.id},
        on_attempt=lambda attempt, observed: seen.append((attempt, observed)),
    )

    assert [n.note_id for n in notes] == [wanted.id]
    assert seen == [(1, 0), (2, 0), (3, 1)]


async def test_async_producer_hook(ledger: FakeLedger, rng: Random) -> None:
    wallet_id, faucet_id = await _tracked_wallet(ledger, rng)

    async def slow_producer(lg: FakeLedger) -> None:
        await asyncio.sleep(0)
        lg.publish(_note_for(wallet_id, faucet_id, rng))

    ledger.before_sync.append(slow_producer)
    notes = await wait_for_consumable_notes(ledger, wallet_id, 3, interval=0)
    assert len(notes) == 3


@pytest.mark.parametrize("kwargs", [{"interval": -1}, {"max_attempts": 0}])
async def test_invalid_bounds(ledger: FakeLedger, rng: Random, kwargs) -> None:
    wallet_id, _ = await _tracked_wallet(ledger, rng)
    with pytest.raises(ValueError):
        await wait_for_consumable_notes(ledger, wallet_id, 1, **kwargs)
