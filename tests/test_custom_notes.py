from __future__ import annotations

from random import Random

import pytest

from conftest import FakeLedger
from veil_sdk.errors import SubmissionFailure
from veil_sdk.script import masm
from veil_sdk.tx.build import consume_notes, consume_unauthenticated, next_serial
from veil_sdk.types.asset import FungibleAsset
from veil_sdk.types.core import FIELD_MODULUS
from veil_sdk.types.note import NoteType, tag_for_public_use_case
from veil_sdk.workflows import (
    consume_and_reissue,
    consume_with_secret,
    create_hash_preimage_note,
    create_iterative_note,
    create_wallet,
    deploy_faucet,
    preimage_digest,
)

pytestmark = pytest.mark.anyio

SECRET = (1, 2, 3, 4)


async def _funded_pair(ledger: FakeLedger, rng: Random, amount: int = 100):
    faucet = await deploy_faucet(ledger, "MID", 8, 10**9, seed=rng.randbytes(32))
    alice = await create_wallet(ledger, seed=rng.randbytes(32))
    bob = await create_wallet(ledger, seed=rng.randbytes(32))
    ledger.fund(alice.id, faucet.id, amount)
    return faucet, alice, bob


def test_preimage_digest_depends_on_every_element() -> None:
    digest = preimage_digest(SECRET)
    assert digest == preimage_digest(list(SECRET))
    assert digest != preimage_digest((1, 2, 3, 5))
    assert all(0 <= v < FIELD_MODULUS for v in digest)
    with pytest.raises(ValueError):
        preimage_digest((1, 2, 3))


def test_next_serial_wraps_in_the_field() -> None:
    assert next_serial((9, 8, 7, 6)) == (9, 8, 7, 7)
    assert next_serial((9, 8, 7, FIELD_MODULUS - 1)) == (9, 8, 7, 0)


def test_note_args_must_name_request_inputs() -> None:
    request = consume_notes(["0x02", "0x01"], args={"0x01": SECRET})
    assert request.note_args == (("0x01", SECRET),)
    assert request.args_for("0x01") == SECRET
    assert request.args_for("0x02") is None
    assert request.to_dict()["note_args"] == {"0x01": list(SECRET)}
    assert consume_notes(["0x01"]).note_args == ()
    with pytest.raises(ValueError, match="not in the request"):
        consume_notes(["0x01"], args={"0x02": SECRET})
    with pytest.raises(ValueError):
        consume_notes(["0x01"], args={"0x01": (1, 2)})


async def test_hash_preimage_note_needs_the_secret(ledger: FakeLedger, rng: Random) -> None:
    faucet, alice, bob = await _funded_pair(ledger, rng)

    _, note = await create_hash_preimage_note(ledger, alice.id, SECRET, [FungibleAsset(faucet.id, 100)], rng=rng)

    assert note.recipient.inputs == preimage_digest(SECRET)
    assert note.recipient.script.code == masm.HASH_PREIMAGE_NOTE_SOURCE
    assert note.metadata.tag == tag_for_public_use_case(0, 0)
    assert note.metadata.note_type == NoteType.PUBLIC
    assert ledger.balance(alice.id, faucet.id) == 0

    with pytest.raises(SubmissionFailure, match="preimage mismatch"):
        await consume_with_secret(ledger, bob.id, note.id, (4, 3, 2, 1), interval=0)
    assert ledger.get_consumable_notes(alice.id) == []
    with pytest.raises(SubmissionFailure, match="preimage mismatch"):
        await ledger.submit(bob.id, consume_notes([note.id]))

    result = await consume_with_secret(ledger, bob.id, note.id, SECRET, interval=0)

    assert result.consumed_note_ids == (note.id,)
    assert ledger.submissions[-1][1].args_for(note.id) == SECRET
    assert ledger.balance(bob.id, faucet.id) == 100
    assert ledger.balance(alice.id, faucet.id) == 0


async def test_consuming_an_iterative_note_creates_the_next_one(ledger: FakeLedger, rng: Random) -> None:
    faucet, alice, bob = await _funded_pair(ledger, rng)
    tag = tag_for_public_use_case(0, 0)

    _, note = await create_iterative_note(ledger, alice.id, [FungibleAsset(faucet.id, 100)], rng=rng)
    assert note.recipient.inputs == (alice.id.prefix, alice.id.suffix, tag, 0)

    result, reissued = await consume_and_reissue(ledger, bob.id, note, 50)

    assert result.consumed_note_ids == (note.id,)
    assert result.created_notes == (reissued,)
    assert ledger.balance(bob.id, faucet.id) == 50
    assert reissued.sender == bob.id
    assert reissued.recipient.script.root == note.recipient.script.root
    assert reissued.recipient.inputs == note.recipient.inputs
    assert reissued.recipient.serial_num[:3] == note.recipient.serial_num[:3]
    assert reissued.recipient.serial_num[3] == (note.recipient.serial_num[3] + 1) % FIELD_MODULUS
    assert reissued.metadata.tag == tag
    assert reissued.assets == (FungibleAsset(faucet.id, 50),)
    assert reissued.id in ledger.notes and reissued.id != note.id

    # the reissued note is public: alice picks it up and passes part of it on again
    await ledger.sync()
    assert reissued.id in {n.note_id for n in ledger.get_consumable_notes(alice.id)}
    assert reissued.id not in {n.note_id for n in ledger.get_consumable_notes(bob.id)}
    _, third = await consume_and_reissue(ledger, alice.id, reissued, 20)
    assert ledger.balance(alice.id, faucet.id) == 30
    assert third.recipient.serial_num == next_serial(reissued.recipient.serial_num)


async def test_reissue_amount_is_bounded_by_the_note(ledger: FakeLedger, rng: Random) -> None:
    faucet, alice, bob = await _funded_pair(ledger, rng)
    _, note = await create_iterative_note(ledger, alice.id, [FungibleAsset(faucet.id, 100)], rng=rng)

    for amount in (0, 101):
        with pytest.raises(ValueError):
            await consume_and_reissue(ledger, bob.id, note, amount)
    assert len(ledger.submissions) == 1

    # the note can still be consumed outright
    await ledger.submit(bob.id, consume_unauthenticated([note]))
    assert ledger.balance(bob.id, faucet.id) == 100
