"""
veil_sdk.tx.build
=================

Builders for the transaction requests the workflows submit: P2ID and custom notes,
mints, sends, and authenticated / unauthenticated consumption.

Builders only assemble values; nothing here touches the network. Hand the
resulting `TransactionRequest` to `LedgerClient.submit`.

Examples
--------
    from veil_sdk.tx.build import pay_to_id, consume_unauthenticated

    req, note = pay_to_id(alice, bob, FungibleAsset(faucet, 50), NoteType.PRIVATE)
    await client.submit(alice, req)
    await client.submit(bob, consume_unauthenticated([note]))
"""

from __future__ import annotations

from dataclasses import replace
from random import Random
from typing import Iterable, Mapping, Optional, Sequence, Tuple

from ..script.masm import P2ID_SCRIPT
from ..types.asset import Asset, FungibleAsset
from ..types.core import FIELD_MODULUS, AccountId, NoteId, Word, make_word, random_word
from ..types.note import (
    Note,
    NoteExecutionHint,
    NoteMetadata,
    NoteRecipient,
    NoteScript,
    NoteType,
    tag_for_account,
)
from ..types.tx import ForeignAccount, TransactionRequest, TransactionScript


def create_note(
    sender: AccountId,
    script: NoteScript,
    inputs: Sequence[int],
    assets: Sequence[Asset],
    note_type: NoteType = NoteType.PUBLIC,
    *,
    tag: int,
    aux: int = 0,
    serial_num: Optional[Word] = None,
    rng: Optional[Random] = None,
) -> Note:
    """A note spent by `script`, which reads `inputs` when it runs. A fresh serial is drawn unless given."""
    recipient = NoteRecipient(
        serial_num=random_word(rng) if serial_num is None else make_word(serial_num),
        script=script,
        inputs=tuple(inputs),
    )
    metadata = NoteMetadata(
        sender=sender,
        note_type=note_type,
        tag=tag,
        execution_hint=NoteExecutionHint.always(),
        aux=aux,
    )
    return Note(assets=tuple(assets), metadata=metadata, recipient=recipient)


def next_serial(serial_num: Word) -> Word:
    """Serial number of the next note in a series: the last element plus one."""
    s = make_word(serial_num)
    return (s[0], s[1], s[2], (s[3] + 1) % FIELD_MODULUS)


def reissue(note: Note, sender: AccountId, assets: Sequence[Asset]) -> Note:
    """
    The next note in `note`'s series: same script, inputs, visibility and tag,
    created by `sender` with `assets` and the following serial number.
    """
    return create_note(
        sender,
        note.recipient.script,
        note.recipient.inputs,
        assets,
        note.metadata.note_type,
        tag=note.metadata.tag,
        aux=note.metadata.aux,
        serial_num=next_serial(note.recipient.serial_num),
    )


def create_p2id_note(
    sender: AccountId,
    target: AccountId,
    assets: Sequence[Asset],
    note_type: NoteType = NoteType.PUBLIC,
    *,
    aux: int = 0,
    rng: Optional[Random] = None,
    script: NoteScript = P2ID_SCRIPT,
) -> Note:
    """
    A note only `target` can consume. The script inputs carry the target id
    as ``[suffix, prefix]``; the serial number is fresh randomness, so two
    otherwise-identical payments still get distinct ids.
    """
    if not assets:
        raise ValueError("a P2ID note must carry at least one asset")
    return create_note(
        sender,
        script,
        (target.suffix, target.prefix),
        assets,
        note_type,
        tag=tag_for_account(target),
        aux=aux,
        rng=rng,
    )


def p2id_target(note: Note) -> AccountId:
    """Decode the target account id from a P2ID note's inputs."""
    inputs = note.recipient.inputs
    if len(inputs) != 2:
        raise ValueError(f"P2ID note takes 2 inputs, got {len(inputs)}")
    return AccountId(prefix=inputs[1], suffix=inputs[0])


def send_notes(notes: Iterable[Note]) -> TransactionRequest:
    out = tuple(notes)
    if not out:
        raise ValueError("send_notes needs at least one output note")
    return TransactionRequest(own_output_notes=out)


def pay_to_id(
    sender: AccountId,
    target: AccountId,
    asset: Asset,
    note_type: NoteType = NoteType.PUBLIC,
    *,
    rng: Optional[Random] = None,
) -> Tuple[TransactionRequest, Note]:
    note = create_p2id_note(sender, target, [asset], note_type, rng=rng)
    return send_notes([note]), note


def mint_fungible_asset(
    faucet_id: AccountId,
    target: AccountId,
    amount: int,
    note_type: NoteType = NoteType.PUBLIC,
    *,
    rng: Optional[Random] = None,
) -> Tuple[TransactionRequest, Note]:
    """Faucet-side request minting `amount` into a P2ID note for `target`."""
    if amount <= 0:
        raise ValueError("mint amount must be positive")
    return pay_to_id(faucet_id, target, FungibleAsset(faucet_id, amount), note_type, rng=rng)


NoteArgs = Mapping[NoteId, Sequence[int]]


def _note_args(ids: Sequence[NoteId], args: Optional[NoteArgs]) -> Tuple[Tuple[NoteId, Word], ...]:
    if not args:
        return ()
    unknown = set(args) - set(ids)
    if unknown:
        raise ValueError(f"note args given for notes not in the request: {sorted(unknown)}")
    return tuple((nid, make_word(args[nid])) for nid in ids if nid in args)


def consume_notes(note_ids: Iterable[NoteId], args: Optional[NoteArgs] = None) -> TransactionRequest:
    """
    Consume notes the executing account's synced view already shows as consumable.
    `args` hands a word to individual notes' scripts (e.g. a preimage).
    """
    ids = tuple(note_ids)
    if not ids:
        raise ValueError("consume_notes needs at least one note id")
    if len(set(ids)) != len(ids):
        raise ValueError("duplicate note id in consume request")
    return TransactionRequest(authenticated_input_notes=ids, note_args=_note_args(ids, args))


def consume_unauthenticated(notes: Iterable[Note], args: Optional[NoteArgs] = None) -> TransactionRequest:
    """Consume notes supplied inline, without waiting for a sync to observe them."""
    items = tuple(notes)
    if not items:
        raise ValueError("consume_unauthenticated needs at least one note")
    if len({n.id for n in items}) != len(items):
        raise ValueError("duplicate note in consume request")
    return TransactionRequest(unauthenticated_input_notes=items, note_args=_note_args([n.id for n in items], args))


def with_script(
    request: TransactionRequest,
    script: TransactionScript,
    foreign_accounts: Sequence[ForeignAccount] = (),
) -> TransactionRequest:
    return replace(request, custom_script=script, foreign_accounts=tuple(foreign_accounts))


def script_request(script: TransactionScript, foreign_accounts: Sequence[ForeignAccount] = ()) -> TransactionRequest:
    return with_script(TransactionRequest(), script, foreign_accounts)


__all__ = [
    "create_note",
    "next_serial",
    "reissue",
    "create_p2id_note",
    "p2id_target",
    "send_notes",
    "pay_to_id",
    "mint_fungible_asset",
    "consume_notes",
    "consume_unauthenticated",
    "with_script",
    "script_request",
]
