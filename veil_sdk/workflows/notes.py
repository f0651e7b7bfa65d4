"""
Custom-note workflows: notes spent by scripts other than P2ID.

- a hash-preimage note anyone holding the secret can consume, the secret
  travelling as note args;
- an iterative note whose consumer creates the next note of the series.
"""

from __future__ import annotations

import asyncio
import logging
from random import Random
from typing import Optional, Sequence, Tuple

from ..client.ledger import LedgerClient
from ..script import masm
from ..sync.poller import DEFAULT_INTERVAL, DEFAULT_MAX_ATTEMPTS, DEFAULT_TIMEOUT, wait_for_consumable_notes
from ..tx.build import consume_notes, create_note, reissue, send_notes
from ..types.asset import Asset, FungibleAsset
from ..types.core import EMPTY_WORD, FIELD_MODULUS, AccountId, NoteId, Word, make_word
from ..types.note import Note, NoteType, tag_for_public_use_case
from ..types.tx import TransactionRequest, TransactionResult
from ..utils import cbor
from ..utils.hash import hash_concat

_log = logging.getLogger("veil_sdk.workflows")

PREIMAGE_DOMAIN = b"veil.preimage"


def preimage_digest(secret: Sequence[int]) -> Word:
    """Digest of ``[0, 0, 0, 0, *secret]`` as a word: the inputs of a hash-preimage note."""
    digest = hash_concat([cbor.dumps([*EMPTY_WORD, *make_word(secret)])], domain=PREIMAGE_DOMAIN)
    return tuple(int.from_bytes(digest[i * 8:(i + 1) * 8], "big") % FIELD_MODULUS for i in range(4))  # type: ignore[return-value]


async def create_custom_note(
    client: LedgerClient,
    sender: AccountId,
    source: str,
    inputs: Sequence[int],
    assets: Sequence[Asset],
    *,
    note_type: NoteType = NoteType.PUBLIC,
    tag: Optional[int] = None,
    prover: Optional[str] = None,
    rng: Optional[Random] = None,
) -> Tuple[TransactionResult, Note]:
    """Compile `source` as a note script and have `sender` publish a note spent by it."""
    script = await client.compile_note_script(source)
    note = create_note(
        sender,
        script,
        inputs,
        assets,
        note_type,
        tag=tag_for_public_use_case(0, 0) if tag is None else tag,
        rng=rng,
    )
    result = await client.submit(sender, send_notes([note]), prover)
    _log.info("custom note created", extra={"sender": sender.to_hex(), "note_id": note.id, "script_root": script.root})
    return result, note


async def create_hash_preimage_note(
    client: LedgerClient,
    sender: AccountId,
    secret: Sequence[int],
    assets: Sequence[Asset],
    *,
    prover: Optional[str] = None,
    rng: Optional[Random] = None,
) -> Tuple[TransactionResult, Note]:
    return await create_custom_note(
        client,
        sender,
        masm.HASH_PREIMAGE_NOTE_SOURCE,
        preimage_digest(secret),
        assets,
        prover=prover,
        rng=rng,
    )


async def consume_with_secret(
    client: LedgerClient,
    consumer: AccountId,
    note_id: NoteId,
    secret: Sequence[int],
    *,
    interval: float = DEFAULT_INTERVAL,
    max_attempts: Optional[int] = DEFAULT_MAX_ATTEMPTS,
    timeout: Optional[float] = DEFAULT_TIMEOUT,
    cancel: Optional[asyncio.Event] = None,
    prover: Optional[str] = None,
) -> TransactionResult:
    """
    Wait until `note_id` is consumable by `consumer`, then consume it with
    `secret` as its note args. A wrong secret surfaces as `SubmissionFailure`.
    """
    await wait_for_consumable_notes(
        client,
        consumer,
        1,
        interval=interval,
        max_attempts=max_attempts,
        timeout=timeout,
        cancel=cancel,
        note_ids={note_id},
    )
    return await client.submit(consumer, consume_notes([note_id], args={note_id: secret}), prover)


async def create_iterative_note(
    client: LedgerClient,
    sender: AccountId,
    assets: Sequence[Asset],
    *,
    prover: Optional[str] = None,
    rng: Optional[Random] = None,
) -> Tuple[TransactionResult, Note]:
    """A public note whose consumer re-creates it; inputs are ``[prefix, suffix, tag, 0]`` of the sender."""
    tag = tag_for_public_use_case(0, 0)
    return await create_custom_note(
        client,
        sender,
        masm.ITERATIVE_OUTPUT_NOTE_SOURCE,
        (sender.prefix, sender.suffix, tag, 0),
        assets,
        tag=tag,
        prover=prover,
        rng=rng,
    )


async def consume_and_reissue(
    client: LedgerClient,
    consumer: AccountId,
    note: Note,
    amount: int,
    *,
    prover: Optional[str] = None,
) -> Tuple[TransactionResult, Note]:
    """
    Consume `note` inline and, in the same transaction, create the next note of
    its series carrying `amount` of the consumed asset.

    Raises ValueError unless `note` carries exactly one fungible asset holding
    at least `amount`.
    """
    if len(note.assets) != 1 or not isinstance(note.assets[0], FungibleAsset):
        raise ValueError("reissue needs a note carrying a single fungible asset")
    carried = note.assets[0]
    if not 0 < amount <= carried.amount:
        raise ValueError(f"reissue amount must be in 1..{carried.amount}, got {amount}")
    output = reissue(note, consumer, [FungibleAsset(carried.faucet_id, amount)])
    request = TransactionRequest(unauthenticated_input_notes=(note,), own_output_notes=(output,))
    result = await client.submit(consumer, request, prover)
    _log.info("note reissued", extra={"consumer": consumer.to_hex(), "consumed": note.id, "created": output.id})
    return result, output


__all__ = [
    "preimage_digest",
    "create_custom_note",
    "create_hash_preimage_note",
    "consume_with_secret",
    "create_iterative_note",
    "consume_and_reissue",
]
