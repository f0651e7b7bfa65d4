"""
veil_sdk.chain.orchestrator
===========================

Linear note hand-off across N accounts: account i pays account i+1 with a
P2ID note, then account i+1 consumes it, for i = 0..N-2.

Every hop moves through

    PENDING -> CREATED -> [CONFIRMED] -> CONSUMED

and drops to FAILED on the first error.

CONFIRMED is only entered when a sync actually observed the note as
consumable by the receiver (authenticated consumption, or AUTO mode finding
it already visible). Visibility alternates: even hops create PRIVATE notes,
odd hops PUBLIC ones.

Between creation and consumption the note leaves the process as bytes
(`transport`, identity by default) and is decoded again; a changed id is a
`NoteTransportError`.

A failure stops the chain with `ChainAborted`, whose `report` is the list of
per-hop checkpoints. `resume(report)` carries on from the first unfinished
hop; a note that was created but never consumed is consumed, not re-created.

Example:
    orch = NoteChainOrchestrator(client, poll_interval=2.0)
    report = await orch.run(accounts, faucet_id, amount=20, mode=ConsumeMode.AUTO)
    print(report.settlement_blocks())
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from itertools import count
from random import Random
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from ..client.ledger import LedgerClient
from ..config import SDKConfig
from ..errors import ChainAborted, CodecError, NoteTransportError, VeilSdkError
from ..sync.poller import DEFAULT_INTERVAL, DEFAULT_MAX_ATTEMPTS, DEFAULT_TIMEOUT, wait_for_consumable_notes
from ..tx.build import consume_notes, consume_unauthenticated, create_p2id_note, send_notes
from ..types.asset import FungibleAsset
from ..types.core import AccountId, NoteId, TxId
from ..types.note import Note, NoteType
from ..types.tx import TransactionRequest, TransactionResult

_log = logging.getLogger("veil_sdk.chain")

Transport = Callable[[bytes], bytes]


class ConsumeMode(str, Enum):
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"
    AUTO = "auto"


class HopState(str, Enum):
    PENDING = "pending"
    CREATED = "created"
    CONFIRMED = "confirmed"
    CONSUMED = "consumed"
    FAILED = "failed"


def hop_visibility(index: int) -> NoteType:
    return NoteType.PRIVATE if index % 2 == 0 else NoteType.PUBLIC


@dataclass
class HopCheckpoint:
    index: int
    sender: AccountId
    receiver: AccountId
    note_type: NoteType
    state: HopState = HopState.PENDING
    note_id: Optional[NoteId] = None
    note_bytes: Optional[bytes] = field(default=None, repr=False)
    create_tx_id: Optional[TxId] = None
    create_block: Optional[int] = None
    create_ordinal: Optional[int] = None
    created_at: Optional[float] = None
    confirmed_block: Optional[int] = None
    consume_tx_id: Optional[TxId] = None
    consume_block: Optional[int] = None
    consume_ordinal: Optional[int] = None
    consumed_at: Optional[float] = None
    mode_used: Optional[ConsumeMode] = None
    error: Optional[str] = None

    @property
    def done(self) -> bool:
        return self.state == HopState.CONSUMED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "sender": self.sender.to_hex(),
            "receiver": self.receiver.to_hex(),
            "note_type": self.note_type.name.lower(),
            "state": self.state.value,
            "note_id": self.note_id,
            "create_tx_id": self.create_tx_id,
            "create_block": self.create_block,
            "create_ordinal": self.create_ordinal,
            "confirmed_block": self.confirmed_block,
            "consume_tx_id": self.consume_tx_id,
            "consume_block": self.consume_block,
            "consume_ordinal": self.consume_ordinal,
            "mode": self.mode_used.value if self.mode_used else None,
            "error": self.error,
        }


@dataclass
class ChainReport:
    accounts: Tuple[AccountId, ...]
    faucet_id: AccountId
    amount: int
    mode: ConsumeMode
    hops: List[HopCheckpoint]

    @property
    def complete(self) -> bool:
        return all(h.done for h in self.hops)

    def first_unfinished(self) -> Optional[int]:
        for h in self.hops:
            if not h.done:
                return h.index
        return None

    def transactions(self) -> List[TxId]:
        """Settlement transaction ids in submission order."""
        stamped: List[Tuple[int, TxId]] = []
        for h in self.hops:
            if h.create_tx_id is not None and h.create_ordinal is not None:
                stamped.append((h.create_ordinal, h.create_tx_id))
            if h.consume_tx_id is not None and h.consume_ordinal is not None:
                stamped.append((h.consume_ordinal, h.consume_tx_id))
        return [tx for _, tx in sorted(stamped)]

    def settlement_blocks(self) -> List[Tuple[Optional[int], Optional[int]]]:
        return [(h.create_block, h.consume_block) for h in self.hops]

    def max_ordinal(self) -> int:
        ords = [o for h in self.hops for o in (h.create_ordinal, h.consume_ordinal) if o is not None]
        return max(ords, default=-1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accounts": [a.to_hex() for a in self.accounts],
            "faucet_id": self.faucet_id.to_hex(),
            "amount": self.amount,
            "mode": self.mode.value,
            "complete": self.complete,
            "hops": [h.to_dict() for h in self.hops],
        }


def _identity(data: bytes) -> bytes:
    return data


class NoteChainOrchestrator:
    def __init__(
        self,
        client: LedgerClient,
        *,
        poll_interval: float = DEFAULT_INTERVAL,
        poll_max_attempts: Optional[int] = DEFAULT_MAX_ATTEMPTS,
        poll_timeout: Optional[float] = DEFAULT_TIMEOUT,
        cancel: Optional[asyncio.Event] = None,
        prover: Optional[str] = None,
        transport: Transport = _identity,
        rng: Optional[Random] = None,
    ) -> None:
        self.client = client
        self.poll_interval = poll_interval
        self.poll_max_attempts = poll_max_attempts
        self.poll_timeout = poll_timeout
        self.cancel = cancel
        self.prover = prover
        self.transport = transport
        self.rng = rng
        self._ordinals: Iterator[int] = count()
        self._last_ordinal = -1

    @classmethod
    def from_config(cls, client: LedgerClient, cfg: SDKConfig, **kwargs: Any) -> "NoteChainOrchestrator":
        return cls(
            client,
            poll_interval=cfg.poll_interval,
            poll_max_attempts=cfg.poll_max_attempts,
            poll_timeout=cfg.poll_timeout,
            prover=cfg.prover_url,
            **kwargs,
        )

    # --- public API ---------------------------------------------------------

    async def run(
        self,
        accounts: Sequence[AccountId],
        faucet_id: AccountId,
        amount: int,
        mode: ConsumeMode = ConsumeMode.AUTHENTICATED,
    ) -> ChainReport:
        """
        Run the whole chain. Produces 2(N-1) transactions on success.

        Raises ChainAborted (with the checkpoint report) on the first hop that
        cannot be created, transported or consumed.
        """
        if len(accounts) < 2:
            raise ValueError("a note chain needs at least two accounts")
        if amount <= 0:
            raise ValueError("per-hop amount must be positive")
        for a, b in zip(accounts, accounts[1:]):
            if a == b:
                raise ValueError(f"adjacent chain participants must differ: {a}")

        hops = [
            HopCheckpoint(index=i, sender=accounts[i], receiver=accounts[i + 1], note_type=hop_visibility(i))
            for i in range(len(accounts) - 1)
        ]
        for a in accounts:
            if self.client.get_account(a) is None:
                await self.client.import_account(a)
        report = ChainReport(tuple(accounts), faucet_id, amount, ConsumeMode(mode), hops)
        _log.info(
            "starting note chain",
            extra={"hops": len(hops), "amount": amount, "mode": report.mode.value, "faucet": faucet_id.to_hex()},
        )
        return await self._drive(report)

    async def resume(self, report: ChainReport) -> ChainReport:
        """
        Continue an aborted chain from its first unfinished hop.

        Raises ValueError when a hop past PENDING no longer carries the note it
        created; such a report cannot be resumed.
        """
        for hop in report.hops:
            if hop.state == HopState.FAILED:
                hop.state = HopState.CREATED if hop.create_tx_id is not None else HopState.PENDING
                hop.error = None
            if hop.state in (HopState.CREATED, HopState.CONFIRMED) and (hop.note_bytes is None or hop.note_id is None):
                raise ValueError(f"hop {hop.index} is {hop.state.value} but carries no note")
        self._advance_ordinals(report.max_ordinal())
        _log.info("resuming note chain", extra={"from_hop": report.first_unfinished()})
        return await self._drive(report)

    # --- internals ----------------------------------------------------------

    def _advance_ordinals(self, floor: int) -> None:
        if floor > self._last_ordinal:
            self._ordinals = count(floor + 1)
            self._last_ordinal = floor

    def _stamp(self) -> Tuple[int, float]:
        ordinal = next(self._ordinals)
        self._last_ordinal = ordinal
        return ordinal, time.monotonic()

    async def _drive(self, report: ChainReport) -> ChainReport:
        for hop in report.hops:
            if hop.done:
                continue
            try:
                if hop.state == HopState.PENDING:
                    await self._create(hop, report)
                await self._consume(hop, report)
            except VeilSdkError as e:
                hop.state = HopState.FAILED
                hop.error = str(e)
                _log.error(
                    "note chain aborted",
                    extra={"hop": hop.index, "sender": hop.sender.to_hex(), "receiver": hop.receiver.to_hex(), "error": str(e)},
                )
                raise ChainAborted(str(e), hop.index, report, e) from e
        _log.info("note chain complete", extra={"transactions": len(report.transactions())})
        return report

    async def _submit(self, account_id: AccountId, request: TransactionRequest) -> Tuple[TransactionResult, int, float]:
        ordinal, ts = self._stamp()
        result = await self.client.submit(account_id, request, self.prover)
        return result, ordinal, ts

    async def _create(self, hop: HopCheckpoint, report: ChainReport) -> None:
        note = create_p2id_note(
            hop.sender,
            hop.receiver,
            [FungibleAsset(report.faucet_id, report.amount)],
            hop.note_type,
            rng=self.rng,
        )
        result, ordinal, ts = await self._submit(hop.sender, send_notes([note]))
        hop.note_id = note.id
        hop.note_bytes = note.to_bytes()
        hop.create_tx_id = result.tx_id
        hop.create_block = result.block_num
        hop.create_ordinal = ordinal
        hop.created_at = ts
        hop.state = HopState.CREATED
        _log.info(
            "hop note created",
            extra={"hop": hop.index, "note_id": note.id, "tx_id": result.tx_id, "visibility": hop.note_type.name.lower()},
        )

    def _receive(self, hop: HopCheckpoint) -> Note:
        if hop.note_bytes is None or hop.note_id is None:
            raise CodecError(f"hop {hop.index} has no created note to hand over", kind="note")
        received = Note.from_bytes(self.transport(hop.note_bytes))
        if received.id != hop.note_id:
            raise NoteTransportError(hop.note_id, received.id)
        return received

    async def _observed(self, hop: HopCheckpoint) -> bool:
        summary = await self.client.sync()
        seen = hop.note_id in {n.note_id for n in self.client.get_consumable_notes(hop.receiver)}
        if seen:
            hop.confirmed_block = summary.block_num
        return seen

    async def _consume(self, hop: HopCheckpoint, report: ChainReport) -> None:
        note = self._receive(hop)
        mode = report.mode

        if mode == ConsumeMode.AUTO:
            mode = ConsumeMode.AUTHENTICATED if await self._observed(hop) else ConsumeMode.UNAUTHENTICATED
            if mode == ConsumeMode.AUTHENTICATED:
                hop.state = HopState.CONFIRMED
        elif mode == ConsumeMode.AUTHENTICATED:
            await wait_for_consumable_notes(
                self.client,
                hop.receiver,
                1,
                interval=self.poll_interval,
                max_attempts=self.poll_max_attempts,
                timeout=self.poll_timeout,
                cancel=self.cancel,
                note_ids={note.id},
            )
            hop.confirmed_block = self.client.block_num
            hop.state = HopState.CONFIRMED

        request = consume_notes([note.id]) if mode == ConsumeMode.AUTHENTICATED else consume_unauthenticated([note])
        result, ordinal, ts = await self._submit(hop.receiver, request)
        hop.consume_tx_id = result.tx_id
        hop.consume_block = result.block_num
        hop.consume_ordinal = ordinal
        hop.consumed_at = ts
        hop.mode_used = mode
        hop.state = HopState.CONSUMED
        _log.info(
            "hop note consumed",
            extra={"hop": hop.index, "note_id": note.id, "tx_id": result.tx_id, "mode": mode.value},
        )


__all__ = [
    "ConsumeMode",
    "HopState",
    "HopCheckpoint",
    "ChainReport",
    "NoteChainOrchestrator",
    "hop_visibility",
]
