from __future__ import annotations

import inspect
from itertools import count
from random import Random
from typing import Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import pytest

from veil_sdk.accounts import new_fungible_faucet, new_wallet
from veil_sdk.client.ledger import ScriptSource, render_source
from veil_sdk.client.store import LocalStore
from veil_sdk.errors import JsonRpcCode, RpcError, SubmissionFailure, note_ids_tuple
from veil_sdk.script.masm import HASH_PREIMAGE_NOTE_SOURCE, P2ID_SCRIPT
from veil_sdk.tx.build import p2id_target
from veil_sdk.types.account import Account, AccountStorage, StorageSlot
from veil_sdk.types.asset import FungibleAsset
from veil_sdk.types.core import AccountId, NoteId, Word, make_word
from veil_sdk.types.note import ConsumableNote, Note, NoteScript
from veil_sdk.types.tx import EpochBlock, Library, SyncSummary, TransactionRequest, TransactionResult, TransactionScript
from veil_sdk.utils.hash import sha3_256_hex
from veil_sdk.workflows.notes import preimage_digest

SyncHook = Callable[["FakeLedger"], Union[None, Awaitable[None]]]
FailHook = Callable[[AccountId, TransactionRequest, int], Optional[str]]
ScriptEffect = Callable[[Account], None]

HASH_PREIMAGE_ROOT = sha3_256_hex(HASH_PREIMAGE_NOTE_SOURCE.encode())


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def _copy(account: Account) -> Account:
    return Account.from_dict(account.to_dict())


def replace_slot(account: Account, index: int, slot: StorageSlot) -> None:
    slots = list(account.storage.slots)
    slots[index] = slot
    account.storage = AccountStorage(tuple(slots))


class FakeLedger:
    """
    In-memory stand-in for a ledger node plus assembler, behind the
    `LedgerClient` interface.

    - Every accepted submission settles in its own block.
    - A created note becomes visible after `note_delay` further syncs: a P2ID
      note to its target, any other note to every tracked account but its
      sender.
    - Hash-preimage notes need the matching secret as note args.
    - `script_effects` stand in for contract code: each effect whose marker
      occurs in a custom script is applied to the executing account.
    - Authenticated inputs must have been observed by a sync; unauthenticated
      inputs only need to exist on the ledger.
    """

    def __init__(self, *, note_delay: int = 0) -> None:
        self.store = LocalStore()
        self.accounts: Dict[AccountId, Account] = {}
        self.notes: Dict[NoteId, Note] = {}
        self.visible_in: Dict[NoteId, int] = {}
        self.consumed: set[NoteId] = set()
        self.height = 1
        self.note_delay = note_delay
        self.sync_calls = 0
        self.submissions: List[Tuple[AccountId, TransactionRequest, TransactionResult]] = []
        self.compiled: List[str] = []
        self.before_sync: List[SyncHook] = []
        self.fail_submit: Optional[FailHook] = None
        self.script_effects: List[Tuple[str, ScriptEffect]] = []
        self._tx_counter = count(1)

    # --- test helpers -------------------------------------------------------

    def put(self, account: Account) -> Account:
        self.accounts[account.id] = _copy(account)
        return account

    def fund(self, account_id: AccountId, faucet_id: AccountId, amount: int) -> None:
        self.accounts[account_id].vault.add(FungibleAsset(faucet_id, amount))

    def balance(self, account_id: AccountId, faucet_id: AccountId) -> int:
        return self.accounts[account_id].vault.get_balance(faucet_id)

    def publish(self, note: Note, delay: Optional[int] = None) -> None:
        self.notes[note.id] = note
        self.visible_in[note.id] = self.note_delay if delay is None else delay

    def _recipients(self, note: Note) -> List[AccountId]:
        if note.recipient.script.root == P2ID_SCRIPT.root:
            return [p2id_target(note)]
        return [a for a in self.store.tracked_ids() if a != note.sender]

    @staticmethod
    def _spend_check(note: Note, account_id: AccountId, request: TransactionRequest) -> Optional[str]:
        root = note.recipient.script.root
        if root == P2ID_SCRIPT.root and p2id_target(note) != account_id:
            return f"note {note.id} is not payable to this account"
        if root == HASH_PREIMAGE_ROOT:
            secret = request.args_for(note.id)
            if secret is None or preimage_digest(secret) != make_word(note.recipient.inputs):
                return f"note {note.id}: hash preimage mismatch"
        return None

    # --- LedgerClient -------------------------------------------------------

    @property
    def block_num(self) -> int:
        return self.store.block_num

    async def sync(self) -> SyncSummary:
        for hook in list(self.before_sync):
            res = hook(self)
            if inspect.isawaitable(res):
                await res
        self.sync_calls += 1

        consumable: Dict[AccountId, List[ConsumableNote]] = {}
        for nid, note in self.notes.items():
            if nid in self.consumed:
                continue
            if self.visible_in[nid] > 0:
                self.visible_in[nid] -= 1
                continue
            for target in self._recipients(note):
                consumable.setdefault(target, []).append(ConsumableNote(nid, target, note, self.height))
        updated = [_copy(self.accounts[a]) for a in self.store.tracked_ids() if a in self.accounts]
        return self.store.apply_sync(self.height, consumable, updated=updated, consumed=sorted(self.consumed))

    async def import_account(self, account_id: AccountId) -> Account:
        if account_id not in self.accounts:
            raise RpcError(method="ledger.getAccount", code=JsonRpcCode.ACCOUNT_NOT_FOUND, message="not found")
        account = _copy(self.accounts[account_id])
        self.store.put_account(account)
        return account

    def get_account(self, account_id: AccountId) -> Optional[Account]:
        return self.store.get_account(account_id)

    async def add_account(self, account: Account, seed: Sequence[int]) -> None:
        self.accounts[account.id] = _copy(account)
        self.store.put_account(account, seed)

    async def get_latest_epoch_block(self) -> EpochBlock:
        return EpochBlock(self.height, sha3_256_hex(str(self.height).encode()))

    async def compile_script(
        self,
        source: ScriptSource,
        bindings: Optional[Mapping[str, Optional[str]]] = None,
        libraries: Sequence[Library] = (),
    ) -> TransactionScript:
        rendered = render_source(source, bindings)
        self.compiled.append(rendered)
        return TransactionScript(rendered, sha3_256_hex(rendered.encode()))

    async def compile_note_script(self, source: str) -> NoteScript:
        return NoteScript(source, sha3_256_hex(source.encode()))

    async def compile_library(self, path: str, source: str) -> Library:
        exports = {
            line.split(".", 1)[1].strip(): sha3_256_hex(f"{path}::{line.strip()}".encode())
            for line in source.splitlines()
            if line.startswith("export.")
        }
        self.compiled.append(source)
        return Library(path=path, source=source, exports=exports)

    async def procedure_digest(self, library: Library, name: str) -> str:
        digest = library.procedure_digest(name)
        if digest is None:
            raise RpcError(method="assembler.procedureDigest", code=JsonRpcCode.COMPILE_FAILED, message=name)
        return digest

    def get_consumable_notes(self, account_id: AccountId) -> List[ConsumableNote]:
        return self.store.consumable_notes(account_id)

    async def submit(
        self,
        account_id: AccountId,
        request: TransactionRequest,
        prover: Optional[str] = None,
    ) -> TransactionResult:
        input_ids = request.input_note_ids()
        hex_id = account_id.to_hex()

        def reject(msg: str, stage: str = "execute") -> SubmissionFailure:
            return SubmissionFailure(msg, account_id=hex_id, note_ids=note_ids_tuple(input_ids), stage=stage)

        conflicts = self.store.conflicting(input_ids)
        if conflicts:
            raise SubmissionFailure("note already in flight or consumed", account_id=hex_id, note_ids=conflicts, stage="guard")
        ordinal = len(self.submissions)
        if self.fail_submit is not None:
            msg = self.fail_submit(account_id, request, ordinal)
            if msg:
                raise reject(msg, "submit")

        observed = {n.note_id for n in self.store.consumable_notes(account_id)}
        inputs: List[Note] = []
        for nid in request.authenticated_input_notes:
            if nid not in observed:
                raise reject(f"note {nid} is not consumable by this account")
            inputs.append(self.notes[nid])
        for note in request.unauthenticated_input_notes:
            if note.id not in self.notes:
                raise reject(f"note {note.id} is unknown to the ledger")
            inputs.append(note)
        for note in inputs:
            if note.id in self.consumed:
                raise reject(f"note {note.id} already consumed")
            problem = self._spend_check(note, account_id, request)
            if problem:
                raise reject(problem)

        ledger_account = self.accounts[account_id]
        staged = _copy(ledger_account)
        for note in inputs:
            for asset in note.assets:
                staged.vault.add(asset)
        try:
            for note in request.own_output_notes:
                for asset in note.assets:
                    if staged.is_faucet and isinstance(asset, FungibleAsset) and asset.faucet_id == account_id:
                        continue
                    staged.vault.remove(asset)
        except ValueError as e:
            raise reject(str(e)) from e
        if request.custom_script is not None:
            for marker, effect in self.script_effects:
                if marker in request.custom_script.code:
                    effect(staged)

        staged.nonce += 1
        self.accounts[account_id] = staged
        for note in inputs:
            self.consumed.add(note.id)
        for note in request.own_output_notes:
            self.publish(note)
        self.height += 1
        result = TransactionResult(
            tx_id=sha3_256_hex(f"tx-{next(self._tx_counter)}".encode()),
            account_id=account_id,
            block_num=self.height,
            created_notes=tuple(request.own_output_notes),
            consumed_note_ids=tuple(input_ids),
            proven_by=prover,
        )
        self.store.mark_consumed(account_id, input_ids)
        self.submissions.append((account_id, request, result))
        return result


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def rng() -> Random:
    return Random(1234)


def anchor() -> EpochBlock:
    return EpochBlock(1, "0x" + "ab" * 32)


def make_wallet(ledger: FakeLedger, rng: Random) -> Account:
    account, _ = new_wallet(anchor(), seed=rng.randbytes(32))
    return ledger.put(account)


def make_faucet(ledger: FakeLedger, rng: Random, symbol: str = "VEIL") -> Account:
    account, _ = new_fungible_faucet(anchor(), symbol, 8, 10**12, seed=rng.randbytes(32))
    return ledger.put(account)


def make_directory(
    ledger: FakeLedger,
    rng: Random,
    entries: Sequence[Word],
    *,
    count: Optional[int] = None,
    version: Optional[int] = None,
) -> AccountId:
    """
    A directory account: slot 0 carries `version` (if any), slot 1 the count,
    slot 2 is unused, and entry i (1-based) sits in slot 2 + i.
    """
    c = len(entries) + 2 if count is None else count
    slots = [
        StorageSlot.of_value((version or 0, 0, 0, 0)),
        StorageSlot.of_value((c, 0, 0, 0)),
        StorageSlot.of_value(),
    ]
    slots.extend(StorageSlot.of_value(w) for w in entries)
    account_id = AccountId.dummy(rng)
    ledger.put(Account(id=account_id, storage=AccountStorage(tuple(slots))))
    return account_id


def make_publisher(ledger: FakeLedger, rng: Random, prices: Optional[Mapping[int, int]] = None) -> AccountId:
    account_id = AccountId.dummy(rng)
    price_map = StorageSlot.of_map({(0, 0, 0, pair): (price, 0, 0, 0) for pair, price in (prices or {}).items()})
    ledger.put(Account(id=account_id, storage=AccountStorage((StorageSlot.of_value(), price_map))))
    return account_id
