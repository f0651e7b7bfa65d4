"""
veil_sdk.client.ledger
======================

The ledger client: the narrow contract every workflow in this package talks
to, and its JSON-RPC implementation.

`LedgerClient` is a Protocol so workflows and tests can swap in any object
with the same coroutine methods (the test-suite uses an in-memory ledger).

RPC methods used by `RpcLedgerClient`
-------------------------------------
- ledger.syncState            {"accounts": [hex...], "block_num": int}
- ledger.getAccount           {"account_id": hex}
- ledger.registerAccount      {"account": {...}, "seed": [felt x4]}
- ledger.getLatestEpochBlock  {}
- assembler.compileScript     {"source": str, "libraries": [{...}]}
- assembler.compileNoteScript {"source": str}
- assembler.compileLibrary    {"path": str, "source": str}
- assembler.procedureDigest   {"library": {...}, "name": str}
- tx.execute                  {"account_id": hex, "request": {...}}
- tx.submit                   {"executed": hex, "prover": url | null}

Reads are retried on transport failures. `tx.execute` and `tx.submit` are
sent exactly once; any rejection surfaces as `SubmissionFailure`.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Union

from ..config import SDKConfig
from ..errors import JsonRpcCode, RpcError, SubmissionFailure, note_ids_tuple
from ..rpc.http import AsyncRpcClient
from ..script.template import ScriptTemplate, resolve_template
from ..types.account import Account
from ..types.core import AccountId
from ..types.note import ConsumableNote, NoteScript
from ..types.tx import EpochBlock, Library, SyncSummary, TransactionRequest, TransactionResult, TransactionScript
from .store import LocalStore

_log = logging.getLogger("veil_sdk.client")

ScriptSource = Union[str, ScriptTemplate]


class LedgerClient(Protocol):
    """Minimal interface the resolver, poller, orchestrator and workflows expect."""

    @property
    def block_num(self) -> int: ...

    async def sync(self) -> SyncSummary: ...

    async def import_account(self, account_id: AccountId) -> Account: ...

    def get_account(self, account_id: AccountId) -> Optional[Account]: ...

    async def add_account(self, account: Account, seed: Sequence[int]) -> None: ...

    async def get_latest_epoch_block(self) -> EpochBlock: ...

    async def compile_script(
        self,
        source: ScriptSource,
        bindings: Optional[Mapping[str, Optional[str]]] = None,
        libraries: Sequence[Library] = (),
    ) -> TransactionScript: ...

    async def compile_note_script(self, source: str) -> NoteScript: ...

    async def compile_library(self, path: str, source: str) -> Library: ...

    async def procedure_digest(self, library: Library, name: str) -> str: ...

    async def submit(
        self,
        account_id: AccountId,
        request: TransactionRequest,
        prover: Optional[str] = None,
    ) -> TransactionResult: ...

    def get_consumable_notes(self, account_id: AccountId) -> List[ConsumableNote]: ...


def render_source(source: ScriptSource, bindings: Optional[Mapping[str, Optional[str]]]) -> str:
    """Apply `bindings` to a plain source string or a typed template."""
    if isinstance(source, ScriptTemplate):
        return source.bind(**dict(bindings or {})).render()
    return resolve_template(source, bindings or {})


class RpcLedgerClient:
    """
    `LedgerClient` over JSON-RPC, caching state in a `LocalStore`.

    Example:
        cfg = load_config()
        async with RpcLedgerClient.from_config(cfg) as client:
            summary = await client.sync()
    """

    def __init__(
        self,
        rpc: AsyncRpcClient,
        *,
        store: Optional[LocalStore] = None,
        prover_url: Optional[str] = None,
    ) -> None:
        self.rpc = rpc
        self.store = store or LocalStore()
        self.prover_url = prover_url

    @classmethod
    def from_config(cls, cfg: SDKConfig) -> "RpcLedgerClient":
        rpc = AsyncRpcClient(
            cfg.rpc_url,
            timeout=cfg.request_timeout,
            max_retries=cfg.max_retries,
            backoff_base=cfg.backoff_factor,
            headers={"User-Agent": cfg.user_agent},
        )
        return cls(rpc, prover_url=cfg.prover_url)

    async def __aenter__(self) -> "RpcLedgerClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.aclose()

    async def aclose(self) -> None:
        await self.rpc.aclose()

    # --- state --------------------------------------------------------------

    @property
    def block_num(self) -> int:
        return self.store.block_num

    async def sync(self) -> SyncSummary:
        tracked = self.store.tracked_ids()
        res = await self.rpc.request(
            "ledger.syncState",
            {"accounts": [a.to_hex() for a in tracked], "block_num": self.store.block_num},
        )
        if not isinstance(res, dict):
            raise RpcError(method="ledger.syncState", code=JsonRpcCode.INTERNAL_ERROR, message="unexpected sync payload", data=res)

        consumable: Dict[AccountId, List[ConsumableNote]] = {}
        for hex_id, items in (res.get("consumable") or {}).items():
            aid = AccountId.from_hex(hex_id)
            consumable[aid] = [ConsumableNote.from_dict(item, aid) for item in items]
        updated = [Account.from_dict(d) for d in res.get("accounts") or []]
        summary = self.store.apply_sync(
            int(res["block_num"]),
            consumable,
            updated=updated,
            consumed=[str(n) for n in res.get("consumed") or []],
        )
        _log.debug("synced", extra={"block_num": summary.block_num, "accounts": len(tracked)})
        return summary

    async def import_account(self, account_id: AccountId) -> Account:
        res = await self.rpc.request("ledger.getAccount", {"account_id": account_id.to_hex()})
        if res is None:
            raise RpcError(
                method="ledger.getAccount",
                code=JsonRpcCode.ACCOUNT_NOT_FOUND,
                message=f"account {account_id} not found",
            )
        account = Account.from_dict(res)  # type: ignore[arg-type]
        self.store.put_account(account)
        _log.debug("imported account", extra={"account_id": account_id.to_hex(), "nonce": account.nonce})
        return account

    def get_account(self, account_id: AccountId) -> Optional[Account]:
        return self.store.get_account(account_id)

    async def add_account(self, account: Account, seed: Sequence[int]) -> None:
        await self.rpc.request(
            "ledger.registerAccount",
            {"account": account.to_dict(), "seed": list(seed)},
            retry=False,
        )
        self.store.put_account(account, seed)
        _log.info("tracking new account", extra={"account_id": account.id.to_hex(), "type": account.account_type.value})

    async def get_latest_epoch_block(self) -> EpochBlock:
        res = await self.rpc.request("ledger.getLatestEpochBlock", {})
        return EpochBlock.from_dict(res)  # type: ignore[arg-type]

    def get_consumable_notes(self, account_id: AccountId) -> List[ConsumableNote]:
        return self.store.consumable_notes(account_id)

    # --- assembler ----------------------------------------------------------

    async def compile_script(
        self,
        source: ScriptSource,
        bindings: Optional[Mapping[str, Optional[str]]] = None,
        libraries: Sequence[Library] = (),
    ) -> TransactionScript:
        rendered = render_source(source, bindings)
        res = await self.rpc.request(
            "assembler.compileScript",
            {"source": rendered, "libraries": [lib.to_dict() for lib in libraries]},
        )
        return TransactionScript.from_dict(res)  # type: ignore[arg-type]

    async def compile_note_script(self, source: str) -> NoteScript:
        res = await self.rpc.request("assembler.compileNoteScript", {"source": source})
        return NoteScript.from_dict(res)  # type: ignore[arg-type]

    async def compile_library(self, path: str, source: str) -> Library:
        res = await self.rpc.request("assembler.compileLibrary", {"path": path, "source": source})
        return Library(path=str(res["path"]), source=source, exports=dict(res.get("exports") or {}))  # type: ignore[index,union-attr]

    async def procedure_digest(self, library: Library, name: str) -> str:
        known = library.procedure_digest(name)
        if known is not None:
            return known
        res = await self.rpc.request("assembler.procedureDigest", {"library": library.to_dict(), "name": name})
        return str(res)

    # --- submission ---------------------------------------------------------

    async def submit(
        self,
        account_id: AccountId,
        request: TransactionRequest,
        prover: Optional[str] = None,
    ) -> TransactionResult:
        """
        Execute `request` against `account_id`, prove (remotely when a prover
        url is given) and broadcast. Never retried.

        Raises SubmissionFailure when a note in the request is already in
        flight or consumed through this client, or when the node rejects it.
        Input notes are released again whenever the transaction does not reach
        the ledger.
        """
        input_ids = request.input_note_ids()
        conflicts = self.store.conflicting(input_ids)
        if conflicts:
            raise SubmissionFailure(
                "note already in flight or consumed",
                account_id=account_id.to_hex(),
                note_ids=note_ids_tuple(conflicts),
                stage="guard",
            )

        self.store.mark_in_flight(input_ids)
        stage = "execute"
        try:
            executed = await self.rpc.request(
                "tx.execute",
                {"account_id": account_id.to_hex(), "request": request.to_dict()},
                retry=False,
            )
            if not isinstance(executed, dict) or not executed.get("executed"):
                raise SubmissionFailure(
                    "malformed tx.execute result",
                    account_id=account_id.to_hex(),
                    note_ids=note_ids_tuple(input_ids),
                    stage=stage,
                )
            stage = "submit"
            submitted = await self.rpc.request(
                "tx.submit",
                {"executed": executed["executed"], "prover": prover or self.prover_url},
                retry=False,
            )
        except RpcError as e:
            self.store.release(input_ids)
            _log.warning(
                "transaction rejected",
                extra={"account_id": account_id.to_hex(), "stage": stage, "code": e.code},
            )
            raise SubmissionFailure(
                e.message,
                account_id=account_id.to_hex(),
                note_ids=note_ids_tuple(input_ids),
                code=e.code,
                stage=stage,
            ) from e
        except BaseException:
            self.store.release(input_ids)
            raise

        payload: Dict[str, Any] = dict(executed)  # type: ignore[arg-type]
        payload.update({k: v for k, v in dict(submitted).items() if k in ("tx_id", "block_num", "proven_by")})  # type: ignore[arg-type]
        result = TransactionResult.from_dict(payload)
        if isinstance(submitted, dict) and submitted.get("account"):
            self.store.put_account(Account.from_dict(submitted["account"]))
        self.store.mark_consumed(account_id, input_ids)
        _log.info(
            "transaction submitted",
            extra={
                "tx_id": result.tx_id,
                "account_id": account_id.to_hex(),
                "block_num": result.block_num,
                "consumed": len(input_ids),
                "created_notes": len(result.created_notes),
            },
        )
        return result


__all__ = ["LedgerClient", "RpcLedgerClient", "render_source"]
