from __future__ import annotations

import json
from pathlib import Path
from random import Random
from typing import Any, Dict, List

import httpx
import pytest
import respx
from typer.testing import CliRunner

import veil_sdk.cli.main as cli
from veil_sdk.errors import JsonRpcCode
from veil_sdk.types.account import Account, AccountStorage, StorageSlot
from veil_sdk.types.core import AccountId
from veil_sdk.types.note import Note
from veil_sdk.utils.bytes import from_hex
from veil_sdk.version import version as sdk_version

runner = CliRunner()

RPC_URL = "http://localhost:9999/rpc"


@pytest.fixture(autouse=True)
def isolated(monkeypatch: Any, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("VEIL_CONFIG", raising=False)
    monkeypatch.delenv("VEIL_RPC_URL", raising=False)


def _accounts_by_id(*accounts: Account):
    table = {a.id.to_hex(): a.to_dict() for a in accounts}

    def reply(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if body["method"] == "ledger.getAccount":
            result: Any = table.get(body["params"]["account_id"])
        elif body["method"] == "ledger.syncState":
            result = {"block_num": 3, "consumable": {}}
        else:
            raise AssertionError(f"unexpected method {body['method']}")
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    return reply


def test_version() -> None:
    result = runner.invoke(cli.app, ["version"])
    assert result.exit_code == 0
    assert result.output.strip() == f"veil-sdk {sdk_version()}"


def test_render_template(tmp_path: Path) -> None:
    src = tmp_path / "reader.masm"
    src.write_text("push.{account_id_prefix}\npush.{account_id_suffix}\n")

    loose = runner.invoke(cli.app, ["render-template", str(src), "-b", "account_id_prefix=12"])
    assert loose.exit_code == 0
    assert loose.output == "push.12\npush.{account_id_suffix}\n"

    strict = runner.invoke(cli.app, ["render-template", str(src), "-b", "account_id_prefix=12", "--strict"])
    assert strict.exit_code == 1
    assert "account_id_suffix" in strict.output

    bad = runner.invoke(cli.app, ["render-template", str(src), "-b", "novalue"])
    assert bad.exit_code != 0


@respx.mock
def test_sync_imports_and_reports() -> None:
    wallet = Account(id=AccountId.dummy(Random(1)))
    respx.post(RPC_URL).mock(side_effect=_accounts_by_id(wallet))

    result = runner.invoke(cli.app, ["--rpc", RPC_URL, "sync", "-a", wallet.id.to_hex()])

    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert data["block_num"] == 3
    assert data["consumable"] == {wallet.id.to_hex(): []}


@respx.mock
def test_resolve_fpi_prints_root_last() -> None:
    rng = Random(2)
    leaf = Account(
        id=AccountId.dummy(rng),
        storage=AccountStorage((StorageSlot.of_value(), StorageSlot.of_map({(0, 0, 0, 5): (100, 0, 0, 0)}))),
    )
    root = Account(
        id=AccountId.dummy(rng),
        storage=AccountStorage(
            (
                StorageSlot.of_value(),
                StorageSlot.of_value((3, 0, 0, 0)),
                StorageSlot.of_value(),
                StorageSlot.of_value(leaf.id.to_word()),
            )
        ),
    )
    respx.post(RPC_URL).mock(side_effect=_accounts_by_id(root, leaf))

    result = runner.invoke(cli.app, ["--rpc", RPC_URL, "resolve-fpi", root.id.to_hex(), "--selector", "5"])

    assert result.exit_code == 0, result.output
    refs = json.loads(result.output)
    assert [r["account_id"] for r in refs] == [leaf.id.to_hex(), root.id.to_hex()]
    assert refs[0]["storage"] == [{"slot": 1, "keys": [[0, 0, 0, 5]]}]
    assert refs[1]["storage"] == []


@respx.mock
def test_resolve_fpi_rejects_malformed_directory() -> None:
    root = Account(
        id=AccountId.dummy(Random(3)),
        storage=AccountStorage((StorageSlot.of_value(), StorageSlot.of_value((3, 0, 0, 0)), StorageSlot.of_value(), StorageSlot.of_value())),
    )
    respx.post(RPC_URL).mock(side_effect=_accounts_by_id(root))

    result = runner.invoke(cli.app, ["--rpc", RPC_URL, "resolve-fpi", root.id.to_hex(), "-s", "5"])

    assert result.exit_code == 1
    assert "DependencyDecodeError" in result.output


@respx.mock
def test_wait_notes_times_out_with_exit_code_2() -> None:
    wallet = Account(id=AccountId.dummy(Random(4)))
    route = respx.post(RPC_URL).mock(side_effect=_accounts_by_id(wallet))

    result = runner.invoke(
        cli.app,
        ["--rpc", RPC_URL, "wait-notes", wallet.id.to_hex(), "-n", "1", "--interval", "0", "--max-attempts", "2"],
    )

    assert result.exit_code == 2
    assert "PollTimeout" in result.output
    # one import plus two syncs
    assert route.call_count == 3




def _chain_node(*accounts: Account, reject_consume: bool = False):
    """Ledger stub for `note-chain`: accounts by id, execute echoes the request, submit settles it."""
    table = {a.id.to_hex(): a.to_dict() for a in accounts}
    executed: List[str] = []

    def reply(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        method, params = body["method"], body["params"]
        msg: Dict[str, Any] = {"jsonrpc": "2.0", "id": body["id"]}
        if method == "ledger.getAccount":
            msg["result"] = table.get(params["account_id"])
        elif method == "tx.execute":
            req = params["request"]
            inputs = [Note.from_bytes(from_hex(h)).id for h in req["unauthenticated_input_notes"]]
            if inputs and reject_consume:
                msg["error"] = {"code": int(JsonRpcCode.TX_REJECTED), "message": "consume rejected"}
            else:
                executed.append(f"0x{len(executed) + 1:02x}")
                msg["result"] = {
                    "executed": executed[-1],
                    "tx_id": executed[-1],
                    "account_id": params["account_id"],
                    "block_num": 0,
                    "created_notes": req["own_output_notes"],
                    "consumed_note_ids": inputs,
                }
        elif method == "tx.submit":
            msg["result"] = {"tx_id": params["executed"], "block_num": 10 + len(executed)}
        else:
            raise AssertionError(f"unexpected method {method}")
        return httpx.Response(200, json=msg)

    return reply


def _chain_args(*accounts: Account, faucet: AccountId) -> List[str]:
    args = ["--rpc", RPC_URL, "note-chain"]
    for a in accounts:
        args += ["-a", a.id.to_hex()]
    return args + ["--faucet", faucet.to_hex(), "--amount", "20", "--mode", "unauthenticated"]


@respx.mock
def test_note_chain_prints_the_report() -> None:
    rng = Random(5)
    a0, a1, a2 = (Account(id=AccountId.dummy(rng)) for _ in range(3))
    faucet = AccountId.dummy(rng)
    respx.post(RPC_URL).mock(side_effect=_chain_node(a0, a1, a2))

    result = runner.invoke(cli.app, _chain_args(a0, a1, a2, faucet=faucet))

    assert result.exit_code == 0, result.output
    report = json.loads(result.stdout)
    assert report["complete"] is True
    assert report["mode"] == "unauthenticated"
    assert [h["state"] for h in report["hops"]] == ["consumed", "consumed"]
    assert [h["note_type"] for h in report["hops"]] == ["private", "public"]
    assert [(h["create_tx_id"], h["consume_tx_id"]) for h in report["hops"]] == [("0x01", "0x02"), ("0x03", "0x04")]


@respx.mock
def test_note_chain_abort_still_prints_the_report() -> None:
    rng = Random(6)
    a0, a1 = (Account(id=AccountId.dummy(rng)) for _ in range(2))
    respx.post(RPC_URL).mock(side_effect=_chain_node(a0, a1, reject_consume=True))

    result = runner.invoke(cli.app, _chain_args(a0, a1, faucet=AccountId.dummy(rng)))

    assert result.exit_code == 1
    assert "ChainAborted" in result.output
    assert '"state": "failed"' in result.output
    assert '"create_tx_id": "0x01"' in result.output


@respx.mock
def test_wait_notes_honours_an_explicit_zero_timeout(monkeypatch: Any) -> None:
    monkeypatch.setenv("VEIL_POLL_TIMEOUT", "600")
    wallet = Account(id=AccountId.dummy(Random(7)))
    route = respx.post(RPC_URL).mock(side_effect=_accounts_by_id(wallet))

    result = runner.invoke(
        cli.app,
        ["--rpc", RPC_URL, "wait-notes", wallet.id.to_hex(), "--interval", "0", "--max-attempts", "50", "--poll-timeout", "0"],
    )

    assert result.exit_code == 2
    assert "PollTimeout after 1 attempts" in result.output
    # one import plus a single sync
    assert route.call_count == 2


def test_wait_notes_rejects_zero_attempts() -> None:
    result = runner.invoke(cli.app, ["--rpc", RPC_URL, "wait-notes", AccountId.dummy(Random(8)).to_hex(), "--max-attempts", "0"])
    assert result.exit_code == 2


def test_bad_account_id_is_a_usage_error() -> None:
    result = runner.invoke(cli.app, ["--rpc", RPC_URL, "sync", "-a", "0x1234"])
    assert result.exit_code == 2


def test_bad_rpc_url_is_a_usage_error() -> None:
    result = runner.invoke(cli.app, ["--rpc", "ftp://nowhere", "version"])
    assert result.exit_code == 2


def test_main_returns_exit_code() -> None:
    assert cli.main(["version"]) == 0
