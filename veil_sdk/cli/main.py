"""
veil_sdk.cli.main
=================

`veil-sdk`: command-line access to the client workflows.

Examples
--------
    $ veil-sdk version
    $ veil-sdk --rpc http://127.0.0.1:57291 sync --account 0x...
    $ veil-sdk resolve-fpi 0x<oracle> --selector 120195681
    $ veil-sdk render-template reader.masm --bind account_id_prefix=123 --strict
    $ veil-sdk wait-notes 0x<account> --expected 5 --poll-timeout 60
    $ veil-sdk note-chain -a 0x<a0> -a 0x<a1> -a 0x<a2> --faucet 0x<f> --amount 20 --mode auto

Configuration
-------------
Defaults, then `veil-client.toml` (or `--config` / VEIL_CONFIG), then VEIL_*
environment variables, then the flags below.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Dict, List, Optional, TypeVar

import typer

from ..chain.orchestrator import ConsumeMode, NoteChainOrchestrator
from ..client.ledger import RpcLedgerClient
from ..config import SDKConfig, load_config
from ..errors import ChainAborted, PollCancelled, PollTimeout, VeilSdkError
from ..fpi.resolver import DirectorySchema, resolve_foreign_accounts
from ..script.template import ScriptTemplate, resolve_template
from ..sync.poller import wait_for_consumable_notes
from ..types.core import AccountId
from ..version import version as sdk_version

T = TypeVar("T")

app = typer.Typer(
    name="veil-sdk",
    help="veil SDK CLI: sync, resolve foreign accounts, wait for notes, run note chains.",
    no_args_is_help=True,
    add_completion=False,
)

__all__ = ["app", "main"]


@dataclass
class Ctx:
    cfg: SDKConfig


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _print_json(obj: Any) -> None:
    typer.echo(json.dumps(obj, indent=2, ensure_ascii=False))


def _account(value: str) -> AccountId:
    try:
        return AccountId.from_hex(value)
    except ValueError as e:
        raise typer.BadParameter(f"invalid account id {value!r}: {e}") from e


def _run(coro: Awaitable[T]) -> T:
    """Run a workflow coroutine; SDK errors become a non-zero exit."""
    try:
        return asyncio.run(coro)  # type: ignore[arg-type]
    except (PollTimeout, PollCancelled) as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(2) from e
    except VeilSdkError as e:
        typer.echo(f"error: {type(e).__name__}: {e}", err=True)
        raise typer.Exit(1) from e


@app.callback()
def _root(
    ctx: typer.Context,
    rpc: Optional[str] = typer.Option(None, "--rpc", help="Ledger JSON-RPC URL."),
    config: Optional[Path] = typer.Option(None, "--config", help="Client TOML file (default: veil-client.toml)."),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="HTTP timeout in seconds."),
    prover: Optional[str] = typer.Option(None, "--prover", help="Remote prover URL."),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level."),
) -> None:
    """Resolve effective configuration for this process."""
    try:
        cfg = load_config(config, rpc_url=rpc, request_timeout=timeout, prover_url=prover, log_level=log_level)
    except (FileNotFoundError, ValueError) as e:
        raise typer.BadParameter(str(e)) from e
    _configure_logging(cfg.log_level)
    ctx.obj = Ctx(cfg=cfg)


@app.command("version")
def version() -> None:
    """Print the SDK version."""
    typer.echo(f"veil-sdk {sdk_version()}")


@app.command("sync")
def sync(
    ctx: typer.Context,
    accounts: List[str] = typer.Option([], "--account", "-a", help="Account id to import and track (repeatable)."),
) -> None:
    """Sync once and print the block height and consumable notes per account."""
    cfg: SDKConfig = ctx.obj.cfg

    async def _go() -> Dict[str, Any]:
        async with RpcLedgerClient.from_config(cfg) as client:
            for a in accounts:
                await client.import_account(_account(a))
            summary = await client.sync()
            return {
                "block_num": summary.block_num,
                "consumable": {k: list(v) for k, v in summary.consumable.items()},
            }

    _print_json(_run(_go()))


@app.command("resolve-fpi")
def resolve_fpi(
    ctx: typer.Context,
    root: str = typer.Argument(..., help="Directory (root) account id."),
    selector: int = typer.Option(..., "--selector", "-s", help="Map-key selector, e.g. a trading-pair id."),
    count_slot: int = typer.Option(1, "--count-slot"),
    entry_base: int = typer.Option(2, "--entry-base"),
    leaf_map_slot: int = typer.Option(1, "--leaf-map-slot"),
    version_slot: Optional[int] = typer.Option(None, "--version-slot"),
    max_depth: int = typer.Option(0, "--max-depth"),
) -> None:
    """Print the foreign-account list a directory account resolves to (root last)."""
    cfg: SDKConfig = ctx.obj.cfg
    schema = DirectorySchema(
        count_slot=count_slot,
        entry_base=entry_base,
        leaf_map_slot=leaf_map_slot,
        version_slot=version_slot,
    )
    root_id = _account(root)

    async def _go() -> List[Dict[str, Any]]:
        async with RpcLedgerClient.from_config(cfg) as client:
            refs = await resolve_foreign_accounts(client, root_id, selector, schema, max_depth=max_depth)
            return [r.to_dict() for r in refs]

    _print_json(_run(_go()))


def _parse_bindings(items: List[str]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for item in items:
        name, sep, value = item.partition("=")
        if not sep or not name:
            raise typer.BadParameter(f"binding must be name=value, got {item!r}")
        out[name.strip()] = value
    return out


@app.command("render-template")
def render_template(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Script source file."),
    bind: List[str] = typer.Option([], "--bind", "-b", help="name=value (repeatable)."),
    strict: bool = typer.Option(False, "--strict", help="Fail if any placeholder is left unbound."),
) -> None:
    """Substitute `{name}` placeholders and print the result."""
    source = path.read_text(encoding="utf-8")
    bindings = _parse_bindings(bind)
    try:
        if strict:
            rendered = ScriptTemplate(source, name=path.name).bind(**bindings).render()
        else:
            rendered = resolve_template(source, bindings)
    except VeilSdkError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(1) from e
    typer.echo(rendered, nl=False)


@app.command("wait-notes")
def wait_notes(
    ctx: typer.Context,
    account: str = typer.Argument(..., help="Account id."),
    expected: int = typer.Option(1, "--expected", "-n", help="Minimum consumable notes."),
    interval: Optional[float] = typer.Option(None, "--interval", min=0.0, help="Seconds between syncs."),
    max_attempts: Optional[int] = typer.Option(None, "--max-attempts", min=1),
    poll_timeout: Optional[float] = typer.Option(None, "--poll-timeout", min=0.0),
    unbounded: bool = typer.Option(False, "--unbounded", help="Ignore attempt and time limits."),
) -> None:
    """Block until the account has at least N consumable notes; print their ids."""
    cfg: SDKConfig = ctx.obj.cfg
    account_id = _account(account)

    async def _go() -> List[str]:
        async with RpcLedgerClient.from_config(cfg) as client:
            await client.import_account(account_id)
            notes = await wait_for_consumable_notes(
                client,
                account_id,
                expected,
                interval=interval if interval is not None else cfg.poll_interval,
                max_attempts=None if unbounded else (cfg.poll_max_attempts if max_attempts is None else max_attempts),
                timeout=None if unbounded else (cfg.poll_timeout if poll_timeout is None else poll_timeout),
            )
            return [n.note_id for n in notes]

    _print_json(_run(_go()))


@app.command("note-chain")
def note_chain(
    ctx: typer.Context,
    accounts: List[str] = typer.Option(..., "--account", "-a", help="Participant account id, in chain order (repeatable)."),
    faucet: str = typer.Option(..., "--faucet", help="Faucet id of the transferred asset."),
    amount: int = typer.Option(..., "--amount", help="Amount moved on every hop."),
    mode: ConsumeMode = typer.Option(ConsumeMode.AUTO, "--mode", case_sensitive=False),
) -> None:
    """Hand a note down a chain of accounts and print the per-hop report."""
    cfg: SDKConfig = ctx.obj.cfg
    ids = [_account(a) for a in accounts]
    faucet_id = _account(faucet)

    async def _go() -> Dict[str, Any]:
        async with RpcLedgerClient.from_config(cfg) as client:
            for aid in ids:
                await client.import_account(aid)
            orch = NoteChainOrchestrator.from_config(client, cfg)
            try:
                report = await orch.run(ids, faucet_id, amount, mode)
            except ChainAborted as e:
                _print_json(e.report.to_dict() if e.report is not None else {})
                raise
            return report.to_dict()

    _print_json(_run(_go()))


def main(argv: Optional[list[str]] = None) -> int:
    """
    Run the CLI. Returns an integer exit code.
    """
    try:
        rv = app(prog_name="veil-sdk", standalone_mode=False, args=argv)
    except typer.Abort:
        typer.echo("aborted", err=True)
        return 1
    except Exception as e:  # noqa: BLE001
        typer.echo(f"error: {e}", err=True)
        return 1
    return rv if isinstance(rv, int) else 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
