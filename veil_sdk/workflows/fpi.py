"""
Foreign-procedure invocation workflows: read another account's state from a
transaction script.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from ..client.ledger import LedgerClient
from ..fpi.resolver import DirectorySchema, resolve_foreign_accounts
from ..script import masm
from ..script.template import account_id_bindings, digest_binding
from ..tx.build import script_request
from ..types.account import Account, StorageSlot
from ..types.core import AccountId
from ..types.tx import ForeignAccount, TransactionResult
from .contracts import deploy_contract

_log = logging.getLogger("veil_sdk.workflows")


async def deploy_count_reader(client: LedgerClient, *, seed: Optional[bytes] = None) -> Account:
    return await deploy_contract(client, masm.COUNT_READER_CONTRACT_SOURCE, [StorageSlot.of_value()], seed=seed)


async def call_counter_via_fpi(
    client: LedgerClient,
    reader_id: AccountId,
    counter_id: AccountId,
    *,
    prover: Optional[str] = None,
) -> TransactionResult:
    """
    Have `reader_id` copy the counter of `counter_id` into its own storage.

    The reader script is bound with the digest of the counter's `get_count`
    procedure and the counter's id components, and the counter is admitted as
    the single foreign account.
    """
    await client.import_account(counter_id)
    counter_lib = await client.compile_library(masm.COUNTER_LIBRARY_PATH, masm.COUNTER_CONTRACT_SOURCE)
    digest = await client.procedure_digest(counter_lib, "get_count")
    reader_lib = await client.compile_library(masm.COUNT_READER_LIBRARY_PATH, masm.COUNT_READER_CONTRACT_SOURCE)

    bindings = {**digest_binding("get_count_proc_hash", digest), **account_id_bindings(counter_id)}
    script = await client.compile_script(masm.COUNT_READER_SCRIPT, bindings, [reader_lib])
    result = await client.submit(reader_id, script_request(script, [ForeignAccount.public(counter_id)]), prover)
    _log.info("counter read via FPI", extra={"reader": reader_id.to_hex(), "counter": counter_id.to_hex(), "tx_id": result.tx_id})
    return result


async def query_oracle(
    client: LedgerClient,
    reader_id: AccountId,
    oracle_id: AccountId,
    pair: int,
    median_digest: str,
    *,
    schema: Optional[DirectorySchema] = None,
    max_depth: int = 0,
    prover: Optional[str] = None,
) -> Tuple[TransactionResult, List[ForeignAccount]]:
    """
    Read the `pair` price from an oracle whose publishers are listed in its
    storage. Every publisher is admitted with the single map key for `pair`.
    """
    refs = await resolve_foreign_accounts(client, oracle_id, pair, schema, max_depth=max_depth)
    contract = masm.ORACLE_READER_CONTRACT.bind(
        pair=str(pair),
        **digest_binding("get_median_hash", median_digest),
        **account_id_bindings(oracle_id, "oracle_id_prefix", "oracle_id_suffix"),
    )
    reader_lib = await client.compile_library(masm.ORACLE_READER_LIBRARY_PATH, contract.render())
    script = await client.compile_script(masm.ORACLE_READER_SCRIPT, None, [reader_lib])
    result = await client.submit(reader_id, script_request(script, refs), prover)
    return result, refs


__all__ = ["deploy_count_reader", "call_counter_via_fpi", "query_oracle"]
