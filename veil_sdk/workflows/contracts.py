"""
Contract workflows: deploy public contract accounts and drive them with
transaction scripts that call their exported procedures.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence, Tuple

from ..accounts import contract_account
from ..client.ledger import LedgerClient
from ..script import masm
from ..script.template import digest_binding, word_binding
from ..tx.build import script_request
from ..types.account import Account, AccountStorageMode, StorageSlot
from ..types.core import AccountId, Word, make_word
from ..types.tx import TransactionResult

_log = logging.getLogger("veil_sdk.workflows")

COUNTER_SLOT = 0
MAPPING_SLOT = 1


async def deploy_contract(
    client: LedgerClient,
    code: str,
    storage_slots: Sequence[StorageSlot] = (),
    *,
    storage_mode: AccountStorageMode = AccountStorageMode.PUBLIC,
    seed: Optional[bytes] = None,
) -> Account:
    anchor = await client.get_latest_epoch_block()
    account, seed_word = contract_account(anchor, code, storage_slots, storage_mode=storage_mode, seed=seed)
    await client.add_account(account, seed_word)
    return account


async def deploy_mapping_contract(client: LedgerClient, *, seed: Optional[bytes] = None) -> Account:
    """A contract with an empty value slot followed by the storage map it writes to."""
    return await deploy_contract(
        client,
        masm.MAPPING_CONTRACT_SOURCE,
        [StorageSlot.of_value(), StorageSlot.of_map()],
        seed=seed,
    )


async def _stored_word(client: LedgerClient, account_id: AccountId, index: int, key: Optional[Word] = None) -> Word:
    await client.sync()
    account = client.get_account(account_id)
    if account is None:
        account = await client.import_account(account_id)
    if key is None:
        return account.storage.get_item(index)
    return account.storage.get_map_item(index, key)


async def increment_counter(
    client: LedgerClient,
    counter_id: AccountId,
    *,
    prover: Optional[str] = None,
) -> Tuple[TransactionResult, Word]:
    """
    Call the counter contract's `increment_count` procedure on `counter_id`
    itself and return the transaction with the count read back after a sync.
    """
    await client.import_account(counter_id)
    counter_lib = await client.compile_library(masm.COUNTER_LIBRARY_PATH, masm.COUNTER_CONTRACT_SOURCE)
    digest = await client.procedure_digest(counter_lib, "increment_count")
    script = await client.compile_script(masm.COUNTER_SCRIPT, digest_binding("increment_count", digest), [counter_lib])
    result = await client.submit(counter_id, script_request(script), prover)
    count = await _stored_word(client, counter_id, COUNTER_SLOT)
    _log.info("counter incremented", extra={"account_id": counter_id.to_hex(), "tx_id": result.tx_id, "count": count[3]})
    return result, count


async def write_map_entry(
    client: LedgerClient,
    contract_id: AccountId,
    key: Sequence[int],
    value: Sequence[int],
    *,
    prover: Optional[str] = None,
) -> Tuple[TransactionResult, Word]:
    """Store `value` under `key` in the mapping contract's map and read the entry back."""
    key_word, value_word = make_word(key), make_word(value)
    lib = await client.compile_library(masm.MAPPING_LIBRARY_PATH, masm.MAPPING_CONTRACT_SOURCE)
    bindings = {**word_binding("key", key_word), **word_binding("value", value_word)}
    script = await client.compile_script(masm.MAPPING_SCRIPT, bindings, [lib])
    result = await client.submit(contract_id, script_request(script), prover)
    stored = await _stored_word(client, contract_id, MAPPING_SLOT, key_word)
    return result, stored


__all__ = [
    "deploy_contract",
    "deploy_mapping_contract",
    "increment_counter",
    "write_map_entry",
]
