"""
Assembly sources used by the built-in workflows.

Reader scripts are templates: their `{name}` placeholders are bound with
`veil_sdk.script.template` before they go to the assembler.
"""

from __future__ import annotations

from ..types.note import NoteScript
from ..utils.hash import sha3_256_hex
from .template import ScriptTemplate

P2ID_NOTE_SOURCE = """\
use.veil::account
use.veil::note
use.veil::contracts::wallets::basic->wallet

const.ERR_P2ID_WRONG_NUMBER_OF_INPUTS=0x00020050
const.ERR_P2ID_TARGET_ACCT_MISMATCH=0x00020051

proc.add_note_assets_to_account
    push.0 exec.note::get_assets
    mul.4 dup.1 add
    padw movup.5
    dup dup.6 neq
    while.true
        dup movdn.5
        mem_loadw
        padw swapw padw padw swapdw
        call.wallet::receive_asset
        dropw dropw dropw
        movup.4 add.4 dup dup.6 neq
    end
    drop dropw drop
end

begin
    push.0 exec.note::get_inputs
    eq.2 assert.err=ERR_P2ID_WRONG_NUMBER_OF_INPUTS
    padw movup.4 mem_loadw drop drop
    exec.account::get_id
    exec.account::is_id_equal assert.err=ERR_P2ID_TARGET_ACCT_MISMATCH
    exec.add_note_assets_to_account
end
"""

# The canonical P2ID script has a fixed root; no assembler round trip needed.
P2ID_SCRIPT = NoteScript(code=P2ID_NOTE_SOURCE, root=sha3_256_hex(P2ID_NOTE_SOURCE.encode()))

COUNTER_LIBRARY_PATH = "external_contract::counter_contract"

COUNTER_CONTRACT_SOURCE = """\
use.veil::account
use.std::sys

export.get_count
    push.0
    exec.account::get_item
    exec.sys::truncate_stack
end

export.increment_count
    push.0
    exec.account::get_item
    push.1 add
    debug.stack
    push.0
    exec.account::set_item
    dropw
    push.1 exec.account::incr_nonce
    exec.sys::truncate_stack
end
"""

COUNT_READER_LIBRARY_PATH = "external_contract::count_reader_contract"

COUNT_READER_CONTRACT_SOURCE = """\
use.veil::account
use.veil::tx
use.std::sys

export.copy_count
    exec.tx::execute_foreign_procedure
    debug.stack
    push.0
    exec.account::set_item
    dropw
    push.1 exec.account::incr_nonce
    exec.sys::truncate_stack
end
"""

COUNT_READER_SCRIPT = ScriptTemplate(
    """\
use.external_contract::count_reader_contract
use.std::sys

begin
    push.{get_count_proc_hash}
    push.{account_id_suffix}
    push.{account_id_prefix}
    call.count_reader_contract::copy_count
    exec.sys::truncate_stack
end
""",
    name="count_reader_script",
)

ORACLE_READER_LIBRARY_PATH = "external_contract::oracle_reader"

ORACLE_READER_CONTRACT = ScriptTemplate(
    """\
use.veil::tx
use.std::sys

export.get_price
    push.0.0.0.{pair}
    push.{get_median_hash}
    push.{oracle_id_suffix} push.{oracle_id_prefix}
    exec.tx::execute_foreign_procedure
    debug.stack
    exec.sys::truncate_stack
end
""",
    name="oracle_reader",
)

ORACLE_READER_SCRIPT = """\
use.external_contract::oracle_reader
use.std::sys

begin
    call.oracle_reader::get_price
    exec.sys::truncate_stack
end
"""

COUNTER_SCRIPT = ScriptTemplate(
    """\
use.std::sys

begin
    call.{increment_count}
    exec.sys::truncate_stack
end
""",
    name="counter_script",
)

MAPPING_LIBRARY_PATH = "external_contract::mapping_contract"

MAPPING_CONTRACT_SOURCE = """\
use.veil::account
use.std::sys

# => [KEY, VALUE]
export.write_val
    push.1
    exec.account::set_map_item
    dropw dropw
    push.1 exec.account::incr_nonce
    exec.sys::truncate_stack
end

# => [KEY]
export.get_val
    push.1
    exec.account::get_map_item
    exec.sys::truncate_stack
end
"""

MAPPING_SCRIPT = ScriptTemplate(
    """\
use.external_contract::mapping_contract
use.std::sys

begin
    push.{value}
    push.{key}
    call.mapping_contract::write_val
    exec.sys::truncate_stack
end
""",
    name="mapping_script",
)

# Inputs hold the hash of [0, 0, 0, 0, SECRET]; the consumer passes SECRET as note args.
HASH_PREIMAGE_NOTE_SOURCE = """\
use.veil::note
use.veil::contracts::wallets::basic->wallet

const.ERR_WRONG_NUMBER_OF_INPUTS=0x00020060
const.ERR_PREIMAGE_MISMATCH=0x00020061

proc.add_note_assets_to_account
    push.0 exec.note::get_assets
    mul.4 dup.1 add
    padw movup.5
    dup dup.6 neq
    while.true
        dup movdn.5
        mem_loadw
        padw swapw padw padw swapdw
        call.wallet::receive_asset
        dropw dropw dropw
        movup.4 add.4 dup dup.6 neq
    end
    drop dropw drop
end

begin
    # => [SECRET]
    hperm dropw swapw dropw
    # => [DIGEST]
    push.100 exec.note::get_inputs
    eq.4 assert.err=ERR_WRONG_NUMBER_OF_INPUTS
    padw movup.4 mem_loadw
    assert_eqw.err=ERR_PREIMAGE_MISMATCH
    exec.add_note_assets_to_account
end
"""

# Inputs: [sender_prefix, sender_suffix, tag, 0]. Consuming the note creates a
# copy of it with the next serial number, carrying part of the assets.
ITERATIVE_OUTPUT_NOTE_SOURCE = """\
use.veil::note
use.veil::tx
use.veil::contracts::wallets::basic->wallet

proc.add_note_assets_to_account
    push.0 exec.note::get_assets
    mul.4 dup.1 add
    padw movup.5
    dup dup.6 neq
    while.true
        dup movdn.5
        mem_loadw
        padw swapw padw padw swapdw
        call.wallet::receive_asset
        dropw dropw dropw
        movup.4 add.4 dup dup.6 neq
    end
    drop dropw drop
end

begin
    exec.add_note_assets_to_account
    exec.note::get_serial_number add.1
    exec.note::get_script_root
    exec.note::get_inputs_commitment
    exec.tx::build_recipient_hash
    push.1 push.0 push.0
    push.100 mem_load.2
    exec.tx::create_note
    drop
end
"""

__all__ = [
    "P2ID_NOTE_SOURCE",
    "P2ID_SCRIPT",
    "COUNTER_LIBRARY_PATH",
    "COUNTER_CONTRACT_SOURCE",
    "COUNT_READER_LIBRARY_PATH",
    "COUNT_READER_CONTRACT_SOURCE",
    "COUNT_READER_SCRIPT",
    "ORACLE_READER_LIBRARY_PATH",
    "ORACLE_READER_CONTRACT",
    "ORACLE_READER_SCRIPT",
    "COUNTER_SCRIPT",
    "MAPPING_LIBRARY_PATH",
    "MAPPING_CONTRACT_SOURCE",
    "MAPPING_SCRIPT",
    "HASH_PREIMAGE_NOTE_SOURCE",
    "ITERATIVE_OUTPUT_NOTE_SOURCE",
]
