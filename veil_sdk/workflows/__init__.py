"""End-to-end client workflows built on a `LedgerClient`."""

from .contracts import deploy_contract, deploy_mapping_contract, increment_counter, write_map_entry  # noqa: F401
from .fpi import call_counter_via_fpi, deploy_count_reader, query_oracle  # noqa: F401
from .notes import (  # noqa: F401
    consume_and_reissue,
    consume_with_secret,
    create_custom_note,
    create_hash_preimage_note,
    create_iterative_note,
    preimage_digest,
)
from .transfers import (  # noqa: F401
    consolidate_notes,
    create_wallet,
    deploy_faucet,
    mint_and_consume,
    multi_send,
)
