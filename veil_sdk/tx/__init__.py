"""Transaction request builders."""

from .build import (  # noqa: F401
    consume_notes,
    consume_unauthenticated,
    create_p2id_note,
    mint_fungible_asset,
    pay_to_id,
    send_notes,
    with_script,
)
