"""
Foreign-account resolution for multi-hop foreign-procedure invocation (FPI).

A *directory* account lists the accounts a script must read from. With the
default `DirectorySchema` its storage looks like:

    slot 1            count word, element 0 = c
    slot 2 + i        packed account id of leaf i, for i in [1, c - 1)

Each leaf is admitted with exactly one storage-map key, ``[0, 0, 0, selector]``
on its map slot; the directory itself is admitted unrestricted and is ordered
last, since it aggregates what the leaves return.

Malformed entries are never skipped: a dependency list with a hole proves
nothing, so decoding stops with `DependencyDecodeError`.

Example:
    refs = await resolve_foreign_accounts(client, oracle_id, selector=120195681)
    req = script_request(tx_script, refs)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Set, Tuple

from ..client.ledger import LedgerClient
from ..errors import DependencyDecodeError
from ..types.account import Account
from ..types.core import AccountId, Word, word_key
from ..types.tx import ForeignAccount

_log = logging.getLogger("veil_sdk.fpi")


@dataclass(frozen=True)
class DirectorySchema:
    """
    Where a directory keeps its fields.

    `version_slot` is optional; when set, element 0 of that slot is read
    first and must be one of `accepted_versions`. Leaves that carry an
    accepted tag in the same slot are themselves directories (see
    `resolve_foreign_accounts(max_depth=...)`).
    """

    count_slot: int = 1
    entry_base: int = 2
    leaf_map_slot: int = 1
    version_slot: Optional[int] = None
    accepted_versions: Tuple[int, ...] = (1,)


DEFAULT_SCHEMA = DirectorySchema()


def _read_slot(account: Account, slot: int) -> Word:
    try:
        return account.storage.get_item(slot)
    except IndexError as e:
        raise DependencyDecodeError(str(e), account_id=account.id.to_hex(), slot=slot) from e


def _directory_version(account: Account, schema: DirectorySchema) -> Optional[int]:
    if schema.version_slot is None or schema.version_slot >= len(account.storage.slots):
        return None
    return _read_slot(account, schema.version_slot)[0]


def decode_entries(account: Account, schema: DirectorySchema = DEFAULT_SCHEMA) -> List[AccountId]:
    """Decode the leaf ids listed by a directory account, in slot order."""
    if schema.version_slot is not None:
        version = _directory_version(account, schema)
        if version not in schema.accepted_versions:
            raise DependencyDecodeError(
                f"unknown directory version {version!r}",
                account_id=account.id.to_hex(),
                slot=schema.version_slot,
            )

    count = _read_slot(account, schema.count_slot)[0]
    leaves: List[AccountId] = []
    for i in range(1, count - 1):
        slot = schema.entry_base + i
        word = _read_slot(account, slot)
        try:
            leaves.append(AccountId.from_word(word))
        except ValueError as e:
            raise DependencyDecodeError(str(e), account_id=account.id.to_hex(), slot=slot, word=tuple(word)) from e
    return leaves


async def _load(client: LedgerClient, account_id: AccountId) -> Account:
    await client.import_account(account_id)
    account = client.get_account(account_id)
    if account is None:
        raise DependencyDecodeError("account missing from local store after import", account_id=account_id.to_hex())
    return account


async def _resolve(
    client: LedgerClient,
    directory_id: AccountId,
    selector: int,
    schema: DirectorySchema,
    visited: Set[AccountId],
    depth: int,
    max_depth: int,
) -> List[ForeignAccount]:
    directory = await _load(client, directory_id)
    leaf_ids = decode_entries(directory, schema)

    for leaf_id in leaf_ids:
        if leaf_id in visited:
            raise DependencyDecodeError(
                f"directory entry {leaf_id} was already visited",
                account_id=directory_id.to_hex(),
            )
        visited.add(leaf_id)

    refs: List[ForeignAccount] = []
    key = word_key(selector)
    for leaf_id in leaf_ids:
        leaf = await _load(client, leaf_id)
        if depth < max_depth and _directory_version(leaf, schema) in schema.accepted_versions:
            _log.debug("descending into nested directory", extra={"account_id": leaf_id.to_hex(), "depth": depth + 1})
            refs.extend(await _resolve(client, leaf_id, selector, schema, visited, depth + 1, max_depth))
        else:
            refs.append(ForeignAccount.public(leaf_id, {schema.leaf_map_slot: [key]}))

    refs.append(ForeignAccount.public(directory_id))
    return refs


async def resolve_foreign_accounts(
    client: LedgerClient,
    root_id: AccountId,
    selector: int,
    schema: Optional[DirectorySchema] = None,
    *,
    max_depth: int = 0,
) -> List[ForeignAccount]:
    """
    Import `root_id` and every account its directory lists; return the
    foreign-account references a single transaction needs, root last.

    `max_depth` > 0 also expands leaves that are directories themselves (only
    recognisable when the schema has a version slot). Nested leaves come
    before the directory that aggregates them. An account id seen twice is
    rejected as a cycle.
    """
    schema = schema or DEFAULT_SCHEMA
    if max_depth < 0:
        raise ValueError("max_depth must be >= 0")
    refs = await _resolve(client, root_id, selector, schema, {root_id}, 0, max_depth)
    _log.info(
        "resolved foreign accounts",
        extra={"root": root_id.to_hex(), "selector": selector, "count": len(refs)},
    )
    return refs


__all__ = ["DirectorySchema", "DEFAULT_SCHEMA", "decode_entries", "resolve_foreign_accounts"]
