"""
Script templates: `{name}` placeholders bound to runtime values before compile.

Two flavours:

- `resolve_template(source, bindings)`: plain text substitution. Leftover
  placeholders are left for the assembler to reject.
- `ScriptTemplate`: parses its placeholder names up front; `bind()` fails with
  `MissingBinding` naming every unbound field, so nothing half-rendered ever
  reaches the assembler.

Values are strings: procedure digests as 0x-hex, account-id components as
decimal felts (see `account_id_bindings` / `digest_binding`).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Sequence, Tuple

from ..errors import MissingBinding
from ..types.core import AccountId, make_word

PLACEHOLDER_RE = re.compile(r"\{([a-z_][a-z0-9_]*)\}")


def resolve_template(source: str, bindings: Mapping[str, Optional[str]]) -> str:
    """
    Replace each `{name}` in `source` with `bindings[name]`.

    A binding whose value is None means the caller could not produce it;
    that raises MissingBinding. Names absent from `bindings` stay as-is.
    Substitution is a single pass over `source`: placeholders inside a bound
    value are never expanded.
    """
    missing = tuple(sorted(k for k, v in bindings.items() if v is None))
    if missing:
        raise MissingBinding(missing)
    if not bindings:
        return source
    names = sorted(bindings, key=len, reverse=True)
    pattern = re.compile("|".join(re.escape("{" + name + "}") for name in names))
    return pattern.sub(lambda m: str(bindings[m.group(0)[1:-1]]), source)


def placeholders(source: str) -> Tuple[str, ...]:
    """Distinct placeholder names in order of first appearance."""
    seen: Dict[str, None] = {}
    for m in PLACEHOLDER_RE.finditer(source):
        seen.setdefault(m.group(1), None)
    return tuple(seen)


@dataclass(frozen=True)
class ScriptTemplate:
    source: str
    name: Optional[str] = None
    values: Tuple[Tuple[str, str], ...] = ()
    fields: Tuple[str, ...] = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", placeholders(self.source))

    @property
    def unbound(self) -> Tuple[str, ...]:
        bound = dict(self.values)
        return tuple(f for f in self.fields if f not in bound)

    def bind(self, **values: Optional[str]) -> "ScriptTemplate":
        """
        Return a template with `values` merged in. Raises MissingBinding if any
        field is still unbound (or was bound to None) afterwards.
        """
        merged = dict(self.values)
        merged.update({k: v for k, v in values.items() if v is not None and k in self.fields})
        nulls = {k for k, v in values.items() if v is None}
        missing = tuple(f for f in self.fields if f not in merged or f in nulls)
        if missing:
            raise MissingBinding(missing, template=self.name)
        return ScriptTemplate(self.source, self.name, tuple(sorted(merged.items())))

    def render(self) -> str:
        if self.unbound:
            raise MissingBinding(self.unbound, template=self.name)
        bound = dict(self.values)
        return PLACEHOLDER_RE.sub(lambda m: bound[m.group(1)], self.source)


def account_id_bindings(
    account_id: AccountId,
    prefix_name: str = "account_id_prefix",
    suffix_name: str = "account_id_suffix",
) -> Dict[str, str]:
    return {prefix_name: str(account_id.prefix), suffix_name: str(account_id.suffix)}


def digest_binding(name: str, digest: Optional[str]) -> Dict[str, Optional[str]]:
    if digest is None:
        return {name: None}
    return {name: digest if digest.startswith("0x") else "0x" + digest}


def word_binding(name: str, word: Sequence[int]) -> Dict[str, str]:
    """A word as a `push.a.b.c.d` operand."""
    return {name: ".".join(str(v) for v in make_word(word))}


__all__ = [
    "PLACEHOLDER_RE",
    "resolve_template",
    "placeholders",
    "ScriptTemplate",
    "account_id_bindings",
    "digest_binding",
    "word_binding",
]
