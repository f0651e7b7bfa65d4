"""Script sources and `{name}` template binding."""

from .template import (  # noqa: F401
    ScriptTemplate,
    account_id_bindings,
    digest_binding,
    placeholders,
    resolve_template,
)
