from __future__ import annotations

import pytest

from veil_sdk.errors import MissingBinding
from veil_sdk.script import masm
from veil_sdk.script.template import (
    ScriptTemplate,
    account_id_bindings,
    digest_binding,
    placeholders,
    resolve_template,
)
from veil_sdk.types.core import AccountId

SRC = "begin\n    push.{get_count_proc_hash}\n    push.{account_id_suffix} push.{account_id_prefix}\nend\n"


def test_resolve_replaces_every_occurrence() -> None:
    out = resolve_template("{x} {x} {y}", {"x": "1", "y": "2"})
    assert out == "1 1 2"


def test_resolve_is_idempotent() -> None:
    bindings = {"get_count_proc_hash": "0xabc", "account_id_suffix": "7", "account_id_prefix": "9"}
    once = resolve_template(SRC, bindings)
    assert resolve_template(once, bindings) == once
    assert "{" not in once


def test_resolve_leaves_unknown_names_alone() -> None:
    out = resolve_template(SRC, {"account_id_suffix": "7"})
    assert "{get_count_proc_hash}" in out
    assert "push.7" in out


def test_resolve_rejects_null_binding() -> None:
    with pytest.raises(MissingBinding) as ei:
        resolve_template(SRC, {"get_count_proc_hash": None, "account_id_suffix": "7"})
    assert ei.value.names == ("get_count_proc_hash",)


@pytest.mark.parametrize(
    "bindings",
    [{"x": "{y}", "y": "7"}, {"y": "7", "x": "{y}"}],
    ids=["x-first", "y-first"],
)
def test_resolve_never_expands_bound_values(bindings: dict) -> None:
    assert resolve_template("{x} {y}", bindings) == "{y} 7"


def test_placeholders_keep_first_appearance_order() -> None:
    assert placeholders("{b} {a} {b} {c_1}") == ("b", "a", "c_1")
    assert placeholders("no fields {} {Upper}") == ()


def test_template_bind_names_every_missing_field() -> None:
    tpl = ScriptTemplate(SRC, name="reader")
    assert tpl.fields == ("get_count_proc_hash", "account_id_suffix", "account_id_prefix")
    with pytest.raises(MissingBinding) as ei:
        tpl.bind(account_id_suffix="1")
    assert ei.value.names == ("get_count_proc_hash", "account_id_prefix")
    assert ei.value.template == "reader"


def test_template_bind_rejects_none() -> None:
    tpl = ScriptTemplate("{a}{b}")
    with pytest.raises(MissingBinding) as ei:
        tpl.bind(a="1", b=None)
    assert ei.value.names == ("b",)


def test_template_render_is_single_pass() -> None:
    tpl = ScriptTemplate("{a}-{b}").bind(a="{b}", b="x")
    assert tpl.render() == "{b}-x"
    assert tpl.unbound == ()


def test_unbound_template_refuses_to_render() -> None:
    with pytest.raises(MissingBinding):
        ScriptTemplate("{a}").render()


def test_bind_ignores_unknown_names() -> None:
    tpl = ScriptTemplate("{a}").bind(a="1", extra="2")
    assert dict(tpl.values) == {"a": "1"}


def test_count_reader_script_binds_from_helpers() -> None:
    counter = AccountId(prefix=0x1234, suffix=0x99)
    bound = masm.COUNT_READER_SCRIPT.bind(
        **digest_binding("get_count_proc_hash", "deadbeef"),
        **account_id_bindings(counter),
    )
    text = bound.render()
    assert "push.0xdeadbeef" in text
    assert f"push.{0x99}\n" in text
    assert f"push.{0x1234}\n" in text


def test_binding_helpers() -> None:
    aid = AccountId(prefix=10, suffix=20)
    assert account_id_bindings(aid) == {"account_id_prefix": "10", "account_id_suffix": "20"}
    assert account_id_bindings(aid, "p", "s") == {"p": "10", "s": "20"}
    assert digest_binding("h", "0xab") == {"h": "0xab"}
    assert digest_binding("h", None) == {"h": None}
