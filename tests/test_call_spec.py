from __future__ import annotations

import pytest

from callset.analyze.call_spec import CallSpec, normalize, parse_call_spec, parse_call_specs
from callset.errors import CallSpecError


def test_parse_function_and_method() -> None:
    assert parse_call_spec("a.c") == CallSpec(package="a", func_name="c")
    assert parse_call_spec("a.B.c") == CallSpec(package="a", receiver="B", func_name="c")


def test_parse_standard_packages() -> None:
    specs = parse_call_specs("ioutil.ReadAll,strings.Compare,bytes.Buffer.Bytes")
    assert specs == [
        CallSpec(package="ioutil", func_name="ReadAll"),
        CallSpec(package="strings", func_name="Compare"),
        CallSpec(package="bytes", receiver="Buffer", func_name="Bytes"),
    ]


def test_parse_third_party_packages() -> None:
    specs = parse_call_specs(
        "storj.io/storj/pkg/storj.NewPieceKey,storj.io/storj/pkg/storj.IDVersion.GetIDVersion"
    )
    assert specs == [
        CallSpec(package="storj.io/storj/pkg/storj", func_name="NewPieceKey"),
        CallSpec(package="storj.io/storj/pkg/storj", receiver="IDVersion", func_name="GetIDVersion"),
    ]


def test_parse_strips_spaces_around_entries() -> None:
    specs = parse_call_specs("storj.io/x/pkg.NewKey, bytes.Buffer.Bytes , strings.Compare")
    assert [str(s) for s in specs] == ["storj.io/x/pkg.NewKey", "bytes.Buffer.Bytes", "strings.Compare"]


@pytest.mark.parametrize(
    "text",
    [
        "ioutil.ReadAll,net/http,strings.Compare",
        "ioutil.ReadAll.,strings.Compare",
        "ioutil.ReadAll,strings.Compare,storj.io/storj/pkg/storj/",
        "ioutil.ReadAll,",
        "ReadAll",
        "a..c",
        "a.B.c.d",
    ],
)
def test_parse_rejects_malformed_input(text: str) -> None:
    with pytest.raises(CallSpecError):
        parse_call_specs(text)


def test_error_names_offending_entry() -> None:
    with pytest.raises(CallSpecError) as excinfo:
        parse_call_specs("strings.Compare,net/http")
    assert "Got: 'net/http'" in str(excinfo.value)


def test_call_spec_error_is_value_error() -> None:
    with pytest.raises(ValueError):
        parse_call_spec("nothing")


def test_normalize_clears_own_package() -> None:
    spec = CallSpec(package="example.com/m/pkg", receiver="T", func_name="M")
    assert normalize(spec, "example.com/m/pkg") == CallSpec(package="", receiver="T", func_name="M")
    assert normalize(spec, "example.com/m/other") is spec
    assert spec.package == "example.com/m/pkg"
