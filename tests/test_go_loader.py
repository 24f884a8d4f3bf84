from __future__ import annotations

from pathlib import Path

import pytest

pytest.importorskip("tree_sitter_languages")

from callset.analyze.call_spec import parse_call_specs  # noqa: E402
from callset.analyze.search import find  # noqa: E402
from callset.config.schema import CallsetConfig  # noqa: E402
from callset.errors import ResolutionError  # noqa: E402
from callset.ir.go import package_path  # noqa: E402
from callset.ir.registry import load_packages  # noqa: E402
from callset.report.models import MatchResult  # noqa: E402

MODULE = "example.com/callsettest"

IMPL = """package testpkg

import (
	"bytes"
	"net/http/cookiejar"
	"net/url"
	"path/filepath"
	strs "strings"
)

func unexportedFunc(jar *cookiejar.Jar) {
	both := filepath.Join("x", "y")
	var b bytes.Buffer
	if len(both) > 0 {
		b.Reset()
	}

	strs.Compare("wow", "lol")
	ExportedFunc()
	jar.Cookies(&url.URL{})
}

// ExportedFunc ...
func ExportedFunc() {
}

type unexportedType string

func (*unexportedType) unexportedMethod() {
}

func (*unexportedType) ExportedMethod() {
	var jar *cookiejar.Jar
	jar.Cookies(&url.URL{})

	_ = filepath.Join("x", "y", "-")
	expt := ExportedType{}
	expt.content.sc.b.Reset()

	strs.Compare("wow", "lol")
	ExportedFunc()
}

type content struct {
	sc subcontent
}

type subcontent struct {
	b bytes.Buffer
}

// ExportedType ...
type ExportedType struct {
	content
}

func (ExportedType) unexportedMethod() {
	expt := &ExportedType{}
	expt.content.sc.b.Reset()

	jar := new(cookiejar.Jar)
	jar.Cookies(&url.URL{})

	_ = filepath.Join("x", "y", "-")

	strs.Compare("wow", "lol")
	ExportedFunc()
}

// ExportedMethod ...
func (ExportedType) ExportedMethod() {
	both := filepath.Join("x", "y")
	buf := bytes.NewBufferString(both)
	if buf.Len() > 0 {
		buf.Reset()
	}

	strs.Compare("wow", "lol")
	ExportedFunc()
}
"""

IMPL_TEST = """package testpkg

import "testing"

func TestSomething(t *testing.T) {
	ExportedFunc()
}
"""


def _module(tmp_path: Path) -> Path:
    (tmp_path / "go.mod").write_text(f"module {MODULE}\n\ngo 1.21\n", encoding="utf-8")
    pkg = tmp_path / "testpkg"
    pkg.mkdir()
    (pkg / "impl.go").write_text(IMPL, encoding="utf-8")
    (pkg / "impl_test.go").write_text(IMPL_TEST, encoding="utf-8")
    return tmp_path


def _funcs(reset: str) -> str:
    return ",".join(
        [
            "path/filepath.Join",
            "strings.Compare",
            f"bytes.Buffer.{reset}",
            f"{MODULE}/testpkg.ExportedFunc",
            "net/http/cookiejar.Jar.Cookies",
        ]
    )


def test_finds_functions_calling_the_whole_set(tmp_path: Path) -> None:
    root = _module(tmp_path)
    packages = load_packages(root, ["testpkg"], CallsetConfig(languages=["go"]))
    assert [p.path for p in packages] == [f"{MODULE}/testpkg"]
    assert packages[0].files == ["testpkg/impl.go"]

    results = find(packages, parse_call_specs(_funcs("Reset")))
    assert results == [
        MatchResult(
            "testpkg/impl.go",
            ["*unexportedType.ExportedMethod", "ExportedType.unexportedMethod", "unexportedFunc"],
        )
    ]


def test_finds_nothing(tmp_path: Path) -> None:
    root = _module(tmp_path)
    packages = load_packages(root, ["testpkg"], CallsetConfig(languages=["go"]))
    assert find(packages, parse_call_specs(_funcs("UnreadByte"))) == []


def test_test_files_are_loaded_on_request(tmp_path: Path) -> None:
    root = _module(tmp_path)
    cfg = CallsetConfig(languages=["go"], include_tests=True)
    packages = load_packages(root, ["testpkg"], cfg)
    results = find(packages, parse_call_specs(f"{MODULE}/testpkg.ExportedFunc,testing.T.Run"), subset_size=1)
    assert MatchResult("testpkg/impl_test.go", ["TestSomething"]) in results


def test_selector_on_non_struct_type_is_an_error(tmp_path: Path) -> None:
    root = _module(tmp_path)
    (root / "other").mkdir()
    (root / "other" / "bad.go").write_text(
        'package other\n\nimport "bytes"\n\ntype ID string\n\nfunc (i ID) Bad() {\n\ti.buf.Reset()\n\t_ = bytes.MinRead\n}\n',
        encoding="utf-8",
    )
    packages = load_packages(root, ["other"], CallsetConfig(languages=["go"]))
    with pytest.raises(ResolutionError, match="other/bad.go"):
        find(packages, parse_call_specs("bytes.Buffer.Reset"))


def test_package_path_from_go_mod(tmp_path: Path) -> None:
    root = _module(tmp_path)
    assert package_path(root / "testpkg", "testpkg") == f"{MODULE}/testpkg"
    assert package_path(root, "main") == MODULE
