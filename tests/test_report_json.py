from __future__ import annotations

import json
from pathlib import Path

from callset.report.format_json import to_json, write_json
from callset.report.models import SCHEMA_VERSION, MatchResult, SearchReport


def _report() -> SearchReport:
    return SearchReport(
        schema_version=SCHEMA_VERSION,
        funcs=["net/http/cookiejar.Jar.Cookies", "path/filepath.Join"],
        subset_size=0,
        patterns=["./..."],
        results=[
            MatchResult("testpkg/impl.go", ["ExportedType.unexportedMethod", "unexportedFunc"]),
            MatchResult("util/paths.go", ["Clean"]),
        ],
    )


def test_json_layout() -> None:
    data = json.loads(to_json(_report()))
    assert data["schema_version"] == SCHEMA_VERSION
    assert data["results"][0] == {
        "filename": "testpkg/impl.go",
        "functions": ["ExportedType.unexportedMethod", "unexportedFunc"],
    }


def test_write_json_creates_parent(tmp_path: Path) -> None:
    path = tmp_path / "out" / "report.json"
    write_json(_report(), path)
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["funcs"] == ["net/http/cookiejar.Jar.Cookies", "path/filepath.Join"]
    assert [r["filename"] for r in data["results"]] == ["testpkg/impl.go", "util/paths.go"]
