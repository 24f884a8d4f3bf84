from __future__ import annotations

from callset.report.format_md import to_markdown, to_text
from callset.report.models import SCHEMA_VERSION, MatchResult, SearchReport


def _report(results: list[MatchResult], subset_size: int = 0) -> SearchReport:
    return SearchReport(
        schema_version=SCHEMA_VERSION,
        funcs=["os.getenv", "json.loads"],
        subset_size=subset_size,
        patterns=["."],
        results=results,
    )


def test_text_lists_one_file_per_line() -> None:
    report = _report([MatchResult("a.py", ["f", "T.g"]), MatchResult("b/c.py", ["h"])])
    assert to_text(report) == "a.py: f, T.g\nb/c.py: h"


def test_text_is_empty_without_results() -> None:
    assert to_text(_report([])) == ""


def test_markdown_table() -> None:
    md = to_markdown(_report([MatchResult("a.py", ["f", "T.g"])], subset_size=1))
    assert md.startswith("# callset report")
    assert "- Calls: `os.getenv, json.loads`" in md
    assert "- Subset size: `1`" in md
    assert "| a.py | `f`, `T.g` |" in md


def test_markdown_without_results() -> None:
    md = to_markdown(_report([]))
    assert "Subset size" not in md
    assert md.endswith("No function calls the requested set.")
