from __future__ import annotations

from .models import SearchReport


def to_text(report: SearchReport) -> str:
    lines = [f"{r.filename}: {', '.join(r.functions)}" for r in report.results]
    return "\n".join(lines)


def to_markdown(report: SearchReport) -> str:
    lines: list[str] = []
    lines.append("# callset report")
    lines.append("")
    lines.append(f"- Calls: `{', '.join(report.funcs)}`")
    if report.subset_size:
        lines.append(f"- Subset size: `{report.subset_size}`")
    lines.append(f"- Files: `{len(report.results)}`")
    lines.append(f"- Functions: `{sum(len(r.functions) for r in report.results)}`")
    lines.append("")
    if not report.results:
        lines.append("No function calls the requested set.")
        return "\n".join(lines)
    lines.append("| File | Functions |")
    lines.append("|---|---|")
    for r in report.results:
        funcs = ", ".join(f"`{f}`" for f in r.functions)
        lines.append(f"| {r.filename} | {funcs} |")
    return "\n".join(lines)
