from __future__ import annotations

import json
from pathlib import Path

from .models import SearchReport


def to_json(report: SearchReport) -> str:
    return json.dumps(report.to_dict(), indent=2)


def write_json(report: SearchReport, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(to_json(report), encoding="utf-8")
