from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

SCHEMA_VERSION = 1


@dataclass(frozen=True)
class MatchResult:
    filename: str
    functions: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class SearchReport:
    schema_version: int
    funcs: list[str]
    subset_size: int
    patterns: list[str]
    results: list[MatchResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
