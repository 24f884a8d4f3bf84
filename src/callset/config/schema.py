from __future__ import annotations

from dataclasses import dataclass, field

OUTPUT_FORMATS = ("text", "json", "md")


@dataclass(frozen=True)
class CallsetConfig:
    include: list[str] = field(default_factory=lambda: ["."])
    exclude: list[str] = field(
        default_factory=lambda: [
            ".git",
            ".venv",
            "venv",
            ".tox",
            ".eggs",
            "__pycache__",
            "node_modules",
            "build",
            "dist",
        ]
    )
    languages: list[str] = field(default_factory=lambda: ["python", "go"])
    max_files: int = 5000
    funcs: list[str] = field(default_factory=list)
    subset_size: int = 0
    parallel_workers: int = 0
    include_tests: bool = False
    output_format: str = "text"
