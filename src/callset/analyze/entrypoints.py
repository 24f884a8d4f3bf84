from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from pathlib import Path, PurePosixPath

import pathspec

from callset.config.schema import CallsetConfig
from callset.errors import LoaderError
from callset.util.languages import extensions_for_languages

log = logging.getLogger(__name__)

_GLOB_CHARS = set("*?[")
IGNORE_FILE = ".callsetignore"


def _is_supported_file(p: Path, extensions: set[str]) -> bool:
    return p.is_file() and p.suffix.lower() in extensions


def _has_glob(pattern: str) -> bool:
    return any(ch in pattern for ch in _GLOB_CHARS)


def _expand_glob_patterns(pattern: str) -> list[str]:
    patterns = [pattern]
    if "**/" in pattern:
        patterns.append(pattern.replace("**/", ""))
    if pattern.endswith("/**"):
        patterns.append(pattern[:-3] or ".")
    seen: list[str] = []
    for item in patterns:
        if item and item not in seen:
            seen.append(item)
    return seen


def _normalize_pattern(pattern: str) -> str:
    p = pattern.strip()
    if not p or p.startswith("#"):
        return ""
    p = p.replace("\\", "/")
    if p.startswith("./"):
        p = p[2:]
    p = p.lstrip("/")
    if p in {"", "."}:
        return "**"
    if p.endswith("/"):
        return f"{p}**"
    if not _has_glob(p) and Path(p).suffix == "":
        return f"{p}/**"
    return p


def _normalize_patterns(patterns: Iterable[str]) -> list[str]:
    out: list[str] = []
    for pattern in patterns:
        norm = _normalize_pattern(str(pattern))
        if norm and norm not in out:
            out.append(norm)
    return out


def _matches(rel: PurePosixPath, pattern: str) -> bool:
    if rel.match(pattern):
        return True
    if pattern.endswith("/**"):
        base = pattern[:-3]
        return any(PurePosixPath(*rel.parts[:i]).match(base) for i in range(1, len(rel.parts)))
    return False


def _build_ignore_matcher(repo_root: Path) -> Callable[[PurePosixPath], bool]:
    ignore_path = repo_root / IGNORE_FILE
    if not ignore_path.exists():
        return lambda _p: False
    try:
        lines = ignore_path.read_text(encoding="utf-8").splitlines()
    except OSError as e:
        log.warning("Failed to read %s (%s). Skipping.", ignore_path, e)
        return lambda _p: False
    spec = pathspec.PathSpec.from_lines("gitignore", lines)

    def match_spec(rel: PurePosixPath) -> bool:
        return bool(spec.match_file(rel.as_posix()))

    return match_spec


def _build_included_predicate(repo_root: Path, cfg: CallsetConfig) -> Callable[[Path], bool]:
    exclude_patterns = _normalize_patterns(cfg.exclude)
    ignore_matcher = _build_ignore_matcher(repo_root)
    root = repo_root.resolve()

    def included(p: Path) -> bool:
        try:
            rel = PurePosixPath(p.resolve().relative_to(root).as_posix())
        except ValueError:
            return False
        if any(_matches(rel, pattern) for pattern in exclude_patterns):
            return False
        return not ignore_matcher(rel)

    return included


def _pattern_matches(repo_root: Path, pattern: str) -> list[Path]:
    if _has_glob(pattern):
        matches: list[Path] = []
        for glob_pattern in _expand_glob_patterns(pattern):
            matches.extend(sorted(repo_root.glob(glob_pattern)))
        return matches
    return [repo_root / pattern]


def discover_files(repo_root: Path, patterns: Iterable[str], cfg: CallsetConfig) -> list[Path]:
    """Source files reachable from ``patterns`` (files, directories or globs under ``repo_root``).

    A pattern that reaches no source file is an error.
    """
    included = _build_included_predicate(repo_root, cfg)
    extensions = extensions_for_languages(cfg.languages)
    seen: set[Path] = set()
    files: list[Path] = []
    for raw in patterns:
        pattern = str(raw).strip().replace("\\", "/")
        if not pattern:
            continue
        if pattern.startswith("./"):
            pattern = pattern[2:]
        pattern = pattern.lstrip("/") or "."
        reached = False
        for match in _pattern_matches(repo_root, pattern):
            if match.is_dir():
                candidates = sorted(p for ext in extensions for p in match.rglob(f"*{ext}"))
            else:
                candidates = [match]
            for p in candidates:
                if not _is_supported_file(p, extensions) or not included(p):
                    continue
                reached = True
                rp = p.resolve()
                if rp in seen:
                    continue
                seen.add(rp)
                files.append(p)
                if len(files) >= cfg.max_files:
                    log.warning("Reached max_files=%d; remaining files are skipped.", cfg.max_files)
                    return files
        if not reached:
            raise LoaderError(f"Pattern '{raw}' matched no source files")
    return files
