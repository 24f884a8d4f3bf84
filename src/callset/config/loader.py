from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import yaml

from .schema import OUTPUT_FORMATS, CallsetConfig

log = logging.getLogger(__name__)

CONFIG_FILE = ".callset.yml"


def _load_raw_config(path: Path) -> dict[str, Any]:
    try:
        return yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        log.warning("Failed to load %s (%s). Skipping.", path, e)
        return {}


def _get_list(raw: dict[str, Any], key: str) -> list[str] | None:
    if key not in raw:
        return None
    v = raw.get(key)
    if isinstance(v, list):
        return [str(x) for x in v]
    if isinstance(v, str) and key == "funcs":
        return [part.strip() for part in v.split(",")]
    return None


def _get_int(raw: dict[str, Any], key: str, default: int) -> int:
    if key not in raw:
        return default
    v = raw.get(key)
    if isinstance(v, bool):
        return default
    try:
        return int(v)
    except (TypeError, ValueError):
        return default


def _get_bool(raw: dict[str, Any], key: str, default: bool) -> bool:
    if key not in raw:
        return default
    v = raw.get(key)
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float)):
        return bool(v)
    if isinstance(v, str):
        if v.strip().lower() in {"true", "yes", "1", "on"}:
            return True
        if v.strip().lower() in {"false", "no", "0", "off"}:
            return False
    return default


def _merge_config(
    base: CallsetConfig,
    raw: dict[str, Any],
    include_set: bool,
    exclude_set: bool,
) -> tuple[CallsetConfig, bool, bool]:
    include = base.include
    raw_include = _get_list(raw, "include")
    if raw_include is not None:
        include = [*include, *raw_include] if include_set else raw_include
        include_set = True

    exclude = base.exclude
    raw_exclude = _get_list(raw, "exclude")
    if raw_exclude is not None:
        exclude = [*exclude, *raw_exclude] if exclude_set else raw_exclude
        exclude_set = True

    languages = _get_list(raw, "languages")
    raw_funcs = _get_list(raw, "funcs")
    funcs = [*base.funcs, *raw_funcs] if raw_funcs is not None else base.funcs

    output_format = base.output_format
    if "output_format" in raw:
        value = str(raw.get("output_format") or "").strip().lower()
        if value in OUTPUT_FORMATS:
            output_format = value
        else:
            log.warning("Unknown output_format %r; keeping %s.", raw.get("output_format"), output_format)

    return (
        CallsetConfig(
            include=include,
            exclude=exclude,
            languages=languages if languages is not None else base.languages,
            max_files=_get_int(raw, "max_files", base.max_files),
            funcs=funcs,
            subset_size=_get_int(raw, "subset_size", base.subset_size),
            parallel_workers=_get_int(raw, "parallel_workers", base.parallel_workers),
            include_tests=_get_bool(raw, "include_tests", base.include_tests),
            output_format=output_format,
        ),
        include_set,
        exclude_set,
    )


def resolve_config_paths(repo_root: Path, config_paths: Iterable[Path] | None) -> list[Path]:
    if config_paths is None:
        return [repo_root / CONFIG_FILE]
    resolved: list[Path] = []
    for path in config_paths:
        resolved.append(path if path.is_absolute() else repo_root / path)
    return resolved


def load_config(repo_root: Path, config_paths: Iterable[Path] | None = None) -> CallsetConfig:
    paths = resolve_config_paths(repo_root, config_paths)
    if config_paths is None and not paths[0].exists():
        return CallsetConfig()

    cfg = CallsetConfig()
    include_set = False
    exclude_set = False
    for path in paths:
        if not path.exists():
            log.warning("Config %s not found; skipping.", path)
            continue
        raw = _load_raw_config(path)
        if not isinstance(raw, dict):
            log.warning("Config %s is not a mapping; skipping.", path)
            continue
        cfg, include_set, exclude_set = _merge_config(cfg, raw, include_set, exclude_set)
    return cfg
