from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from typing import Any

import yaml

from callset.analyze.call_spec import parse_call_spec
from callset.errors import CallSpecError
from callset.util.languages import SUPPORTED_LANGUAGES, normalize_languages

from .schema import OUTPUT_FORMATS

KNOWN_KEYS = {
    "include",
    "exclude",
    "languages",
    "max_files",
    "funcs",
    "subset_size",
    "parallel_workers",
    "include_tests",
    "output_format",
}


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _validate_list_strings(raw: dict[str, Any], key: str, errors: list[str]) -> None:
    if key not in raw:
        return
    value = raw.get(key)
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        errors.append(f"{key} must be a list of strings")


def _validate_non_negative_int(raw: dict[str, Any], key: str, errors: list[str]) -> None:
    if key not in raw:
        return
    value = raw.get(key)
    if not _is_int(value):
        errors.append(f"{key} must be an integer")
    elif value < 0:
        errors.append(f"{key} must be >= 0")


def _validate_languages(raw: dict[str, Any], errors: list[str]) -> None:
    if "languages" not in raw:
        return
    value = raw.get("languages")
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        errors.append("languages must be a list of strings")
        return
    unknown = [lang for lang in normalize_languages(value) if lang not in SUPPORTED_LANGUAGES]
    if unknown:
        errors.append(f"languages contains unsupported values: {', '.join(unknown)}")


def _validate_funcs(raw: dict[str, Any], errors: list[str]) -> None:
    if "funcs" not in raw:
        return
    value = raw.get("funcs")
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        errors.append("funcs must be a string or a list of strings")
        return
    for item in value:
        try:
            parse_call_spec(item)
        except CallSpecError as e:
            errors.append(f"funcs: {e}")


def validate_raw_config(raw: dict[str, Any]) -> list[str]:
    errors: list[str] = []
    for key in raw.keys():
        if key not in KNOWN_KEYS:
            errors.append(f"Unknown key: {key}")

    _validate_list_strings(raw, "include", errors)
    _validate_list_strings(raw, "exclude", errors)
    _validate_languages(raw, errors)
    _validate_funcs(raw, errors)
    _validate_non_negative_int(raw, "subset_size", errors)
    _validate_non_negative_int(raw, "parallel_workers", errors)
    if "max_files" in raw:
        value = raw.get("max_files")
        if not _is_int(value) or value < 1:
            errors.append("max_files must be a positive integer")
    if "include_tests" in raw and not isinstance(raw.get("include_tests"), bool):
        errors.append("include_tests must be a boolean")
    if "output_format" in raw:
        value = raw.get("output_format")
        if not isinstance(value, str) or value.lower() not in OUTPUT_FORMATS:
            errors.append(f"output_format must be one of: {', '.join(OUTPUT_FORMATS)}")
    return errors


def validate_config_path(path: Path) -> list[str]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        return [f"{path}: failed to read ({exc})"]
    if not isinstance(raw, dict):
        return [f"{path}: config must be a mapping"]
    return [f"{path}: {err}" for err in validate_raw_config(raw)]


def validate_config_paths(paths: Iterable[Path]) -> list[str]:
    errors: list[str] = []
    for path in paths:
        if not path.exists():
            errors.append(f"{path}: file not found")
            continue
        errors.extend(validate_config_path(path))
    return errors
