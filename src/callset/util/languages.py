from __future__ import annotations

from collections.abc import Iterable

LANGUAGE_ALIASES = {
    "py": "python",
    "python": "python",
    "go": "go",
    "golang": "go",
}

LANGUAGE_EXTENSIONS = {
    "python": [".py"],
    "go": [".go"],
}

SUPPORTED_LANGUAGES = sorted(LANGUAGE_EXTENSIONS.keys())


def normalize_language(name: str) -> str:
    key = name.strip().lower()
    return LANGUAGE_ALIASES.get(key, key)


def normalize_languages(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for value in values:
        lang = normalize_language(str(value))
        if not lang or lang in seen:
            continue
        seen.add(lang)
        out.append(lang)
    return out


def extensions_for_languages(values: Iterable[str]) -> set[str]:
    exts: set[str] = set()
    for lang in normalize_languages(values):
        exts.update(LANGUAGE_EXTENSIONS.get(lang, []))
    return exts
