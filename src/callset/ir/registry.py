from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol

from callset.analyze.entrypoints import discover_files
from callset.config.schema import CallsetConfig
from callset.ir.go import GoLoader
from callset.ir.models import IRPackage
from callset.ir.python import PythonLoader
from callset.util.languages import normalize_languages

log = logging.getLogger(__name__)


class Loader(Protocol):
    language: str

    def supports(self, path: Path) -> bool:
        ...

    def load(self, root: Path, files: list[Path]) -> list[IRPackage]:
        ...


def default_loaders(cfg: CallsetConfig) -> list[Loader]:
    loaders: list[Loader] = [PythonLoader(), GoLoader(include_tests=cfg.include_tests)]
    languages = set(normalize_languages(cfg.languages))
    return [loader for loader in loaders if loader.language in languages]


def load_packages(
    root: Path,
    patterns: Iterable[str],
    cfg: CallsetConfig | None = None,
    loaders: list[Loader] | None = None,
) -> list[IRPackage]:
    """Discover the sources reached by ``patterns`` and load them as packages."""
    cfg = cfg or CallsetConfig()
    if loaders is None:
        loaders = default_loaders(cfg)
    files = discover_files(root, patterns, cfg)

    grouped: dict[str, list[Path]] = {}
    for path in files:
        loader = next((ld for ld in loaders if ld.supports(path)), None)
        if loader is None:
            continue
        grouped.setdefault(loader.language, []).append(path)

    packages: list[IRPackage] = []
    for loader in loaders:
        selected = grouped.get(loader.language, [])
        if not selected:
            continue
        loaded = loader.load(root, selected)
        log.debug("Loaded %d %s package(s) from %d file(s).", len(loaded), loader.language, len(selected))
        packages.extend(loaded)
    return packages
