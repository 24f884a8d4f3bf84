from __future__ import annotations

import argparse
import dataclasses
import logging
from pathlib import Path

import yaml

from callset import __version__
from callset.analyze.call_spec import CallSpec, parse_call_spec, parse_call_specs
from callset.analyze.search import find
from callset.config.loader import load_config, resolve_config_paths
from callset.config.schema import OUTPUT_FORMATS, CallsetConfig
from callset.config.validate import validate_config_paths
from callset.errors import CallSpecError, LoaderError, ResolutionError
from callset.ir.registry import load_packages
from callset.report.format_json import to_json, write_json
from callset.report.format_md import to_markdown, to_text
from callset.report.models import SCHEMA_VERSION, SearchReport
from callset.util.languages import normalize_languages
from callset.util.logging import setup_logging

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def _load(args: argparse.Namespace) -> tuple[Path, CallsetConfig]:
    repo_root = Path(args.root).resolve()
    config_paths = [Path(p) for p in args.config] if args.config else None
    return repo_root, load_config(repo_root, config_paths)


def _call_set(args: argparse.Namespace, cfg: CallsetConfig) -> list[CallSpec]:
    if args.funcs:
        return parse_call_specs(args.funcs)
    return [parse_call_spec(raw) for raw in cfg.funcs]


def _render(report: SearchReport, output_format: str) -> str:
    if output_format == "json":
        return to_json(report)
    if output_format == "md":
        return to_markdown(report)
    return to_text(report)


def cmd_find(args: argparse.Namespace) -> int:
    repo_root, cfg = _load(args)
    overrides: dict[str, object] = {}
    if args.language:
        overrides["languages"] = normalize_languages(args.language)
    if args.exclude:
        overrides["exclude"] = [*cfg.exclude, *args.exclude]
    if args.include_tests:
        overrides["include_tests"] = True
    cfg = dataclasses.replace(cfg, **overrides)

    try:
        call_set = _call_set(args, cfg)
    except CallSpecError as e:
        log.error("%s", e)
        return EXIT_USAGE
    if not call_set:
        log.error("No function calls given; use --funcs or the 'funcs' config key.")
        return EXIT_USAGE

    subset_size = args.subset if args.subset is not None else cfg.subset_size
    if subset_size < 0:
        log.error("--subset must be >= 0, got %d.", subset_size)
        return EXIT_USAGE
    workers = args.parallel_workers if args.parallel_workers is not None else cfg.parallel_workers
    patterns = args.patterns or cfg.include

    try:
        packages = load_packages(repo_root, patterns, cfg)
        results = find(packages, call_set, subset_size=subset_size, parallel_workers=workers)
    except (LoaderError, ResolutionError) as e:
        log.error("%s", e)
        return EXIT_FAILURE

    report = SearchReport(
        schema_version=SCHEMA_VERSION,
        funcs=[str(spec) for spec in call_set],
        subset_size=subset_size,
        patterns=list(patterns),
        results=results,
    )
    output_format = args.format or cfg.output_format
    text = _render(report, output_format)
    if args.output:
        out_path = Path(args.output)
        if not out_path.is_absolute():
            out_path = repo_root / out_path
        if output_format == "json":
            write_json(report, out_path)
        else:
            out_path.parent.mkdir(parents=True, exist_ok=True)
            out_path.write_text(text + "\n" if text else "", encoding="utf-8")
        log.info("Wrote %d result file(s) to %s.", len(results), out_path)
    elif text:
        print(text)
    return EXIT_OK


def cmd_config_show(args: argparse.Namespace) -> int:
    repo_root, cfg = _load(args)
    text = yaml.safe_dump(dataclasses.asdict(cfg), sort_keys=False)
    if args.output:
        out_path = Path(args.output)
        if not out_path.is_absolute():
            out_path = repo_root / out_path
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(text, encoding="utf-8")
    else:
        print(text)
    return EXIT_OK


def cmd_config_validate(args: argparse.Namespace) -> int:
    repo_root = Path(args.root).resolve()
    config_paths = resolve_config_paths(repo_root, [Path(p) for p in args.config] if args.config else None)
    if not args.config and not config_paths[0].exists():
        log.error("Config %s not found.", config_paths[0])
        return EXIT_FAILURE
    errors = validate_config_paths(config_paths)
    if errors:
        for err in errors:
            log.error("%s", err)
        return EXIT_FAILURE
    log.info("Config valid.")
    return EXIT_OK


def _add_common_args(a: argparse.ArgumentParser) -> None:
    a.add_argument("--root", default=".", help="Root directory patterns are relative to (default: .)")
    a.add_argument(
        "--config",
        action="append",
        default=None,
        help="Config file path (repeatable, root-relative or absolute)",
    )


def _add_find_args(a: argparse.ArgumentParser) -> None:
    a.add_argument(
        "patterns",
        nargs="*",
        help="Files, directories or globs to search (default: config 'include')",
    )
    a.add_argument(
        "--funcs",
        default=None,
        help="Comma separated calls, '<pkg path>.[<type name>.]<func name>'",
    )
    a.add_argument(
        "--subset",
        type=int,
        default=None,
        help="Report functions calling any SUBSET-sized combination of --funcs (0 = all of them)",
    )
    _add_common_args(a)
    a.add_argument(
        "--language",
        action="append",
        default=None,
        help="Language to load (repeatable: python, go)",
    )
    a.add_argument("--exclude", action="append", default=None, help="Exclude pattern (repeatable)")
    a.add_argument("--include-tests", action="store_true", help="Load Go _test.go files")
    a.add_argument("--format", choices=OUTPUT_FORMATS, default=None, help="Output format (default: text)")
    a.add_argument("--output", default=None, help="Write output to path instead of stdout")
    a.add_argument(
        "--parallel-workers",
        type=int,
        default=None,
        help="Thread pool size for independent package searches (0 = sequential)",
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="callset", description="Find functions calling a set of functions")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")

    sub = p.add_subparsers(dest="cmd", required=True)

    f = sub.add_parser("find", help="Find functions calling every given function")
    _add_find_args(f)
    f.set_defaults(func=cmd_find)

    c = sub.add_parser("config", help="Config utilities")
    c_sub = c.add_subparsers(dest="config_cmd", required=True)
    c_show = c_sub.add_parser("show", help="Show merged config")
    _add_common_args(c_show)
    c_show.add_argument("--output", default=None, help="Write output to path instead of stdout")
    c_show.set_defaults(func=cmd_config_show)

    c_validate = c_sub.add_parser("validate", help="Validate config file(s)")
    _add_common_args(c_validate)
    c_validate.set_defaults(func=cmd_config_validate)

    return p


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(bool(args.verbose))
    return int(args.func(args))
