from __future__ import annotations

from pathlib import Path

from callset.config.validate import validate_config_paths, validate_raw_config


def test_valid_config() -> None:
    raw = {
        "include": ["src"],
        "languages": ["py", "go"],
        "funcs": ["os.getenv", "bytes.Buffer.Reset"],
        "subset_size": 2,
        "output_format": "md",
        "include_tests": False,
    }
    assert validate_raw_config(raw) == []


def test_reports_unknown_keys_and_types() -> None:
    errors = validate_raw_config(
        {
            "includes": ["src"],
            "exclude": "vendor",
            "languages": ["cobol"],
            "subset_size": -1,
            "max_files": 0,
            "output_format": "html",
        }
    )
    assert "Unknown key: includes" in errors
    assert "exclude must be a list of strings" in errors
    assert "languages contains unsupported values: cobol" in errors
    assert "subset_size must be >= 0" in errors
    assert "max_files must be a positive integer" in errors
    assert any(err.startswith("output_format must be one of") for err in errors)


def test_reports_malformed_funcs() -> None:
    errors = validate_raw_config({"funcs": ["os.getenv", "net/http"]})
    assert len(errors) == 1
    assert "Got: 'net/http'" in errors[0]


def test_validate_paths(tmp_path: Path) -> None:
    good = tmp_path / "good.yml"
    good.write_text("funcs: ['os.getenv']\n", encoding="utf-8")
    bad = tmp_path / "bad.yml"
    bad.write_text("- not a mapping\n", encoding="utf-8")
    errors = validate_config_paths([good, bad, tmp_path / "missing.yml"])
    assert errors == [f"{bad}: config must be a mapping", f"{tmp_path / 'missing.yml'}: file not found"]


def test_reports_trailing_comma_in_funcs_string() -> None:
    assert validate_raw_config({"funcs": "os.getenv, json.loads"}) == []
    errors = validate_raw_config({"funcs": "json.dumps,"})
    assert len(errors) == 1
    assert "Got: ''" in errors[0]
