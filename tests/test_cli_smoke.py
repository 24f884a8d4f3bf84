from __future__ import annotations

import json
import subprocess
import sys
from pathlib import Path

APP = """
import json
import os


def load():
    path = os.getenv("CONFIG")
    data = json.loads(path)


def env_only():
    os.getenv("HOME")
"""


def _run(*args: str) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        [sys.executable, "-m", "callset", *args],
        capture_output=True,
        text=True,
        check=False,
    )


def _project(tmp_path: Path) -> Path:
    (tmp_path / "app").mkdir()
    (tmp_path / "app" / "main.py").write_text(APP, encoding="utf-8")
    return tmp_path


def test_find_prints_matches(tmp_path: Path) -> None:
    root = _project(tmp_path)
    p = _run("find", "app", "--funcs", "os.getenv,json.loads", "--root", str(root))
    assert p.returncode == 0
    assert p.stdout.strip() == "app/main.py: load"

    p = _run("find", "app", "--funcs", "os.getenv,json.loads", "--subset", "1", "--root", str(root))
    assert p.returncode == 0
    assert p.stdout.strip() == "app/main.py: env_only, load"


def test_find_json_output_file(tmp_path: Path) -> None:
    root = _project(tmp_path)
    (root / ".callset.yml").write_text("funcs: ['os.getenv']\ninclude: ['app']\n", encoding="utf-8")
    p = _run("find", "--format", "json", "--output", "out/report.json", "--root", str(root))
    assert p.returncode == 0
    data = json.loads((root / "out" / "report.json").read_text(encoding="utf-8"))
    assert data["funcs"] == ["os.getenv"]
    assert data["results"] == [{"filename": "app/main.py", "functions": ["env_only", "load"]}]


def test_find_exit_codes(tmp_path: Path) -> None:
    root = _project(tmp_path)
    p = _run("find", "app", "--funcs", "os", "--root", str(root))
    assert p.returncode == 2
    assert "Invalid function call reference" in p.stderr

    p = _run("find", "app", "--root", str(root))
    assert p.returncode == 2

    p = _run("find", "missing", "--funcs", "os.getenv", "--root", str(root))
    assert p.returncode == 1
    assert "matched no source files" in p.stderr


def test_config_validate(tmp_path: Path) -> None:
    (tmp_path / ".callset.yml").write_text("funcs: ['os.getenv']\n", encoding="utf-8")
    assert _run("config", "validate", "--root", str(tmp_path)).returncode == 0

    (tmp_path / ".callset.yml").write_text("subset_size: -1\n", encoding="utf-8")
    p = _run("config", "validate", "--root", str(tmp_path))
    assert p.returncode == 1
    assert "subset_size must be >= 0" in p.stderr


def test_find_rejects_trailing_comma_in_config_funcs(tmp_path: Path) -> None:
    root = _project(tmp_path)
    (root / ".callset.yml").write_text("funcs: 'os.getenv,'\n", encoding="utf-8")
    p = _run("find", "app", "--root", str(root))
    assert p.returncode == 2
    assert "Invalid function call reference" in p.stderr
