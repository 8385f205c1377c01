from __future__ import annotations

import argparse
import importlib.util
import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

from whodare.remote import RemoteFetchError
from whodare.storage import AggregationStore, EditDelta, PersistenceCoordinator


def load_diag(name: str):
    module_path = Path(__file__).resolve().parents[1] / "scripts" / "whodare_diag.py"
    spec = importlib.util.spec_from_file_location(name, module_path)
    assert spec and spec.loader
    diag = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(diag)
    return diag


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in list(os.environ):
        if name.startswith("WHODARE_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)


def seed_workspace(workspace: Path, *, encrypt: bool = True) -> Path:
    store = AggregationStore(clock=lambda: 5_000, day_of=lambda _ts: "2025-02-02")
    store.create_empty("ws-cli")
    store.apply_event("app.py", EditDelta(origin="human", timestamp=5_000, lines_added=1, chars_added=10))
    store.apply_event("app.py", EditDelta(origin="ai", timestamp=5_001, lines_added=3, chars_added=90))
    data = store.snapshot()
    return PersistenceCoordinator(workspace, lambda: data, encrypt=encrypt).flush()


def test_diagnostics_cli_reports_missing_stats(tmp_path: Path) -> None:
    script = Path("scripts/whodare_diag.py")
    repo_root = Path(__file__).resolve().parents[1]
    env = {key: value for key, value in os.environ.items() if not key.startswith("WHODARE_")}
    env["PYTHONPATH"] = f"{repo_root / 'src'}" + os.pathsep + env.get("PYTHONPATH", "")
    process = subprocess.run(
        [sys.executable, str(repo_root / script), "show", "--workspace", str(tmp_path)],
        cwd=str(tmp_path),
        capture_output=True,
        text=True,
        env=env,
    )
    assert process.returncode == 1
    assert "No stats file at" in process.stdout


def test_show_summarizes_encrypted_stats(tmp_path: Path, capsys) -> None:
    seed_workspace(tmp_path)
    diag = load_diag("whodare_diag_show_module")

    diag.cmd_show(argparse.Namespace(workspace=str(tmp_path), json=False))

    payload = json.loads(capsys.readouterr().out)
    assert payload["workspace_id"] == "ws-cli"
    assert payload["status"] == "whoDare: Human 25% | AI 75%"
    assert payload["events"] == 2
    assert payload["days_tracked"] == 1
    assert payload["files"][0]["path"] == "app.py"
    assert payload["files"][0]["ai_lines"] == 3


def test_show_json_prints_wire_record(tmp_path: Path, capsys) -> None:
    seed_workspace(tmp_path)
    diag = load_diag("whodare_diag_show_json_module")

    diag.cmd_show(argparse.Namespace(workspace=str(tmp_path), json=True))

    payload = json.loads(capsys.readouterr().out)
    assert payload["workspaceId"] == "ws-cli"
    assert payload["sessionStats"]["totalAiLines"] == 3


def test_show_reports_undecodable_file(tmp_path: Path, monkeypatch, capsys) -> None:
    seed_workspace(tmp_path)
    monkeypatch.setenv("WHODARE_PASSWORD", "wrong")
    diag = load_diag("whodare_diag_bad_key_module")

    with pytest.raises(SystemExit) as excinfo:
        diag.cmd_show(argparse.Namespace(workspace=str(tmp_path), json=False))

    assert excinfo.value.code == 1
    output = capsys.readouterr().out
    assert "Cannot load stats" in output
    assert "wrong" not in output


def test_convert_to_plaintext_and_back(tmp_path: Path, capsys) -> None:
    path = seed_workspace(tmp_path)
    diag = load_diag("whodare_diag_convert_module")

    diag.cmd_convert(argparse.Namespace(workspace=str(tmp_path), to="plaintext"))
    result = json.loads(capsys.readouterr().out)

    assert result == {"path": str(path), "mode": "plaintext"}
    document = json.loads(path.read_text(encoding="utf-8"))
    assert "encrypted" not in document
    assert document["files"]["app.py"]["aiLines"] == 3

    diag.cmd_convert(argparse.Namespace(workspace=str(tmp_path), to="encrypted"))
    capsys.readouterr()
    assert json.loads(path.read_text(encoding="utf-8"))["encrypted"] is True


def test_remote_failure_is_reported(monkeypatch, capsys) -> None:
    diag = load_diag("whodare_diag_remote_module")

    def fake_fetch(url, **_kwargs):
        raise RemoteFetchError(f"Could not find stats for {url}", branches=("main", "master"))

    monkeypatch.setattr(diag, "fetch_and_decode", fake_fetch)

    with pytest.raises(SystemExit):
        diag.cmd_remote(argparse.Namespace(url="https://github.com/octo/widgets", json=False))

    assert "Remote stats unavailable" in capsys.readouterr().out


def test_parser_requires_convert_target() -> None:
    diag = load_diag("whodare_diag_parser_module")
    parser = diag.build_parser()

    args = parser.parse_args(["convert", "--to", "plaintext"])
    assert args.workspace == "."
    assert args.func is diag.cmd_convert

    with pytest.raises(SystemExit):
        parser.parse_args(["convert"])
