from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from lgtnav import cli

runner = CliRunner()


def test_cleanup_command_lists_removed_files(workspace: Path) -> None:
    (workspace / ".vscode_callees_done").write_text("")
    (workspace / "keep.lgt").write_text("")

    result = runner.invoke(cli.app, ["cleanup", str(workspace)])

    assert result.exit_code == 0
    assert ".vscode_callees_done" in result.stdout
    assert (workspace / "keep.lgt").exists()
    assert not (workspace / ".vscode_callees_done").exists()


def test_records_command_prints_json_without_consuming(workspace: Path) -> None:
    artifact = workspace / ".vscode_callers"
    artifact.write_text(
        "Name:bar/1;File:/x/y.lgt;Line:12\nbroken line\nName:baz/0;File:/x/z.lgt;Line:3\n"
    )

    result = runner.invoke(cli.app, ["records", "callers", str(artifact)])

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload == [
        {"kind": "callers", "file": "/x/y.lgt", "line": 12, "name": "bar/1"},
        {"kind": "callers", "file": "/x/z.lgt", "line": 3, "name": "baz/0"},
    ]
    assert artifact.exists()


def test_records_command_filters_by_file(workspace: Path) -> None:
    artifact = workspace / ".vscode_metrics_results"
    artifact.write_text("File:/p/a.lgt;Line:5;Score:3\nFile:/p/b.lgt;Line:9;Score:1\n")

    result = runner.invoke(cli.app, ["records", "metrics", str(artifact), "--file", "/P/B.lgt"])

    assert result.exit_code == 0
    assert json.loads(result.stdout) == [
        {"kind": "metrics", "file": "/p/b.lgt", "line": 9, "score": 1}
    ]


def test_records_command_rejects_unknown_kind(workspace: Path) -> None:
    artifact = workspace / ".vscode_callers"
    artifact.write_text("")
    result = runner.invoke(cli.app, ["records", "bogus", str(artifact)])
    assert result.exit_code != 0
