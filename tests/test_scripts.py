from pathlib import Path

import pytest
from typer.testing import CliRunner

from tmtrace.scripts import app
from tmtrace.turing_machine import TM_FOLDER

runner = CliRunner()

SCAN = """\
tape: 1011
tape_offset: 0
alphabet: 01
start_state: q0
accepted_states: q0
rule: q0 any none r q0
"""


@pytest.fixture
def scan_file(tmp_path: Path) -> Path:
    path = tmp_path / "scan.tm"
    path.write_text(SCAN)
    return path


def test_run_prints_trace_and_verdict(scan_file: Path):
    result = runner.invoke(app, ["run", str(scan_file), "--plain"])
    assert result.exit_code == 0
    assert "1011:q0\n^head\n" in result.output
    assert "1011 :q0\n    ^head\n" in result.output
    assert result.output.count("^head") == 5
    assert "Accepted in state 'q0' after 4 steps." in result.output


def test_run_highlighted_trace_has_same_text(scan_file: Path):
    result = runner.invoke(app, ["run", str(scan_file)])
    assert result.exit_code == 0
    assert "1011 :q0\n    ^head\n" in result.output


def test_run_defaults_to_goal_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    tmp_path.joinpath("goal.tm").write_text(SCAN.replace("accepted_states: q0", "accepted_states: q1"))
    monkeypatch.chdir(tmp_path)
    result = runner.invoke(app, ["run", "--quiet"])
    assert result.exit_code == 0
    assert "^head" not in result.output
    assert "Rejected in state 'q0' after 4 steps." in result.output


def test_run_missing_file(tmp_path: Path):
    result = runner.invoke(app, ["run", str(tmp_path / "missing.tm")])
    assert result.exit_code == 1
    assert "Could not read machine file" in result.output


def test_run_malformed_file(tmp_path: Path):
    path = tmp_path / "bad.tm"
    path.write_text(SCAN + "rule: q0 any none r\n")
    result = runner.invoke(app, ["run", str(path)])
    assert result.exit_code == 1
    assert "formatted incorrectly" in result.output
    assert "Line 7" in result.output
    assert "^head" not in result.output


def test_run_step_limit(tmp_path: Path):
    path = tmp_path / "loop.tm"
    path.write_text(SCAN.replace(" r q0", " s q0"))
    result = runner.invoke(app, ["run", str(path), "--quiet", "--max-steps", "10"])
    assert result.exit_code == 1
    assert "did not halt within 10 steps" in result.output


def test_run_example():
    result = runner.invoke(app, ["run", "--example", "increment", "-q"])
    assert result.exit_code == 0
    assert "Accepted in state 'done' after 8 steps." in result.output


def test_run_unknown_example():
    result = runner.invoke(app, ["run", "--example", "nope"])
    assert result.exit_code == 1
    assert "Could not read bundled machine 'nope'" in result.output


def test_check_bundled_machines():
    result = runner.invoke(app, ["check", str(TM_FOLDER)])
    assert result.exit_code == 0
    assert "All 3 machine files loaded." in result.output
    assert "Halting states: done" in result.output


def test_check_reports_broken_files(tmp_path: Path, scan_file: Path):
    tmp_path.joinpath("broken.tm").write_text("tape_offset: x\n")
    tmp_path.joinpath("notes.txt").write_text("rule: nothing")
    hidden = tmp_path / ".hidden"
    hidden.mkdir()
    hidden.joinpath("skipped.tm").write_text("tape_offset: x\n")
    result = runner.invoke(app, ["check", str(tmp_path)])
    assert result.exit_code == 1
    assert "1 of 2 machine files could not be loaded." in result.output


def test_check_without_machine_files(tmp_path: Path):
    result = runner.invoke(app, ["check", str(tmp_path)])
    assert result.exit_code == 1
    assert "Could not find any .tm files." in result.output


@pytest.mark.parametrize("args", [["--plain"], []])
def test_run_keeps_colons_in_trace(tmp_path: Path, args: list[str]):
    path = tmp_path / "colons.tm"
    path.write_text("tape: :smile\nalphabet: :smile\nstart_state: ok:\naccepted_states: ok:\n")
    result = runner.invoke(app, ["run", str(path), *args])
    assert result.exit_code == 0
    assert ":smile:ok:\n^head\n" in result.output
    assert "Accepted in state 'ok:' after 0 steps." in result.output
