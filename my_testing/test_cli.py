"""Tests for the command-line entry point."""

from pathlib import Path

from payloadCalculator.__main__ import main

SCENARIO = Path(__file__).resolve().parent.parent / "scenarios" / "kerbin_two_stage.yaml"


def test_cli_prints_breakdown(capsys):
    assert main([str(SCENARIO), "--mode", "pessimistic", "--periapsis", "100000", "--apoapsis", "100000"]) == 0
    out = capsys.readouterr().out
    assert "Estimated payload" in out
    assert "100.0 x 100.0 km" in out


def test_cli_saves_plots(tmp_path):
    path = tmp_path / "budget.png"
    assert main([str(SCENARIO), "--plot", str(path)]) == 0
    assert path.exists()
    assert (tmp_path / "budget_ascent.png").exists()


def test_cli_reports_failure(capsys):
    assert main([str(SCENARIO), "--periapsis", "1e12"]) == 1
    assert "ORBIT_GEOMETRY_INVALID" in capsys.readouterr().out


def test_cli_missing_file(tmp_path):
    assert main([str(tmp_path / "missing.yaml")]) == 2
