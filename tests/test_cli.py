from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from verification.schemas import SolutionAttempt
from workbench.cli import app

runner = CliRunner()

CATALOG_PATH = Path(__file__).resolve().parents[1] / "configs" / "patterns.yaml"

SQUARE_SOLUTION = """
def solve(input):
    rows = input["rows"]
    return "\\n".join(" ".join([input["symbol"]] * rows) for _ in range(rows))
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "workbench.yaml"
    with open(path, "w") as f:
        yaml.dump({"catalog_path": str(CATALOG_PATH), "timeout_seconds": 5}, f)
    return path


@pytest.fixture
def solution(tmp_path):
    path = tmp_path / "solution.py"
    path.write_text(SQUARE_SOLUTION)
    return path


def _invoke(config_file, *args: str):
    return runner.invoke(app, ["--config", str(config_file), *args])


def test_patterns_lists_catalog(config_file):
    result = _invoke(config_file, "patterns")
    assert result.exit_code == 0
    assert "solid-square" in result.stdout
    assert "pascal-triangle" in result.stdout


def test_reference_prints_pattern(config_file):
    result = _invoke(config_file, "reference", "solid-square")
    assert result.exit_code == 0
    assert result.stdout.splitlines() == ["# # # #"] * 4

    result = _invoke(config_file, "reference", "solid-square", "--rows", "2")
    assert result.stdout.splitlines() == ["# #"] * 2


def test_unknown_pattern_exits_with_error(config_file):
    result = _invoke(config_file, "reference", "no-such-pattern")
    assert result.exit_code == 1


def test_missing_config_exits_with_error(tmp_path):
    result = runner.invoke(app, ["--config", str(tmp_path / "missing.yaml"), "patterns"])
    assert result.exit_code == 1


def test_validate(config_file, solution, tmp_path):
    result = _invoke(config_file, "validate", str(solution))
    assert result.exit_code == 0
    assert "Code validation passed" in result.stdout

    broken = tmp_path / "broken.py"
    broken.write_text("def render(input):\n    return input\n")
    result = _invoke(config_file, "validate", str(broken))
    assert result.exit_code == 1


def test_run_prints_output(config_file, solution):
    result = _invoke(config_file, "run", str(solution), "--input", '{"rows": 2, "symbol": "+"}')
    assert result.exit_code == 0
    assert "+ +\n+ +" in result.stdout


def test_run_rejects_malformed_input(config_file, solution):
    result = _invoke(config_file, "run", str(solution), "--input", "{rows: 2")
    assert result.exit_code == 1


def test_verify_passes_and_fails(config_file, solution, tmp_path):
    result = _invoke(config_file, "verify", "solid-square", str(solution))
    assert result.exit_code == 0
    assert "passed" in result.stdout

    wrong = tmp_path / "wrong.py"
    wrong.write_text('def solve(input):\n    return "#"\n')
    result = _invoke(config_file, "verify", "solid-square", str(wrong))
    assert result.exit_code == 1


def test_verify_requires_a_source(config_file):
    result = _invoke(config_file, "verify", "solid-square")
    assert result.exit_code == 1


def test_attempt_round_trips_through_verify(config_file, solution, tmp_path):
    result = _invoke(
        config_file, "attempt", str(solution), "--name", "square", "--pattern", "solid-square"
    )
    assert result.exit_code == 0
    attempt = SolutionAttempt.from_json(result.stdout.strip())
    assert attempt.name == "square"
    assert '"rows": 4' in attempt.run_input_json

    attempt_file = tmp_path / "attempt.json"
    attempt_file.write_text(attempt.to_json())
    result = _invoke(config_file, "verify", "solid-square", "--attempt", str(attempt_file))
    assert result.exit_code == 0


def test_check_catalog_is_clean(config_file):
    result = _invoke(config_file, "check-catalog")
    assert result.exit_code == 0
