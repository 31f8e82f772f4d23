"""CLI interface for validating, running and verifying pattern solutions."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from tqdm import tqdm

from patterns.catalog import get_pattern, load_catalog
from patterns.formula import FormulaEvaluator, FormulaFault
from patterns.generator import PatternGenerator
from verification.orchestrator import canonical_input_json
from verification.schemas import (
    ComparisonResult,
    ComparisonStatus,
    ExecutionOutcome,
    PatternDefinition,
    SolutionAttempt,
)
from workbench.config import WorkbenchConfig, load_config

app = typer.Typer(help="PatternLab verification CLI")


@app.callback()
def main(
    ctx: typer.Context,
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to workbench YAML config"),
) -> None:
    """Load configuration shared by every command."""
    if config_path is None:
        config = WorkbenchConfig()
    else:
        try:
            config = load_config(config_path)
        except (FileNotFoundError, ValueError) as e:
            typer.secho(f"❌ {e}", fg=typer.colors.RED, err=True)
            raise typer.Exit(1)
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = config


def _config(ctx: typer.Context) -> WorkbenchConfig:
    return ctx.obj if isinstance(ctx.obj, WorkbenchConfig) else WorkbenchConfig()


def _catalog(config: WorkbenchConfig) -> list[PatternDefinition]:
    try:
        return load_catalog(config.catalog_path)
    except (FileNotFoundError, ValueError) as e:
        typer.secho(f"❌ {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)


def _pattern(config: WorkbenchConfig, pattern_id: str) -> PatternDefinition:
    try:
        return get_pattern(_catalog(config), pattern_id)
    except KeyError:
        typer.secho(f"❌ Pattern not found: {pattern_id}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)


def _read_source(source: str) -> str:
    path = Path(source)
    if not path.exists():
        typer.secho(f"❌ Source file not found: {source}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    return path.read_text(encoding="utf-8")


def _parse_input(raw: Optional[str]) -> object:
    if raw is None or not raw.strip():
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        typer.secho(f"❌ InvalidRunInput: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)


def _print_outcome(outcome: ExecutionOutcome) -> None:
    for line in outcome.logs:
        typer.echo(f"  │ {line}")
    if outcome.success:
        typer.secho("✅ Run succeeded", fg=typer.colors.GREEN)
        typer.echo(outcome.output if outcome.output else "(no output)")
    elif outcome.error is not None:
        typer.secho(
            f"❌ {outcome.error.kind.value}: {outcome.error.message}",
            fg=typer.colors.RED,
            err=True,
        )


def _print_comparison(result: ComparisonResult) -> None:
    if result.validation is not None:
        for warning in result.validation.warnings:
            typer.secho(f"⚠️  {warning}", fg=typer.colors.YELLOW)
        for error in result.validation.errors:
            typer.secho(f"❌ {error}", fg=typer.colors.RED, err=True)

    for line in result.diff:
        mark = "✓" if line.equal else "✗"
        color = typer.colors.GREEN if line.equal else typer.colors.RED
        typer.secho(f"  {mark} {line.index:>3} │ {line.expected}", fg=color)
        if not line.equal:
            typer.secho(f"        │ {line.actual}", fg=typer.colors.YELLOW)

    if result.status == ComparisonStatus.PASS:
        typer.secho("\n✅ Pattern test passed!", fg=typer.colors.GREEN)
    elif result.status == ComparisonStatus.FAIL:
        typer.secho("\n⚠️  Pattern test failed - check the diff", fg=typer.colors.YELLOW)
    elif result.error is not None:
        typer.secho(
            f"\n❌ {result.error.kind.value}: {result.error.message}",
            fg=typer.colors.RED,
            err=True,
        )


@app.command()
def patterns(ctx: typer.Context) -> None:
    """List the patterns in the catalog."""
    catalog = _catalog(_config(ctx))
    typer.secho(f"\n📁 Found {len(catalog)} pattern(s):\n", fg=typer.colors.BLUE)
    for pattern in catalog:
        level = pattern.difficulty or "-"
        typer.echo(f"  {pattern.id}")
        typer.echo(
            f"    {pattern.name} | {pattern.logic.archetype.value} | rows: {pattern.config.rows} | {level}"
        )


@app.command()
def reference(
    ctx: typer.Context,
    pattern_id: str = typer.Argument(..., help="Pattern id from the catalog"),
    rows: Optional[int] = typer.Option(None, "--rows", min=1, help="Override the row count"),
) -> None:
    """Print the reference output of a pattern."""
    pattern = _pattern(_config(ctx), pattern_id)
    for line in PatternGenerator().generate(pattern, rows):
        typer.echo(line)


@app.command()
def validate(
    ctx: typer.Context,
    source: str = typer.Argument(..., help="Path to the solution source file"),
) -> None:
    """Run the static checks on a solution."""
    summary = _config(ctx).build_verifier().validate(_read_source(source))
    for warning in summary.warnings:
        typer.secho(f"⚠️  {warning}", fg=typer.colors.YELLOW)
    for error in summary.errors:
        typer.secho(f"❌ {error}", fg=typer.colors.RED, err=True)
    if not summary.is_valid:
        raise typer.Exit(1)
    typer.secho("✅ Code validation passed", fg=typer.colors.GREEN)


@app.command()
def run(
    ctx: typer.Context,
    source: str = typer.Argument(..., help="Path to the solution source file"),
    input_json: Optional[str] = typer.Option(None, "--input", help="Run input as JSON"),
) -> None:
    """Execute a solution once in the sandbox, without comparison."""
    code = _read_source(source)
    run_input = _parse_input(input_json)
    verifier = _config(ctx).build_verifier()
    outcome = asyncio.run(verifier.run_once(code, run_input))
    _print_outcome(outcome)
    if not outcome.success:
        raise typer.Exit(1)


@app.command()
def verify(
    ctx: typer.Context,
    pattern_id: str = typer.Argument(..., help="Pattern id from the catalog"),
    source: Optional[str] = typer.Argument(None, help="Path to the solution source file"),
    input_json: Optional[str] = typer.Option(None, "--input", help="Run input as JSON"),
    attempt_path: Optional[str] = typer.Option(None, "--attempt", help="Saved attempt JSON to verify"),
) -> None:
    """Verify a solution against the pattern's reference output."""
    config = _config(ctx)
    pattern = _pattern(config, pattern_id)

    if attempt_path is not None:
        try:
            attempt = SolutionAttempt.from_json(Path(attempt_path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            typer.secho(f"❌ Invalid attempt file: {e}", fg=typer.colors.RED, err=True)
            raise typer.Exit(1)
        code = attempt.source_code
        run_input = _parse_input(input_json or attempt.run_input_json)
    elif source is not None:
        code = _read_source(source)
        run_input = _parse_input(input_json)
    else:
        typer.secho("❌ Provide a source file or --attempt", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    result = asyncio.run(config.build_verifier().verify(pattern, code, run_input))
    _print_comparison(result)
    if result.status != ComparisonStatus.PASS:
        raise typer.Exit(1)


@app.command()
def attempt(
    ctx: typer.Context,
    source: str = typer.Argument(..., help="Path to the solution source file"),
    name: Optional[str] = typer.Option(None, "--name", help="Label for the attempt"),
    pattern_id: Optional[str] = typer.Option(None, "--pattern", help="Use this pattern's canonical input"),
    input_json: Optional[str] = typer.Option(None, "--input", help="Run input as JSON"),
) -> None:
    """Emit a solution attempt record as JSON."""
    code = _read_source(source)
    if input_json is not None:
        _ = _parse_input(input_json)
        run_input = input_json
    elif pattern_id is not None:
        run_input = canonical_input_json(_pattern(_config(ctx), pattern_id))
    else:
        run_input = ""
    typer.echo(SolutionAttempt.create(code, run_input, name).to_json())


@app.command()
def check_catalog(ctx: typer.Context) -> None:
    """Render every catalog pattern and report formula faults."""
    catalog = _catalog(_config(ctx))
    faults: list[tuple[str, FormulaFault]] = []
    current = {"id": ""}
    evaluator = FormulaEvaluator(sink=lambda fault: faults.append((current["id"], fault)))
    generator = PatternGenerator(evaluator)

    for pattern in tqdm(catalog, desc="Patterns", unit="pattern"):
        current["id"] = pattern.id
        lines = generator.generate(pattern)
        if not any(lines):
            faults.append(
                (pattern.id, FormulaFault(pattern.logic.fill_formula, {}, "renders no output"))
            )

    if not faults:
        typer.secho(f"✅ All {len(catalog)} patterns render cleanly", fg=typer.colors.GREEN)
        return

    broken = sorted({pattern_id for pattern_id, _ in faults})
    reported: set[tuple[str, str, str]] = set()
    for pattern_id, fault in faults:
        key = (pattern_id, fault.expression, fault.reason)
        if key in reported:
            continue
        reported.add(key)
        typer.secho(f"❌ {pattern_id}: {fault.expression!r} - {fault.reason}", fg=typer.colors.RED, err=True)
    typer.secho(f"\n⚠️  {len(broken)} pattern(s) with faults", fg=typer.colors.YELLOW)
    raise typer.Exit(1)


if __name__ == "__main__":
    app()
