"""CLI commands for parsing, previewing and applying OPX edit responses."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import typer

from .config import DEFAULT_CONFIG_NAME, OPXConfig, load_config, write_default_config
from .errors import ConfigError
from .parser import parse_opx_response
from .preprocess import preprocess_opx_text
from .preview import analyze_file_actions, format_preview
from .prompts import render_opx_instructions
from .schema import ParseOutcome, summarise_results
from .tools.documents import DocumentStore
from .tools.executor import ExecutionOptions, apply_file_actions
from .tools.paths import WorkspacePathResolver, WorkspaceRoot, build_resolver

APP_HELP = "OPX edit parser and workspace patcher."
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

app = typer.Typer(help=APP_HELP)


def _configure_logging(level: str) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("opx").setLevel(level)


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging and telemetry output."),
) -> None:
    """OPX edit parser and workspace patcher."""
    ctx.obj = {"verbose": verbose}
    if verbose:
        _configure_logging("DEBUG")


def _read_input(source: str) -> str:
    """Return the response text from ``source`` (``-`` reads stdin)."""
    if source == "-":
        return sys.stdin.read()
    path = Path(source)
    if not path.is_file():
        raise typer.BadParameter(f"Input file not found: {path}")
    return path.read_text(encoding="utf-8")


def _load(config: str) -> OPXConfig:
    try:
        return load_config(Path(config))
    except ConfigError as error:
        typer.echo(str(error), err=True)
        raise typer.Exit(code=1) from error


def _parse_root_option(value: str) -> WorkspaceRoot:
    name, sep, path = value.partition("=")
    if not sep:
        return WorkspaceRoot.from_path(value)
    if not name.strip() or not path.strip():
        raise typer.BadParameter(f"Expected NAME=PATH for --root, got {value!r}")
    return WorkspaceRoot.from_path(path.strip(), name.strip())


def _build_resolver(config: OPXConfig, roots: Optional[List[str]]) -> WorkspacePathResolver:
    if roots:
        return WorkspacePathResolver([_parse_root_option(value) for value in roots])
    return build_resolver(config.workspace_roots())


def _echo_parse_errors(outcome: ParseOutcome) -> None:
    for error in outcome.errors:
        typer.echo(f"! {error}", err=True)


@app.command()
def parse(
    source: str = typer.Argument(..., help="File holding the OPX response, or '-' for stdin."),
    preprocess: bool = typer.Option(
        False,
        "--preprocess/--no-preprocess",
        help="Normalise attribute quoting before parsing.",
    ),
) -> None:
    """Parse a response and print the recovered actions as JSON."""
    outcome = parse_opx_response(_read_input(source), preprocess=preprocess)
    typer.echo(json.dumps(outcome.model_dump(mode="json"), indent=2))
    if not outcome.ok:
        raise typer.Exit(code=1)


@app.command()
def lint(
    source: str = typer.Argument(..., help="File holding the OPX response, or '-' for stdin."),
) -> None:
    """Report attribute normalisation notes and missing edit attributes."""
    result = preprocess_opx_text(_read_input(source))
    for change in result.changes:
        typer.echo(f"- {change}")
    for issue in result.issues:
        typer.echo(f"! {issue}")
    if result.issues:
        raise typer.Exit(code=1)
    if not result.changes:
        typer.echo("No issues found.")


@app.command()
def preview(
    source: str = typer.Argument(..., help="File holding the OPX response, or '-' for stdin."),
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help="Path to the OPX configuration file."),
    root: List[str] = typer.Option(None, "--root", "-r", help="Workspace root as NAME=PATH (repeatable)."),
) -> None:
    """Show the estimated line changes for each action without applying them."""
    config_data = _load(config)
    outcome = parse_opx_response(_read_input(source), preprocess=config_data.apply.preprocess)
    _echo_parse_errors(outcome)
    data = analyze_file_actions(
        outcome.actions,
        _build_resolver(config_data, root),
        encoding=config_data.apply.encoding,
    )
    for line in format_preview(data):
        typer.echo(line)
    if not outcome.ok or data.errors or any(row.has_error for row in data.rows):
        raise typer.Exit(code=1)


@app.command()
def apply(
    ctx: typer.Context,
    source: str = typer.Argument(..., help="File holding the OPX response, or '-' for stdin."),
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help="Path to the OPX configuration file."),
    root: List[str] = typer.Option(None, "--root", "-r", help="Workspace root as NAME=PATH (repeatable)."),
    ambiguous: Optional[str] = typer.Option(
        None,
        "--ambiguous",
        help="How to treat a search block with several matches and no occurrence: fail or first.",
    ),
    preprocess: Optional[bool] = typer.Option(
        None,
        "--preprocess/--no-preprocess",
        help="Override the configured attribute normalisation step.",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print results as JSON."),
) -> None:
    """Apply every parsed action to the workspace and report per-action results."""
    config_data = _load(config)
    if not (ctx.obj or {}).get("verbose"):
        _configure_logging(config_data.logging.level)

    policy = ambiguous or config_data.apply.ambiguous_match
    if policy not in ("fail", "first"):
        raise typer.BadParameter(f"--ambiguous must be 'fail' or 'first', got {policy!r}")
    use_preprocess = config_data.apply.preprocess if preprocess is None else preprocess

    outcome = parse_opx_response(_read_input(source), preprocess=use_preprocess)
    _echo_parse_errors(outcome)
    results = apply_file_actions(
        outcome.actions,
        resolver=_build_resolver(config_data, root),
        store=DocumentStore(encoding=config_data.apply.encoding),
        options=ExecutionOptions(ambiguous_match=policy),
    )
    summary = summarise_results(results)

    if as_json:
        payload = {
            "results": [result.model_dump(mode="json") for result in results],
            "errors": list(outcome.errors),
            "summary": summary,
        }
        typer.echo(json.dumps(payload, indent=2))
    else:
        for result in results:
            status = "ok" if result.success else "failed"
            target = f"{result.path} -> {result.new_path}" if result.new_path else result.path
            typer.echo(f"[{status}] {result.action.value} {target}: {result.message}")
        typer.echo(f"Applied {summary['succeeded']}/{summary['total']} action(s).")

    if summary["failed"] or not outcome.ok:
        raise typer.Exit(code=1)


@app.command()
def instructions(
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help="Path to the OPX configuration file."),
) -> None:
    """Print the OPX authoring instructions for a model prompt."""
    config_data = _load(config)
    typer.echo(render_opx_instructions([entry.name for entry in config_data.workspace.roots]))


@app.command()
def init(
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help="Path to write the configuration file."),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing configuration file."),
) -> None:
    """Write a default configuration file."""
    config_path = Path(config)
    if config_path.exists() and not force:
        typer.echo(f"Config already exists: {config_path} (use --force to overwrite)")
        raise typer.Exit(code=1)
    write_default_config(config_path)
    typer.echo(f"Wrote {config_path}")


if __name__ == "__main__":
    app()
