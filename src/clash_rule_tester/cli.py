"""Clash rule tester CLI."""

import asyncio
import json
import logging
from dataclasses import asdict
from pathlib import Path

import typer
from rich.console import Console
from rich.json import JSON
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from clash_rule_tester import __version__
from clash_rule_tester.config import Settings, get_settings
from clash_rule_tester.providers.store import ProviderError
from clash_rule_tester.rules.engine import MatchResult, RuleEngine
from clash_rule_tester.schemas.config import ClashConfig, ConfigShapeError, load_config

app = typer.Typer(
    name="clash-rule-tester",
    help="Clash Rule Tester - check which rule and policy a domain hits",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)

# Exit codes for the test command
EXIT_ERROR = 1
EXIT_NO_MATCH = 2


def run_async(coro):
    """Run an async function synchronously."""
    return asyncio.run(coro)


def _configure_logging(level: str) -> None:
    """Send log records to stderr through rich."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=error_console, show_path=False)],
        force=True,
    )


def _create_engine(settings: Settings) -> RuleEngine:
    """Build the engine used by the test command."""
    return RuleEngine.from_settings(settings)


def _print_result(result: MatchResult) -> None:
    """Print a match result panel."""
    lines = [f"[bold]Domain:[/bold] {escape(result.domain)}"]
    if result.resolved_address:
        lines.append(f"[bold]Resolved IP:[/bold] {escape(result.resolved_address)}")
    lines.append(f"[bold]Matching Rule:[/bold] [cyan]{escape(result.matching_rule)}[/cyan]")
    if result.sub_matching_rule:
        sub_rule = escape(result.sub_matching_rule)
        lines.append(f"[bold]Provider Rule:[/bold] [cyan]{sub_rule}[/cyan]")
    lines.append(f"[bold]Final Policy:[/bold] [green]{escape(result.final_policy)}[/green]")
    console.print(Panel("\n".join(lines), title="Result", expand=False))


async def _evaluate_all(
    engine: RuleEngine,
    config: ClashConfig,
    domains: list[str],
) -> list[MatchResult | None | BaseException]:
    """Evaluate several domains concurrently against one shared provider store."""
    try:
        return await asyncio.gather(
            *(engine.evaluate(config, domain) for domain in domains),
            return_exceptions=True,
        )
    finally:
        await engine.aclose()


@app.command("test")
def run_test(
    config_path: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        readable=True,
        help="Clash configuration file (YAML)",
    ),
    domains: list[str] = typer.Argument(..., help="Domain(s) to test"),
    as_json: bool = typer.Option(False, "--json", help="Print results as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """Test which rule and policy each domain matches."""
    settings = get_settings()
    _configure_logging("DEBUG" if verbose else settings.log_level)

    try:
        config = load_config(config_path)
    except ConfigShapeError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(EXIT_ERROR) from e
    except (OSError, UnicodeDecodeError) as e:
        error_console.print(f"[red]Error:[/red] Cannot read {config_path}: {e}")
        raise typer.Exit(EXIT_ERROR) from e

    engine = _create_engine(settings)
    outcomes = run_async(_evaluate_all(engine, config, domains))

    exit_code = 0
    report = []
    for domain, outcome in zip(domains, outcomes, strict=True):
        if isinstance(outcome, (ProviderError, ConfigShapeError, ValueError)):
            error_console.print(f"[red]Error:[/red] {domain}: {outcome}")
            report.append({"domain": domain, "matched": False, "error": str(outcome)})
            exit_code = EXIT_ERROR
        elif isinstance(outcome, BaseException):
            raise outcome
        elif outcome is None:
            if not as_json:
                console.print(f"[yellow]No rule matched for domain: {domain}[/yellow]")
            report.append({"domain": domain, "matched": False, "result": None})
            exit_code = exit_code or EXIT_NO_MATCH
        else:
            if not as_json:
                _print_result(outcome)
            report.append({"domain": domain, "matched": True, "result": asdict(outcome)})

    if as_json:
        console.print(JSON(json.dumps(report, indent=2)))

    if exit_code:
        raise typer.Exit(exit_code)


@app.command()
def serve(
    host: str = typer.Option(None, "--host", help="Bind address (default from settings)"),
    port: int = typer.Option(None, "--port", help="Bind port (default from settings)"),
):
    """Start the HTTP API server."""
    import uvicorn

    settings = get_settings()
    _configure_logging(settings.log_level)

    config = uvicorn.Config(
        "clash_rule_tester.main:create_app",
        factory=True,
        host=host or settings.api_host,
        port=port or settings.api_port,
        log_level=settings.log_level.lower(),
    )
    console.print(f"[green]API server starting on {config.host}:{config.port}[/green]")
    uvicorn.Server(config).run()


@app.command()
def version():
    """Show version information."""
    console.print(f"Clash Rule Tester version {__version__}")


@app.command()
def show_config():
    """Show current configuration."""
    settings = get_settings()

    table = Table(title="Clash Rule Tester Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for field_name in Settings.model_fields:
        table.add_row(field_name, str(getattr(settings, field_name)))

    console.print(table)
