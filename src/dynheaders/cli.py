"""dynheaders CLI - validate rule files and dry-run them against a URL."""

from __future__ import annotations

import json
import sys

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from dynheaders.config import DynamicHeadersConfig, get_settings
from dynheaders.engine import ApplyOutcome, HeaderRuleEngine, RenderFailure
from dynheaders.observability import configure_logging
from dynheaders.request import RequestView
from dynheaders.rules import RuleValidationError

console = Console()


def _load_engine(config_file: str | None, sink=None) -> HeaderRuleEngine:
    """Load a rules file and build the engine, exiting on failure."""
    path = config_file or get_settings().rules_file
    if not path:
        console.print("[red]No rules file given and DYNHEADERS_RULES_FILE is not set[/red]")
        sys.exit(1)

    try:
        return DynamicHeadersConfig.from_file(path).to_engine(sink=sink)
    except RuleValidationError as e:
        where = f" (rule #{e.index + 1})" if e.index is not None else ""
        console.print(f"[red]Invalid rules in {escape(str(path))}{where}:[/red] {escape(str(e))}")
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Failed to load config:[/red] {escape(str(e))}")
    sys.exit(1)


def _parse_header(raw: str) -> tuple[str, str]:
    name, sep, value = raw.partition(":")
    if not sep or not name.strip():
        raise click.BadParameter(f"expected 'Name: value', got {raw!r}")
    return name.strip(), value.strip()


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Log level (default: DYNHEADERS_LOG_LEVEL or info)",
)
@click.option("--json-logs", is_flag=True, help="Emit JSON log lines")
def main(verbose: bool, log_level: str | None, json_logs: bool):
    """dynheaders - Set request headers from regex rules."""
    settings = get_settings()
    effective_level = "debug" if verbose else (log_level or settings.log_level)
    configure_logging(effective_level, json_output=json_logs or settings.log_json)


@main.command()
@click.argument("config_file", required=False, type=click.Path())
def check(config_file: str | None):
    """Validate a rules file.

    Exits with status 1 and names the first invalid rule on failure.
    """
    engine = _load_engine(config_file)

    table = Table(title=f"{escape(engine.name)}: {len(engine)} rules")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Header", style="cyan")
    table.add_column("Target")
    table.add_column("Regex")
    table.add_column("Format")
    table.add_column("Default", style="dim")

    for index, rule in enumerate(engine.rules, start=1):
        table.add_row(
            str(index),
            escape(rule.header_name),
            escape(rule.target),
            escape(rule.pattern),
            escape(rule.template),
            escape(rule.fallback),
        )

    console.print(table)
    console.print("[green]Rules are valid.[/green]")


@main.command()
@click.argument("url")
@click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(),
    default=None,
    help="Rules file (default: DYNHEADERS_RULES_FILE)",
)
@click.option("--method", "-X", default="GET", help="HTTP method (default: GET)")
@click.option("--header", "-H", "headers", multiple=True, help="Request header 'Name: value'")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def apply(
    url: str,
    config_file: str | None,
    method: str,
    headers: tuple[str, ...],
    json_output: bool,
):
    """Run the rules against a request for URL and show the resulting headers."""
    failures: list[RenderFailure] = []
    engine = _load_engine(config_file, sink=failures.append)

    request = RequestView.from_url(
        url,
        method=method.upper(),
        headers=[_parse_header(h) for h in headers],
    )

    outcomes = [engine.apply(rule, request) for rule in engine.rules]

    if json_output:
        click.echo(
            json.dumps(
                {
                    "headers": [[k, v] for k, v in request.headers.items()],
                    "outcomes": {
                        rule.header_name: outcome.value
                        for rule, outcome in zip(engine.rules, outcomes)
                    },
                    "failures": [f.to_dict() for f in failures],
                },
                indent=2,
            )
        )
        return

    table = Table(title=escape(f"{request.method} {request.url}"))
    table.add_column("Header", style="cyan")
    table.add_column("Value")
    for name, value in request.headers.items():
        table.add_row(escape(name), escape(value))
    console.print(table)

    for rule, outcome in zip(engine.rules, outcomes):
        if outcome is ApplyOutcome.SET:
            console.print(f"[green]set[/green] {escape(rule.header_name)}")
        elif outcome is ApplyOutcome.FALLBACK:
            console.print(f"[yellow]default[/yellow] {escape(rule.header_name)}")
        else:
            console.print(f"[dim]unchanged[/dim] {escape(rule.header_name)}")


@main.command()
def version():
    """Show version information."""
    from dynheaders import __version__

    console.print(f"[bold]Version:[/bold] {__version__}")
    console.print(f"[bold]Python:[/bold] {sys.version}")


if __name__ == "__main__":
    main()
