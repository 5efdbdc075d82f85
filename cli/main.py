"""
GATHERLY - Main CLI Application

Command-line interface for running and inspecting the server.
"""
import asyncio
import json
from enum import Enum
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config import Config, get_config
from core.bootstrap import BootstrapSequencer
from core.errors import BootstrapAbortedError, ConfigurationError
from core.health import HealthReport
from di.container import build_registry
from observability.logging import LoggingConfig, get_logger, setup_logging

# Initialize app
app = typer.Typer(
    name="gatherly",
    help="Gatherly - social events server",
    add_completion=False
)

console = Console()
logger = get_logger("gatherly.cli")


class OutputFormat(str, Enum):
    """Output format options."""
    JSON = "json"
    TABLE = "table"


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", "-h", help="Server host (default: HOST or 0.0.0.0)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Server port (default: PORT or 3000)"),
):
    """Connect every subsystem, then start the HTTP server."""
    from api.server import serve as serve_forever

    try:
        config = get_config()
        console.print(Panel.fit(
            f"[bold blue]Gatherly server[/bold blue] ({config.env.value})",
            border_style="blue"
        ))
        asyncio.run(serve_forever(config, host=host, port=port))
    except BootstrapAbortedError as e:
        console.print(f"[red]✗ Startup aborted: {e.message}[/red]")
        for failure in e.outcome.failures:
            console.print(f"  [red]{failure.subsystem}[/red] ({failure.criticality.value}): {failure.error}")
        raise typer.Exit(1)
    except ConfigurationError as e:
        console.print(f"[red]Invalid configuration: {e.message}[/red]")
        raise typer.Exit(2)


@app.command()
def health(
    output: OutputFormat = typer.Option(OutputFormat.TABLE, "--output", "-o", help="Output format"),
    as_json: bool = typer.Option(False, "--json", help="Print the /health body as JSON"),
):
    """Connect once, probe every subsystem and report. Exit code 1 unless all are connected."""
    if as_json:
        output = OutputFormat.JSON

    try:
        config = get_config()
    except ConfigurationError as e:
        console.print(f"[red]Invalid configuration: {e.message}[/red]")
        raise typer.Exit(2)

    setup_logging(LoggingConfig(
        service_name=config.observability.service_name,
        level="CRITICAL" if output == OutputFormat.JSON else "WARNING",
        json_format=config.observability.log_json_format,
        environment=config.env.value,
    ))

    report = asyncio.run(_collect_health(config))

    if output == OutputFormat.JSON:
        console.print_json(json.dumps(report.to_response()))
    else:
        _display_health_report(report)

    if not report.is_healthy:
        raise typer.Exit(1)


@app.command("config")
def show_config(
    output: OutputFormat = typer.Option(OutputFormat.TABLE, "--output", "-o", help="Output format"),
):
    """Show the effective configuration (secrets redacted) and any problems."""
    try:
        config = Config()
    except ConfigurationError as e:
        console.print(f"[red]Invalid configuration: {e.message}[/red]")
        raise typer.Exit(1)

    problems = config.validate()

    if output == OutputFormat.JSON:
        console.print_json(json.dumps({**config.to_dict(), "problems": problems}))
    else:
        table = Table(title="Configuration")
        table.add_column("Setting", style="cyan")
        table.add_column("Value")
        for section, values in config.to_dict().items():
            if isinstance(values, dict):
                for key, value in values.items():
                    table.add_row(f"{section}.{key}", str(value))
            else:
                table.add_row(section, str(values))
        console.print(table)
        for problem in problems:
            console.print(f"[red]✗ {problem}[/red]")

    if problems:
        raise typer.Exit(1)


# Helper functions
async def _collect_health(config: Config) -> HealthReport:
    """Bootstrap once without serving, then aggregate."""
    from api.main import create_app
    from api.realtime import RealtimeGateway

    gateway = RealtimeGateway()
    registry = build_registry(config, gateway)
    fastapi_app = create_app(registry, gateway, config)

    try:
        try:
            await BootstrapSequencer.from_config(config).run(registry.handles)
        except BootstrapAbortedError as e:
            logger.error("Bootstrap aborted", failed=e.outcome.failed_subsystems)
        return await fastapi_app.state.health_aggregator.check()
    finally:
        await registry.close_all()


def _display_health_report(report: HealthReport):
    """Display a health report as a table."""
    style = "green" if report.is_healthy else "red"
    table = Table(title=f"Health: [{style}]{report.overall_status}[/{style}]")
    table.add_column("Subsystem", style="cyan")
    table.add_column("Status")
    table.add_column("Latency", justify="right")
    table.add_column("Details")

    for name, status in report.per_subsystem.items():
        mark = "[green]✓ connected[/green]" if status.is_connected else "[red]✗ disconnected[/red]"
        table.add_row(name, mark, f"{status.latency_ms:.1f}ms", status.detail or "")

    console.print(table)


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
