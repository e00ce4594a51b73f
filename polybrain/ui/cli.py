"""Main CLI entry point - subcommands for launching and managing the server."""

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from polybrain.core.configs import (
    ServerConfig,
    is_debug_enabled,
    is_server_disabled,
    load_config,
)
from polybrain.core.errors import (
    ConfigError,
    PolybrainError,
    PortReclaimError,
    StartupTimeout,
)
from polybrain.core.logs import configure_logging, get_server_log_path
from polybrain.daemon.supervisor import ProcessSupervisor

app = typer.Typer(
    add_completion=False,
    help="Polybrain - chat with other LLMs from your coding agent over MCP.",
)

console = Console(stderr=True)

EXIT_STARTUP_TIMEOUT = 2


# ============================================================================
# Shared Setup
# ============================================================================

def _load_config_or_exit() -> ServerConfig:
    """
    Load config. Exits on error.

    Config errors are always printed, even when logging is suppressed.
    """
    try:
        return load_config()
    except ConfigError as e:
        typer.echo(f"Error loading configuration: {e}", err=True)
        raise typer.Exit(1)


def _ensure_server(config: ServerConfig) -> None:
    supervisor = ProcessSupervisor(config.http_port)
    try:
        supervisor.ensure_running()
    except StartupTimeout as e:
        typer.echo(
            f"Error: {e}. Check {get_server_log_path()} for startup errors, "
            f"or run 'polybrain restart' if another process holds port {config.http_port}.",
            err=True,
        )
        raise typer.Exit(EXIT_STARTUP_TIMEOUT)
    except PolybrainError as e:
        typer.echo(f"Error starting server: {e}", err=True)
        raise typer.Exit(1)


# ============================================================================
# Commands
# ============================================================================

@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Run the stdio launcher when no subcommand is given."""
    if ctx.invoked_subcommand is None:
        launch()


@app.command()
def launch() -> None:
    """
    Ensure the background server is up, then serve MCP over stdio.

    This is the command an agent's MCP config should run. Logging stays at
    ERROR unless POLYBRAIN_DEBUG=true, and never touches stdout.
    """
    # Quiet before loading config so config loading stays silent too
    configure_logging("error")
    config = _load_config_or_exit()
    if is_debug_enabled():
        configure_logging(config.log_level)

    if not is_server_disabled():
        _ensure_server(config)

    from polybrain.daemon.server import PolybrainServer
    PolybrainServer(config).serve_stdio()


@app.command()
def serve(
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port (default: httpPort from config)"),
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind"),
) -> None:
    """Run the HTTP server in the foreground."""
    config = _load_config_or_exit()
    configure_logging(config.log_level)

    from polybrain.daemon.server import PolybrainServer
    raise typer.Exit(PolybrainServer(config, port=port, host=host).serve_http())


def _resolve_port(port: Optional[int]) -> int:
    if port is not None:
        return port
    return _load_config_or_exit().http_port


@app.command()
def restart(
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port (default: httpPort from config)"),
) -> None:
    """
    Kill whatever listens on the server port.

    The next launcher invocation starts a fresh server.
    """
    target = _resolve_port(port)
    supervisor = ProcessSupervisor(target)
    try:
        killed = supervisor.reclaim_port()
    except PortReclaimError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if killed:
        pids = ", ".join(str(pid) for pid in killed)
        typer.echo(f"Stopped process(es) {pids} on port {target}")
    else:
        typer.echo(f"No process listening on port {target}")


@app.command()
def status(
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port (default: httpPort from config)"),
) -> None:
    """Show whether the server is running."""
    target = _resolve_port(port)
    stats = ProcessSupervisor(target).health()
    if stats is None:
        typer.echo(f"Server not running on port {target}")
        raise typer.Exit(1)

    table = Table(title=f"Polybrain server (port {target})")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key, value in stats.items():
        if key == "uptime_seconds":
            value = f"{float(value):.0f}s"
        table.add_row(key, str(value))
    Console().print(table)


@app.command()
def models(
    check: bool = typer.Option(False, "--check", help="Probe each model with a 1-token request"),
) -> None:
    """List configured models."""
    config = _load_config_or_exit()
    configure_logging("error")

    table = Table(title="Configured models")
    table.add_column("ID", style="cyan")
    table.add_column("Model name")
    table.add_column("Base URL")
    table.add_column("Provider")
    if check:
        table.add_column("Reachable")

    from polybrain.providers.openai_compat import BackendClient

    for model in config.models:
        row = [model.id, model.model_name, model.base_url, model.provider or "-"]
        if check:
            console.print(f"[dim]Checking {model.id}...[/dim]")
            ok = BackendClient.from_config(model).validate_model(model.model_name)
            row.append("[green]yes[/green]" if ok else "[red]no[/red]")
        table.add_row(*row)

    Console().print(table)


def run() -> None:
    """Entry point for console script mapping."""
    app(prog_name="polybrain")


if __name__ == "__main__":
    run()
