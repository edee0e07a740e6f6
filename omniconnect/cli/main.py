"""
OmniConnect CLI main module.

Development and production servers plus a credential probe for the
WhatsApp provider.
"""

import asyncio
import subprocess
import sys

import aiohttp
import typer
from rich.console import Console
from rich.table import Table

from omniconnect.core.config.settings import settings
from omniconnect.messaging.zapi.client import ZapiClient
from omniconnect.messaging.zapi.models import ChannelCredential, ProbeReport
from omniconnect.schemas.core.types import AuthMode

app = typer.Typer(help="OmniConnect messaging core CLI")
console = Console()

APP_FACTORY = "omniconnect.core.app:create_app"


def _uvicorn_command(host: str, port: int, extra: list[str]) -> list[str]:
    return [
        sys.executable,
        "-m",
        "uvicorn",
        APP_FACTORY,
        "--factory",
        "--host",
        host,
        "--port",
        str(port),
        # Protocol-level websocket pings handled by the server
        "--ws-ping-interval",
        str(settings.realtime_ping_interval_seconds),
        "--ws-ping-timeout",
        str(settings.realtime_reap_offset_seconds),
        *extra,
    ]


def _serve(cmd: list[str], label: str) -> None:
    try:
        subprocess.run(cmd, check=True)
    except subprocess.CalledProcessError as e:
        typer.echo(f"❌ {label} server failed to start (exit code: {e.returncode})", err=True)
        raise typer.Exit(1)
    except KeyboardInterrupt:
        typer.echo(f"👋 {label} server stopped")


@app.command()
def dev(
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(settings.port, "--port", "-p", help="Port to bind to"),
):
    """
    Run development server with auto-reload.

    Examples:
        omniconnect dev
        omniconnect dev --port 8080
    """
    typer.echo("🚀 Starting OmniConnect development server...")
    typer.echo(f"🌐 Server: http://{host}:{port}")
    typer.echo(f"📝 Docs: http://{host}:{port}/docs")
    typer.echo("💡 Press CTRL+C to stop")
    _serve(_uvicorn_command(host, port, ["--reload"]), "Development")


@app.command()
def run(
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(settings.port, "--port", "-p", help="Port to bind to"),
):
    """
    Run production server (no auto-reload, single worker).

    The realtime hub keeps its connection registry in process memory, so the
    server always runs one worker.
    """
    typer.echo("🚀 Starting OmniConnect production server...")
    typer.echo(f"🌐 Server: http://{host}:{port}")
    _serve(_uvicorn_command(host, port, ["--workers", "1"]), "Production")


def _render_report(report: ProbeReport, diagnostics: dict) -> None:
    console.print(f"[bold]Instance:[/] {diagnostics['extracted_instance_id']}")
    console.print(
        f"[bold]Token:[/] {diagnostics['token_preview']} "
        f"({diagnostics['token_length']} chars)"
    )

    table = Table(title=f"GET {report.endpoint}")
    table.add_column("Hypothesis")
    table.add_column("Result")
    table.add_column("Status")
    table.add_column("Detail", overflow="fold")
    for outcome in report.outcomes:
        result = "[green]ok[/]" if outcome.succeeded else f"[red]{outcome.failure.value}[/]"
        table.add_row(
            outcome.hypothesis,
            result,
            str(outcome.status or "-"),
            outcome.detail,
        )
    console.print(table)
    console.print(f"[bold]Conclusion:[/] {report.conclusion}")


async def _probe(credential: ChannelCredential, endpoint: str) -> tuple[ProbeReport, dict]:
    async with aiohttp.ClientSession() as session:
        client = ZapiClient(session, credential)
        return await client.probe(endpoint), client.diagnostics()


@app.command()
def probe(
    instance_id: str = typer.Option(..., "--instance-id", "-i", help="Instance ID or URL"),
    token: str = typer.Option(..., "--token", "-t", help="Instance token"),
    client_token: str = typer.Option(
        None, "--client-token", "-c", help="Account security token"
    ),
    header_auth: bool = typer.Option(
        False, "--header-auth", help="Prefer sending the token as a header"
    ),
    endpoint: str = typer.Option("/status", "--endpoint", "-e", help="Endpoint to probe"),
):
    """
    Try an endpoint against every known URL family and report what works.

    Examples:
        omniconnect probe -i 3C67AB... -t F1A2...
        omniconnect probe -i https://api.z-api.io/instances/3C67AB... -t F1A2... -e /qr-code
    """
    credential = ChannelCredential(
        instance_id=instance_id,
        secret_token=token,
        client_token=client_token,
        auth_mode=AuthMode.TOKEN_IN_HEADER if header_auth else AuthMode.TOKEN_IN_PATH,
    )
    report, diagnostics = asyncio.run(_probe(credential, endpoint))
    _render_report(report, diagnostics)
    if not report.working:
        raise typer.Exit(1)


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
