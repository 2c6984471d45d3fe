"""PixelHQ 命令行入口

命令：
- start: 启动服务（不带子命令时默认执行）
- config: 查看/修改持久化设置
- emit: 向运行中的服务发送一个模式（调试用）
"""

import sys

import click
import httpx
from rich.console import Console
from rich.panel import Panel

from . import config
from .network import get_local_ip, http_url, ws_url
from .settings import get_or_create_token, load_settings, save_settings
from .state import Mode
from .telemetry import configure_logging

console = Console()

# emit MODE -> 合成的 HookEvent，经过与真实 hook 相同的分类路径
_EMIT_EVENTS: dict[Mode, dict] = {
    Mode.TYPING: {"type": "PreToolUse", "tool": "Write"},
    Mode.RUNNING: {"type": "PreToolUse", "tool": "Bash"},
    Mode.THINKING: {"type": "PreToolUse", "tool": "Read"},
    Mode.CELEBRATE: {"type": "Stop"},
    Mode.ERROR: {"type": "Error"},
    Mode.IDLE: {"type": "PostToolUse"},
}


def build_emit_event(mode: Mode) -> dict:
    return dict(_EMIT_EVENTS[mode])


@click.group(invoke_without_command=True)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(package_name="pixelhq")
@click.pass_context
def cli(ctx: click.Context, verbose: bool):
    """PixelHQ - live activity relay for Claude Code."""
    configure_logging("DEBUG" if verbose else config.LOG_LEVEL)
    if ctx.invoked_subcommand is None:
        ctx.invoke(start)


@cli.command()
@click.option("--name", "-n", default="", help="Company name to display")
@click.option("--port", "-p", default=config.HTTP_PORT, show_default=True, help="HTTP/WebSocket port")
def start(name: str, port: int):
    """Start the PixelHQ server."""
    from .web.app import run_server

    settings = load_settings()
    if name:
        settings.company_name = name.upper()
        save_settings(settings)

    token = get_or_create_token()
    ip = get_local_ip()

    console.print(
        Panel.fit(
            f"[bold]Company:[/bold] {settings.company_name}\n"
            f"[bold]Token:[/bold]   [green]{token}[/green]\n"
            f"[bold]HTTP:[/bold]    {http_url(ip, port)}\n"
            f"[bold]WS:[/bold]      {ws_url(ip, port, token)}",
            title="[bold cyan]PixelHQ[/bold cyan]",
            subtitle="Ctrl+C to stop",
        )
    )

    run_server(token, port=port)
    console.print("[yellow]Shutting down...[/yellow]")


@cli.command("config")
@click.option("--name", "-n", default=None, help="Set company name")
@click.option("--show", is_flag=True, help="Show current configuration")
def config_cmd(name: str | None, show: bool):
    """Configure PixelHQ settings."""
    settings = load_settings()

    if show:
        console.print("[cyan]PixelHQ Configuration[/cyan]")
        console.print(f"Company Name: {settings.company_name}")
        console.print(f"Config Dir:   [dim]{config.CONFIG_DIR}[/dim]")
        return

    if name:
        settings.company_name = name.upper()
        save_settings(settings)
        console.print(f"[green]Company name set to: {settings.company_name}[/green]")
    else:
        console.print("[yellow]No options provided. Use --help for usage.[/yellow]")


@cli.command()
@click.argument("mode")
@click.option("--port", "-p", default=config.HTTP_PORT, show_default=True)
def emit(mode: str, port: int):
    """Emit a state change to a running server (for testing)."""
    if mode not in Mode.values():
        console.print(f"[red]Invalid mode: {mode}[/red]")
        console.print(f"[dim]Valid modes: {', '.join(Mode.values())}[/dim]")
        sys.exit(1)

    try:
        response = httpx.post(
            f"http://127.0.0.1:{port}/hook",
            json=build_emit_event(Mode(mode)),
            timeout=config.HOOK_TIMEOUT_SECONDS,
        )
    except httpx.HTTPError:
        console.print("[red]Is the server running? Start with: pixelhq[/red]")
        sys.exit(1)

    if response.is_success:
        console.print(f"[green]Emitted: {mode}[/green]")
    else:
        console.print("[red]Failed to emit state[/red]")
        sys.exit(1)


def main():
    """console script 入口"""
    cli()
