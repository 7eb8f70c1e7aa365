"""CLI commands for tgrelay."""

import asyncio
import json

import typer
from rich.console import Console
from rich.table import Table

from tgrelay import __logo__, __version__

app = typer.Typer(
    name="tgrelay",
    help=f"{__logo__} tgrelay - Telegram remote control for terminal coding agents",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} tgrelay v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-V", callback=version_callback, is_eager=True
    ),
):
    """tgrelay - Telegram remote control for terminal coding agents."""
    pass


def _load_configured():
    """Load config or exit with a hint when the bot is not set up."""
    from tgrelay.config.loader import load_config

    config = load_config()
    if not config.is_configured:
        console.print("[red]Error: Telegram is not configured.[/red]")
        console.print("Set TGRELAY_TELEGRAM__TOKEN in ~/.tgrelay/.env and telegram.chatId in ~/.tgrelay/config.json")
        raise typer.Exit(1)
    return config


# ============================================================================
# Onboard / Setup
# ============================================================================


@app.command()
def onboard():
    """Initialize tgrelay configuration."""
    from tgrelay.config.loader import get_config_path, get_env_path, save_config
    from tgrelay.config.schema import Config

    config_path = get_config_path()

    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    save_config(Config())
    console.print(f"[green]✓[/green] Created config at {config_path}")
    console.print(f"[green]✓[/green] Created secrets file at {get_env_path()} (mode 600)")

    hooks = {
        "hooks": {
            "PreToolUse": [{"matcher": ".*", "hooks": [{"type": "command", "command": "tgrelay hook pretool"}]}],
            "PostToolUse": [{"matcher": ".*", "hooks": [{"type": "command", "command": "tgrelay hook posttool"}]}],
        }
    }

    console.print(f"\n{__logo__} tgrelay is ready!")
    console.print("\nNext steps:")
    console.print("  1. Add your bot token to [cyan]~/.tgrelay/.env[/cyan]")
    console.print("     Example: TGRELAY_TELEGRAM__TOKEN=123456:ABC-DEF")
    console.print("  2. Set [cyan]telegram.chatId[/cyan] in the config file")
    console.print("  3. Check it: [cyan]tgrelay send \"hello\"[/cyan]")
    console.print("  4. Optional approval/notification hooks for your agent settings:")
    console.print(json.dumps(hooks, indent=2), markup=False, highlight=False)


# ============================================================================
# Messaging
# ============================================================================


@app.command()
def send(message: str = typer.Argument(..., help="Text to send")):
    """Send a text message to the configured chat."""
    from tgrelay.channels.errors import OutboundDeliveryError
    from tgrelay.channels.telegram import TelegramClient

    config = _load_configured()

    async def run():
        async with TelegramClient(config.telegram) as client:
            return await client.send_text(message)

    try:
        result = asyncio.run(run())
    except OutboundDeliveryError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Sent (message {result.get('message_id')})")


@app.command("send-photo")
def send_photo(
    path: str = typer.Argument(..., help="Image file to upload"),
    caption: str = typer.Option("", "--caption", "-c", help="Photo caption"),
):
    """Send a local image to the configured chat."""
    from tgrelay.channels.errors import OutboundDeliveryError
    from tgrelay.channels.telegram import TelegramClient

    config = _load_configured()

    async def run():
        async with TelegramClient(config.telegram) as client:
            return await client.send_media("photo", path, caption)

    try:
        result = asyncio.run(run())
    except OutboundDeliveryError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Sent (message {result.get('message_id')})")


# ============================================================================
# Relay
# ============================================================================


@app.command()
def poll(
    interval: int | None = typer.Option(None, "--interval", "-i", help="Poll interval in ms (defaults to config.polling.intervalMs)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Relay chat messages into the terminal until Ctrl+C."""
    from tgrelay.logging import init_error_store, setup_logging
    from tgrelay.relay.service import RelayService
    from tgrelay.utils.helpers import get_logs_path

    setup_logging(verbose=verbose)
    config = _load_configured()
    init_error_store(get_logs_path() / "errors.jsonl")

    async def run() -> bool:
        service = RelayService(config)
        result = await service.start_polling(interval)
        if not result.ok:
            console.print(f"[yellow]{result.message}[/yellow]")
            await service.aclose()
            return False

        console.print(f"{__logo__} {result.message} (backend: {service.gateway.backend.name}). Ctrl+C to stop.")
        try:
            while service.polling:
                await asyncio.sleep(1)
            console.print("[yellow]Poll lock lost; another poller took over.[/yellow]")
        finally:
            if service.polling:
                await service.stop_polling()
            await service.aclose()
        return True

    try:
        ok = asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\nShutting down...")
        return
    if not ok:
        raise typer.Exit(1)


@app.command()
def mcp(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output (stderr)"),
):
    """Run the MCP server on stdio."""
    from tgrelay.config.loader import load_config
    from tgrelay.logging import init_error_store, setup_logging
    from tgrelay.mcp_server import run
    from tgrelay.utils.helpers import get_logs_path

    setup_logging(verbose=verbose)
    init_error_store(get_logs_path() / "errors.jsonl")
    run(load_config())


# ============================================================================
# Hooks
# ============================================================================

hook_app = typer.Typer(help="Agent tool-use hooks (JSON on stdin)")
app.add_typer(hook_app, name="hook")


@hook_app.command("pretool")
def hook_pretool():
    """Ask for approval of a sensitive tool call; prints the decision JSON."""
    from tgrelay.hooks.pretool import main as pretool_main

    pretool_main()


@hook_app.command("posttool")
def hook_posttool():
    """Report a finished tool call (errors only unless notify.notifyAll)."""
    from tgrelay.hooks.posttool import main as posttool_main

    posttool_main()


# ============================================================================
# Status
# ============================================================================


@app.command()
def status(
    errors: int = typer.Option(5, "--errors", "-e", help="How many recent errors to show"),
    check: bool = typer.Option(False, "--check", help="Verify the bot token against Telegram"),
):
    """Show tgrelay status."""
    from tgrelay.config.loader import get_config_path, get_env_path, load_config, token_in_config_file
    from tgrelay.logging import get_errors, init_error_store
    from tgrelay.relay.lock import PollLock
    from tgrelay.utils.helpers import get_logs_path

    config_path = get_config_path()
    env_path = get_env_path()
    config = load_config()

    console.print(f"{__logo__} tgrelay Status\n")

    console.print(f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[red]✗[/red]'}")
    console.print(f"Secrets: {env_path} {'[green]✓[/green]' if env_path.exists() else '[yellow]missing[/yellow]'}")
    if token_in_config_file():
        console.print("  [yellow]⚠  config.json contains the bot token; move it to ~/.tgrelay/.env as [cyan]TGRELAY_TELEGRAM__TOKEN[/cyan][/yellow]")
    console.print(f"Bot token: {'[green]✓[/green]' if config.telegram.token else '[dim]not set[/dim]'}")
    console.print(f"Chat: {config.telegram.chat_id or '[dim]not set[/dim]'}")
    console.print(f"Proxy: {config.telegram.proxy or '[dim]none[/dim]'}")
    console.print(f"Injection backend: {config.inject.backend}")

    if check and config.telegram.token:
        from tgrelay.channels.errors import ConfigurationError, OutboundDeliveryError
        from tgrelay.channels.telegram import TelegramClient

        async def whoami():
            async with TelegramClient(config.telegram) as client:
                return await client.get_me()

        try:
            me = asyncio.run(whoami())
            console.print(f"Bot: [green]@{me.get('username')}[/green]")
        except (OutboundDeliveryError, ConfigurationError) as e:
            console.print(f"Bot: [red]{e}[/red]")

    lock = PollLock(config.lock_path, ttl_ms=config.polling.lock_ttl_ms)
    holder = lock.holder()
    if holder:
        console.print(f"Poller: [green]running[/green] (pid {holder.owner})")
    else:
        console.print("Poller: [dim]not running[/dim]")

    init_error_store(get_logs_path() / "errors.jsonl")
    recent = get_errors(limit=errors)
    if not recent:
        return
    table = Table(title="Recent errors")
    table.add_column("Time", style="dim")
    table.add_column("Where", style="cyan")
    table.add_column("Message")
    for item in recent:
        table.add_row(item["ts"], item["where"], item["message"])
    console.print(table)
