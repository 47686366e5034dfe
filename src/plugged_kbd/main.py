"""Main entry point for the plugged-kbd CLI application."""

import logging
import signal
import sys
from functools import partial
from pathlib import Path

import psutil
import typer
from gi.repository import GLib

from common.logging_utils import get_logger
from common.logging_utils import setup_logging_handler

from .config_loader import ConfigLoader
from .daemon_manager import DaemonManager
from .daemon_manager import daemonize
from .formatter import format_config
from .formatter import format_devices
from .formatter import format_header
from .formatter import format_rules
from .formatter import format_sources
from .input_device import query_model_name
from .input_sources import GnomeInputSourceManager
from .input_sources import InputSourceError
from .models import AppConfig
from .poller import ProcInputDevicesPoller
from .rule_store import RuleStore
from .service import PluggedKbdService

app = typer.Typer(
    help='⌨️  Plugged Keyboard - Switch input source when keyboards are plugged in',
    no_args_is_help=True,
)


def setup_logging(config: AppConfig, foreground: bool) -> None:
    """Configure the application logger from the configuration."""
    setup_logging_handler(
        get_logger(),
        log_level=config.effective_log_level,
        foreground=foreground and sys.stderr.isatty(),
        log_file=config.log_file,
    )


def setup_signal_handlers(service: PluggedKbdService) -> None:
    """Stop the main loop on SIGINT (Ctrl-C) and SIGTERM."""
    def signal_handler(signum: int) -> bool:
        get_logger().info(f'Received signal {signum}, shutting down...')
        service.stop()
        return GLib.SOURCE_REMOVE

    for signum in (signal.SIGINT, signal.SIGTERM):
        GLib.unix_signal_add(GLib.PRIORITY_DEFAULT, signum, signal_handler, signum)


def _load_config(config: Path | None, debug: bool = False) -> AppConfig:
    """Load configuration or exit with an error message."""
    try:
        app_config, _config_path = ConfigLoader.load(config)
    except FileNotFoundError as e:
        typer.echo(f'❌ Config file not found: {e}', err=True)
        raise typer.Exit(1) from e
    except Exception as e:
        typer.echo(f'❌ Failed to load config: {e}', err=True)
        raise typer.Exit(1) from e

    if debug:
        app_config.debug_messages = True
    return app_config


def _load_sources(timeout: float) -> GnomeInputSourceManager:
    ism = GnomeInputSourceManager(timeout=timeout)
    try:
        ism.load()
    except InputSourceError as e:
        typer.echo(f'❌ Cannot read input sources: {e}', err=True)
        typer.echo('   plugged-kbd needs a GNOME session (gsettings).', err=True)
        raise typer.Exit(1) from e
    return ism


def build_service(app_config: AppConfig, ism: GnomeInputSourceManager) -> PluggedKbdService:
    poller = ProcInputDevicesPoller(
        devices_file=app_config.devices_file,
        period=app_config.poll_interval,
        name_resolver=partial(query_model_name, timeout=app_config.command_timeout),
    )
    return PluggedKbdService(app_config, ism, RuleStore(app_config.rules_file), poller=poller)


@app.command()
def start(
    config: Path | None = typer.Option(None, help='Path to config file'),
    foreground: bool = typer.Option(False, '--foreground', help='Run in foreground'),
    debug: bool = typer.Option(False, '--debug', help='Enable debug logging'),
) -> None:
    """Start watching keyboards.

    By default plugged-kbd runs as a background daemon process.
    Use --foreground to run in the current terminal.

    Examples:
        plugged-kbd start
        plugged-kbd start --foreground --debug
    """
    daemon = DaemonManager()
    if daemon.is_running():
        typer.echo(f'❌ plugged-kbd is already running (PID: {daemon.get_pid()})', err=True)
        typer.echo("   Use 'plugged-kbd stop' to stop it first", err=True)
        raise typer.Exit(1)

    app_config = _load_config(config, debug)
    ism = _load_sources(app_config.command_timeout)

    if foreground:
        typer.echo(format_header())
        typer.echo('✓ Watching keyboards in foreground...')
        typer.echo('   Press Ctrl+C to stop')
    else:
        typer.echo('✓ Starting plugged-kbd in background...')
        daemonize()
    daemon.write_pid()

    setup_logging(app_config, foreground)
    service = build_service(app_config, ism)
    setup_signal_handlers(service)

    try:
        service.start()
    except Exception as e:
        logging.getLogger('plugged_kbd').error(f'Fatal error: {e}', exc_info=True)
        daemon.cleanup()
        sys.exit(1)

    daemon.cleanup()
    if foreground:
        typer.echo('\n👋 Stopped watching keyboards')


@app.command()
def stop() -> None:
    """Stop the plugged-kbd daemon."""
    daemon = DaemonManager()

    if not daemon.is_running():
        typer.echo('❌ plugged-kbd is not running', err=True)
        raise typer.Exit(1)

    pid = daemon.get_pid()
    typer.echo(f'Stopping plugged-kbd (PID: {pid})...')

    if daemon.stop():
        typer.echo('✓ plugged-kbd stopped')
    else:
        typer.echo('❌ Failed to stop plugged-kbd', err=True)
        raise typer.Exit(1)


@app.command()
def status() -> None:
    """Show whether the daemon is running, with its memory and CPU usage."""
    daemon = DaemonManager()

    pid = daemon.get_pid()
    if pid is None:
        typer.echo('❌ plugged-kbd is not running')
        raise typer.Exit(1)

    typer.echo('✓ plugged-kbd is running')
    typer.echo(f'   PID: {pid}')
    try:
        process = psutil.Process(pid)
        typer.echo(f'   Memory: {process.memory_info().rss / 1024 / 1024:.1f} MB')
        typer.echo(f'   CPU: {process.cpu_percent(interval=0.1):.1f}%')
    except psutil.Error:
        pass  # Process info not available


@app.command()
def devices(
    config: Path | None = typer.Option(None, help='Path to config file'),
    devices_file: Path | None = typer.Option(None, '--devices-file', help='Input device listing to read'),
) -> None:
    """List the keyboards currently plugged in.

    Example:
        plugged-kbd devices
    """
    app_config = _load_config(config)
    poller = ProcInputDevicesPoller(
        devices_file=devices_file or app_config.devices_file,
        name_resolver=partial(query_model_name, timeout=app_config.command_timeout),
    )
    if not poller.devices_file.exists():
        typer.echo(f'❌ {poller.devices_file} not found', err=True)
        raise typer.Exit(1)
    poller.poll()
    typer.echo(format_devices(poller.devices()))


@app.command()
def sources(
    config: Path | None = typer.Option(None, help='Path to config file'),
) -> None:
    """List the configured input sources, marking the active one."""
    app_config = _load_config(config)
    ism = _load_sources(app_config.command_timeout)
    typer.echo(format_sources(ism.input_sources, ism.current_source))


@app.command()
def rules(
    config: Path | None = typer.Option(None, help='Path to config file'),
) -> None:
    """List the saved keyboard / input source associations."""
    app_config = _load_config(config)
    typer.echo(f'Rules file: {app_config.rules_file}\n')
    typer.echo(format_rules(RuleStore(app_config.rules_file).load()))


@app.command()
def check_config(
    config: Path | None = typer.Option(None, help='Path to config file'),
) -> None:
    """Validate the configuration file and display it.

    Examples:
        plugged-kbd check-config
        plugged-kbd check-config --config /path/to/config.toml
    """
    try:
        app_config, config_path = ConfigLoader.load(config)
    except FileNotFoundError as e:
        typer.echo(f'❌ Config file not found: {e}', err=True)
        raise typer.Exit(1) from e
    except Exception as e:
        typer.echo(f'❌ Configuration error: {e}', err=True)
        raise typer.Exit(1) from e

    typer.echo('✓ Configuration is valid\n')
    typer.echo(f'Config file: {config_path or "(none, using defaults)"}')
    typer.echo(format_config(app_config))


if __name__ == '__main__':
    app()
