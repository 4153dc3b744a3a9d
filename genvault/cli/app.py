"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
import signal
from contextlib import suppress
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from genvault import __version__
from genvault.api.session import ProducerSession
from genvault.core.sync_manager import SyncManager
from genvault.exceptions import GenVaultError
from genvault.models.config import SourceMode, SyncConfig
from genvault.storage.config_manager import ConfigManager
from genvault.storage.manifest_store import ManifestStore
from genvault.utils.structured_logger import create_structured_logger

from .formatters import (
    format_error_with_suggestions,
    print_config,
    print_dry_run_panel,
    print_status_table,
    print_summary_panel,
    print_verification_panel,
)

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("genvault")

app = typer.Typer(
    name="genvault",
    help=(
        "Resumable archiver for your favorite and published tracks. Use 'genvault"
        " <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "genvault"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


def _load_config(cli_options: dict[str, Any]) -> SyncConfig:
    try:
        return ConfigManager(CONFIG_FILE).load_config(cli_options)
    except GenVaultError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e


def _install_stop_handler(manager: SyncManager) -> None:
    """First Ctrl+C finishes the current item and stops; a second one aborts."""
    loop = asyncio.get_running_loop()

    def _on_sigint() -> None:
        manager.request_stop()
        loop.remove_signal_handler(signal.SIGINT)

    with suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, _on_sigint)


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Show debug logging.",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
):
    """GenVault catalog archiver"""
    if version:
        console.print(f"[bold]genvault[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    if verbose >= 1:
        logging.getLogger("genvault").setLevel("DEBUG")

    if show_config:
        config = _load_config({})
        config_data = config.model_dump(exclude={"config_path", "dry_run"})
        print_config(CONFIG_FILE, config_data)
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration file."
    ),
):
    """Write a configuration file with default settings."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    try:
        ConfigManager(CONFIG_FILE).save_new_config()
    except GenVaultError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e
    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    console.print("Sign in with the browser, then try: [cyan]genvault sync[/cyan]")


@app.command(name="sync")
def sync_command(
    mode: Optional[SourceMode] = typer.Option(
        None, "--mode", "-m", help="Which remote listing to archive."
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Directory the audio files are written to."
    ),
    batch: Optional[int] = typer.Option(
        None, "--batch", "-b", help="Promote staged files to the output every N items."
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Show what would be downloaded, download nothing."
    ),
    verify_only: bool = typer.Option(
        False,
        "--verify",
        help="Only check the output directory and mark missing files for re-download.",
    ),
    headless: Optional[bool] = typer.Option(
        None, "--headless/--headed", help="Run the fallback browser without a window."
    ),
    no_browser: bool = typer.Option(
        False, "--no-browser", help="Never fall back to the browser download."
    ),
    event_log: Optional[bool] = typer.Option(
        None, "--event-log/--no-event-log", help="Write a JSONL event log of the run."
    ),
):
    """Fetch the remote listing, merge it into the manifest and download what is missing."""
    cli_options = {
        key: value
        for key, value in {
            "source_mode": mode,
            "output_dir": str(output) if output else None,
            "batch_size": batch,
            "headless": headless,
            "event_log": event_log,
        }.items()
        if value is not None
    }
    cli_options["dry_run"] = dry_run
    config = _load_config(cli_options)

    if verify_only:
        asyncio.run(_verify_async(config))
        return

    async def _sync_async():
        base_logger, acquisition_events, session_events = create_structured_logger(
            config.log_dir, enable_json=config.event_log
        )
        if base_logger.json_log_path:
            log.info(f"Event log: [dim]{base_logger.json_log_path}[/dim]")

        try:
            async with ProducerSession.from_config(
                config, use_browser=not no_browser
            ) as session:
                manager = SyncManager(
                    config,
                    session,
                    session_events=session_events,
                    acquisition_events=acquisition_events,
                )
                _install_stop_handler(manager)
                mode_label = "dry run" if config.dry_run else "sync"
                console.print(
                    f"[bold cyan]🎵 Starting {config.source_mode.value} {mode_label}..."
                    "[/bold cyan]"
                )
                report = await manager.run()
        except GenVaultError as e:
            console.print(format_error_with_suggestions(e))
            raise typer.Exit(code=1) from e
        finally:
            base_logger.close()

        if report.nothing_to_do:
            console.print(
                f"[yellow]No {config.source_mode.value} items found remotely.[/yellow]"
            )
        elif config.dry_run:
            print_dry_run_panel(report)
        else:
            print_summary_panel(report)

    asyncio.run(_sync_async())


async def _verify_async(config: SyncConfig) -> None:
    base_logger, _, session_events = create_structured_logger(
        config.log_dir, enable_json=config.event_log
    )
    try:
        async with ProducerSession.from_config(config, use_browser=False) as session:
            manager = SyncManager(config, session, session_events=session_events)
            result = await manager.verify()
    finally:
        base_logger.close()
    print_verification_panel(result, config.output_path)


@app.command()
def verify(
    mode: Optional[SourceMode] = typer.Option(
        None, "--mode", "-m", help="Which manifest to verify."
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Directory the audio files were written to."
    ),
):
    """Check acquired items against the output directory."""
    cli_options = {
        key: value
        for key, value in {
            "source_mode": mode,
            "output_dir": str(output) if output else None,
        }.items()
        if value is not None
    }
    asyncio.run(_verify_async(_load_config(cli_options)))


@app.command()
def status(
    mode: Optional[SourceMode] = typer.Option(
        None, "--mode", "-m", help="Which manifest to show."
    ),
):
    """Show item counts of the manifest."""
    config = _load_config({"source_mode": mode} if mode else {})

    store = ManifestStore(config.manifest_path, config.source_mode)
    manifest = asyncio.run(store.load(quarantine=False))
    print_status_table(manifest, config.manifest_path)
