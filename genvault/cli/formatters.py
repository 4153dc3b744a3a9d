"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from genvault.core.sync_manager import SyncReport
from genvault.core.verifier import VerificationResult
from genvault.models.manifest import ArchiveManifest, ItemStatus
from genvault.utils.formatting import format_duration, format_size

DRY_RUN_PREVIEW_LIMIT = 30
FAILURE_LIST_LIMIT = 10


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "CredentialError": [
            "• Sign in with the browser so the session state file is written.",
            "• Check `session_state_path` in the configuration file.",
            "• Delete the session state file and sign in again if it is stale.",
        ],
        "ListingUnavailableError": [
            "• Your session may have expired. Sign in again.",
            "• The remote service might be temporarily unavailable.",
            "• Check your internet connection.",
        ],
        "ConfigurationError": [
            "• Review the values in the configuration file.",
            "• Run `genvault init --force` to write a fresh default configuration.",
        ],
        "CircuitBreakerError": [
            "• Several items in a row failed; the session is probably stale.",
            "• Sign in again, then re-run. Finished items are not downloaded twice.",
        ],
        "OSError": [
            "• Check that the data and output directories are writable.",
            "• Make sure the output drive is mounted.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -v for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration."""
    console = Console()
    content = ""
    for key, value in sorted(config_data.items()):
        if isinstance(value, tuple):
            value = ", ".join(str(v) for v in value)
        content += f"{key} = {escape(str(value))}\n"

    console.print(
        Panel(
            content.strip(),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_status_table(manifest: ArchiveManifest, manifest_path: Path):
    """Displays per-status counts of a manifest."""
    console = Console()
    counts = manifest.count_by_status()

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column()
    table.add_row("Source:", manifest.source_mode.value)
    table.add_row("Items:", str(len(manifest.items)))
    if manifest.total_remote is not None:
        table.add_row("Remote (last run):", str(manifest.total_remote))
    table.add_row("✓ Acquired:", f"[green]{counts[ItemStatus.ACQUIRED]}[/green]")
    table.add_row("○ Pending:", f"[yellow]{counts[ItemStatus.PENDING]}[/yellow]")
    table.add_row("✗ Failed:", f"[red]{counts[ItemStatus.FAILED]}[/red]")
    table.add_row("Last run:", manifest.last_run_at or "[dim]never[/dim]")

    console.print(
        Panel(
            table,
            title=f"Manifest ([dim]{manifest_path}[/dim])",
            border_style="cyan",
            expand=False,
        )
    )


def print_dry_run_panel(report: SyncReport):
    """Shows what a real run would acquire."""
    console = Console()
    pending = report.pending_preview

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column()
    table.add_row("Total in manifest:", str(report.total_items))
    table.add_row(
        "Already acquired:", str(report.counts.get(ItemStatus.ACQUIRED, 0))
    )
    table.add_row("Would acquire:", f"[bold]{len(pending)}[/bold]")

    console.print()
    console.print(
        Panel(
            table,
            title="🔍 [bold]Dry Run - nothing will be downloaded[/bold]",
            border_style="yellow",
            box=box.DOUBLE,
            expand=False,
        )
    )

    if not pending:
        return

    items = Table(box=box.ROUNDED, title="Pending items")
    items.add_column("Creator", style="cyan")
    items.add_column("Title")
    items.add_column("ID", style="dim")
    items.add_column("Previous error", style="red")
    for item in pending[:DRY_RUN_PREVIEW_LIMIT]:
        items.add_row(
            escape(item.creator_label),
            escape(item.title),
            item.id,
            escape(item.last_error or ""),
        )
    console.print(items)
    if len(pending) > DRY_RUN_PREVIEW_LIMIT:
        console.print(
            f"[dim]... and {len(pending) - DRY_RUN_PREVIEW_LIMIT} more[/dim]"
        )


def print_summary_panel(report: SyncReport):
    """Displays the final summary of a sync run."""
    console = Console()
    stats = report.stats

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column(style="bold cyan", justify="right", width=24)
    stats_table.add_column(style="white", justify="left")

    stats_table.add_row("Fetched remotely:", str(report.fetched))
    stats_table.add_row("New in manifest:", str(report.new_items))
    stats_table.add_row("", "")
    stats_table.add_row(
        "✓ Acquired this run:", f"[bold green]{stats.items_acquired}[/bold green]"
    )
    if stats.items_recovered_from_staging:
        stats_table.add_row(
            "↺ Recovered from staging:", str(stats.items_recovered_from_staging)
        )
    if stats.items_failed:
        stats_table.add_row("✗ Failed:", f"[bold red]{stats.items_failed}[/bold red]")
    if stats.promotion_failures:
        stats_table.add_row(
            "⚠ Promotion failures:", f"[yellow]{stats.promotion_failures}[/yellow]"
        )
    stats_table.add_row("", "")
    stats_table.add_row(
        "Acquired (all time):", str(report.counts.get(ItemStatus.ACQUIRED, 0))
    )
    stats_table.add_row("Still outstanding:", str(report.outstanding))
    stats_table.add_row(
        "Total Size:", f"[cyan]{format_size(stats.total_size_acquired)}[/cyan]"
    )
    stats_table.add_row(
        "Time Elapsed:", f"[blue]{format_duration(stats.elapsed_seconds)}[/blue]"
    )

    if stats.circuit_tripped:
        title = "⚠ [bold]Stopped: too many consecutive failures[/bold]"
        border_color = "yellow"
    elif stats.stopped_early:
        title = "⏸ [bold]Stopped on request[/bold]"
        border_color = "yellow"
    elif stats.items_failed:
        title = "[bold]Sync finished with failures[/bold]"
        border_color = "red"
    else:
        title = "🎵 [bold]Sync Complete![/bold]"
        border_color = "green"

    console.print()
    console.print(
        Panel(
            stats_table,
            title=title,
            border_style=border_color,
            box=box.DOUBLE,
            expand=False,
            padding=(1, 2),
        )
    )

    if stats.failure_messages:
        console.print("[bold red]Failures:[/bold red]")
        for message in stats.failure_messages[:FAILURE_LIST_LIMIT]:
            console.print(f"  ✗ {escape(message)}")
        hidden = len(stats.failure_messages) - FAILURE_LIST_LIMIT
        if hidden > 0:
            console.print(f"  [dim]... and {hidden} more[/dim]")

    if stats.circuit_tripped or stats.stopped_early or report.outstanding:
        console.print(
            "\n  Run again to continue with the remaining items. "
            "Finished items are not downloaded twice."
        )
    console.print()


def print_verification_panel(result: VerificationResult, output_dir: Path):
    """Displays the outcome of a verification pass."""
    console = Console()
    if result.missing:
        body = (
            f"[green]{result.verified}[/green] verified, "
            f"[red]{result.missing}[/red] missing and marked for re-acquisition."
        )
        border_color = "yellow"
    else:
        body = f"[green]{result.verified}[/green] verified, nothing missing."
        border_color = "green"
    console.print(
        Panel(
            body,
            title=f"Verification ([dim]{output_dir}[/dim])",
            border_style=border_color,
            expand=False,
        )
    )
