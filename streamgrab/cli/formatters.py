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

from streamgrab.models.config import EngineConfig
from streamgrab.models.stream import (
    AcquisitionResult,
    Representation,
    StreamDescriptor,
)
from streamgrab.utils.formatting import (
    describe_representation,
    format_bandwidth,
    format_duration,
    format_size,
)


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ManifestFetchError": [
            "• The manifest URL may have expired; capture a fresh one.",
            "• Pass the session cookie with --cookie or --cookies-file.",
            "• Some CDNs require the page as --referer.",
        ],
        "ManifestParseError": [
            "• The URL may point at a web page, not an HLS or DASH manifest.",
            "• Run `streamgrab scan` on the page to find the real stream.",
        ],
        "RepresentationNotFoundError": [
            "• Run `streamgrab qualities <URL>` to list what is available.",
            "• Omit --quality to take the highest bandwidth.",
        ],
        "FailureBudgetExceededError": [
            "• The session most likely expired while downloading.",
            "• Re-capture credentials (HAR or cookies) and try again.",
            "• Lower --concurrency if the CDN throttles parallel requests.",
        ],
        "SegmentFetchError": [
            "• A segment could not be downloaded after retries.",
            "• Check your connection, then retry the download.",
        ],
        "UnsupportedStreamError": [
            "• Blob and SegmentTimeline streams cannot be fetched directly.",
            "• Use a HAR capture to find the manifest the player loaded.",
        ],
        "SaveError": [
            "• Check that the output directory exists and is writable.",
            "• Make sure the disk has enough free space.",
        ],
        "CaptureImportError": [
            "• Export the HAR again from the browser's network panel.",
            "• Make sure the file is the full 'HAR with content' export.",
        ],
        "ConfigurationError": [
            "• Run `streamgrab validate` to see the offending setting.",
            "• Recreate the file with `streamgrab init --force`.",
        ],
        "TimeoutError": [
            "• The server took too long to respond.",
            "• Check your connection or raise read_timeout in the config.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
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
    for key, value in config_data.items():
        if isinstance(value, list):
            value = ", ".join(value)
        content += f"{key} = {escape(str(value))}\n"

    console.print(
        Panel(
            content.strip(),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_validation_table(config: EngineConfig):
    """Displays a summary of the current settings."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    table.add_row("Concurrency:", str(config.concurrency))
    table.add_row("Failure Budget:", str(config.failure_budget))
    table.add_row("Segment Retries:", str(config.segment_retries))
    table.add_row("Preferred Quality:", config.preferred_quality)
    table.add_row(
        "Max Track Duration:", format_duration(float(config.max_track_duration))
    )
    table.add_row("Output Directory:", f"[dim]{escape(config.output_dir)}[/dim]")
    table.add_row(
        "Cookies File:",
        f"[dim]{escape(config.cookies_file)}[/dim]" if config.cookies_file else "-",
    )
    if config.blacklisted_domains:
        table.add_row("Blacklisted:", ", ".join(config.blacklisted_domains))

    console.print(
        Panel(
            table,
            title="[bold green]✓ Validated Settings[/bold green]",
            border_style="green",
        )
    )


def print_representations_table(
    representations: list[Representation], title: str = "Available Qualities"
):
    """Lists the representations of a manifest, best first."""
    console = Console()
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Quality", style="bold cyan")
    table.add_column("Bandwidth", justify="right", style="green")
    table.add_column("Resolution")
    table.add_column("Codecs", style="dim")
    table.add_column("Select with", style="magenta", overflow="fold")

    for i, rep in enumerate(representations, 1):
        table.add_row(
            str(i),
            rep.label or describe_representation(rep),
            format_bandwidth(rep.bandwidth),
            rep.resolution or "-",
            rep.codecs or "-",
            escape(rep.id),
        )
    console.print(table)


def print_streams_table(
    streams: list[StreamDescriptor], title: str = "Detected Streams"
):
    """Lists detected stream candidates."""
    console = Console()
    if not streams:
        console.print("[yellow]No streams detected.[/yellow]")
        return

    table = Table(title=title, box=box.ROUNDED)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Type", style="bold cyan")
    table.add_column("Quality", style="green")
    table.add_column("Size", justify="right")
    table.add_column("URL", overflow="fold")

    for i, stream in enumerate(streams, 1):
        table.add_row(
            str(i),
            stream.type.value.upper(),
            stream.quality or "Unknown",
            format_size(stream.size) if stream.size else "-",
            escape(stream.url),
        )
    console.print(table)


def print_summary_panel(result: AcquisitionResult, duration_s: float):
    """Displays the outcome of an acquisition."""
    console = Console()

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column(style="bold cyan", justify="right", width=16)
    stats_table.add_column(style="white", justify="left")

    if result.ok:
        stats_table.add_row("✓ Segments:", f"[bold green]{result.segment_count}[/]")
        stats_table.add_row(
            "Total Size:", f"[cyan]{format_size(result.bytes_assembled)}[/cyan]"
        )
        avg_speed = result.bytes_assembled / duration_s if duration_s > 0 else 0
        stats_table.add_row(
            "Avg. Speed:", f"[magenta]{format_size(int(avg_speed))}/s[/magenta]"
        )
        if result.output_path:
            stats_table.add_row("Saved To:", f"[dim]{escape(result.output_path)}[/dim]")
        title = "🎬 [bold]Download Complete![/bold]"
        border_color = "green"
    else:
        error = escape(result.error_detail or "")
        stats_table.add_row("✗ Error:", f"[bold red]{error}[/bold red]")
        if len(result.state_history) > 1:
            stats_table.add_row(
                "Failed In:", f"[yellow]{result.state_history[-2]}[/yellow]"
            )
        title = "[bold red]Download Failed[/bold red]"
        border_color = "red"

    stats_table.add_row("Time Elapsed:", f"[blue]{format_duration(duration_s)}[/blue]")

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
    console.print()
