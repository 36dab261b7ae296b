"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
import time
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from streamgrab import __version__
from streamgrab.auth.context import AuthContext
from streamgrab.auth.credentials import CookieFileStore, CredentialStore
from streamgrab.auth.store import AuthStore, ensure
from streamgrab.core.orchestrator import AcquisitionOrchestrator
from streamgrab.exceptions import StreamGrabError
from streamgrab.manifest import dash, hls
from streamgrab.models.config import EngineConfig
from streamgrab.models.stream import StreamDescriptor, StreamType
from streamgrab.net.fetcher import SegmentFetcher, open_session
from streamgrab.storage.config_manager import ConfigManager
from streamgrab.storage.registry import StreamRegistry
from streamgrab.storage.saver import DiskFileSaver
from streamgrab.utils.detect import classify_type
from streamgrab.utils.path import build_output_filename
from streamgrab.utils.structured_logger import create_structured_logger
from streamgrab.web.har import import_har
from streamgrab.web.page import fetch_and_scan

from .formatters import (
    print_config,
    print_representations_table,
    print_streams_table,
    print_summary_panel,
    print_validation_table,
)
from .progress_manager import ProgressManager

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
log = logging.getLogger("streamgrab")

app = typer.Typer(
    name="streamgrab",
    help=(
        "Download HLS, DASH and direct media streams with captured session"
        " credentials. Use 'streamgrab <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)

CLI_CONTEXT_ID = "cli"


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "streamgrab"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
):
    """Stream acquisition CLI"""
    if version:
        console.print(f"[bold]streamgrab[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("streamgrab").setLevel(log_level)

    if show_config:
        if not CONFIG_FILE.is_file():
            console.print(
                "[red]✗ Config file not found.[/] Run [cyan]streamgrab init[/cyan]"
                " first."
            )
            raise typer.Exit(code=1)
        config_manager = ConfigManager(CONFIG_FILE)
        config_manager.load_config()
        print_config(CONFIG_FILE, config_manager._get_config_as_dict())
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    output_dir: str | None = typer.Option(
        None, "--output", "-o", help="Default directory for downloaded files."
    ),
    cookies_file: str | None = typer.Option(
        None, "--cookies-file", help="Default cookies.txt used as credential store."
    ),
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

    settings = {}
    if output_dir:
        settings["output_dir"] = output_dir
    if cookies_file:
        settings["cookies_file"] = str(Path(cookies_file).expanduser().resolve())

    ConfigManager(CONFIG_FILE).save_new_config(settings)
    console.print(
        f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]"
    )
    console.print("Ready to download! Try: [cyan]streamgrab download <URL>[/cyan]")


@app.command()
def validate():
    """Validate the current configuration."""
    try:
        config = ConfigManager(CONFIG_FILE).load_config()
        print_validation_table(config)
    except StreamGrabError as e:
        console.print(f"[red]✗ Configuration is invalid: {e}[/red]")
        raise typer.Exit(code=1) from e


def parse_header_options(headers: list[str] | None) -> dict[str, str]:
    """Turns repeated `--header "Name: value"` options into a dict."""
    parsed: dict[str, str] = {}
    for header in headers or []:
        name, sep, value = header.partition(":")
        if not sep or not name.strip():
            raise typer.BadParameter(
                f"Expected 'Name: value', got '{header}'.", param_hint="--header"
            )
        parsed[name.strip().lower()] = value.strip()
    return parsed


def build_cli_context(
    cookie: str | None,
    referer: str | None,
    headers: list[str] | None,
    har: Path | None,
    auth_store: AuthStore,
    registry: StreamRegistry,
) -> AuthContext:
    """
    Combines credentials given on the command line with those captured in a
    HAR file. Explicit options win over captured values.
    """
    custom = parse_header_options(headers)
    explicit = AuthContext(
        cookie=cookie or custom.pop("cookie", None),
        authorization=custom.pop("authorization", None),
        referer=referer or custom.pop("referer", None),
        origin=custom.pop("origin", None),
        custom_headers=custom,
        page_url=referer,
    )

    if har is not None:
        result = import_har(har, auth_store, registry, CLI_CONTEXT_ID)
        console.print(
            f"[dim]Captured credentials from {result.captured} of "
            f"{result.entries} HAR requests.[/dim]"
        )
    return auth_store.update(CLI_CONTEXT_ID, explicit)


def load_credential_store(config: EngineConfig) -> CredentialStore | None:
    if not config.cookies_file:
        return None
    return CookieFileStore(Path(config.cookies_file).expanduser())


def _load_config(cli_options: dict) -> EngineConfig:
    try:
        return ConfigManager(CONFIG_FILE).load_config(cli_options)
    except StreamGrabError as e:
        console.print(f"[bold red]Error: {e}[/bold red]")
        raise typer.Exit(code=1) from e


@app.command(name="download")
def download_command(
    url: str = typer.Argument(..., help="Manifest (.m3u8/.mpd) or media file URL."),
    quality: str | None = typer.Option(
        None,
        "-q",
        "--quality",
        help="Representation to download (id or URL from `qualities`).",
    ),
    stream_type: StreamType | None = typer.Option(
        None,
        "--type",
        "-t",
        help="Override the stream type guessed from the URL.",
        case_sensitive=False,
    ),
    filename: str | None = typer.Option(
        None, "--filename", "-f", help="Name of the saved file."
    ),
    output_dir: str | None = typer.Option(
        None, "-o", "--output", help="Directory for the saved file."
    ),
    cookie: str | None = typer.Option(
        None, "--cookie", help="Cookie header value of the browsing session."
    ),
    referer: str | None = typer.Option(
        None, "--referer", help="Page URL the stream was played on."
    ),
    headers: list[str] | None = typer.Option(  # noqa: B008
        None, "--header", "-H", help="Extra request header 'Name: value' (repeatable)."
    ),
    cookies_file: str | None = typer.Option(
        None, "--cookies-file", help="Netscape cookies.txt used when no cookie is set."
    ),
    har: Path | None = typer.Option(  # noqa: B008
        None,
        "--har",
        help="HAR export whose requests provide session credentials.",
        exists=True,
        dir_okay=False,
    ),
    concurrency: int | None = typer.Option(
        None, "-c", "--concurrency", help="Simultaneous segment requests (default 3)."
    ),
    overwrite: bool | None = typer.Option(
        None, "--overwrite/--no-overwrite", help="Replace an existing file."
    ),
    yes: bool = typer.Option(
        False, "--yes", "-y", help="Save without asking for confirmation."
    ),
    log_dir: Path | None = typer.Option(  # noqa: B008
        None, "--log-dir", help="Write JSON-lines event logs to this directory."
    ),
):
    """Download a stream."""
    cli_options = {
        "output_dir": output_dir,
        "cookies_file": cookies_file,
        "concurrency": concurrency,
        "overwrite": overwrite,
    }
    if yes:
        cli_options["confirm_save"] = False
    config = _load_config(cli_options)

    auth_store = AuthStore()
    registry = StreamRegistry(config.blacklisted_domains, config.min_size)
    descriptor = StreamDescriptor(
        url=url,
        type=stream_type or classify_type(url),
        filename=filename,
        page_url=referer,
    )
    if quality:
        descriptor.select_representation(quality)

    async def _download_async():
        base_logger, acquisition_logger = create_structured_logger(
            log_dir, enable_json=log_dir is not None
        )
        duration = 0.0
        result = None
        try:
            context = build_cli_context(
                cookie, referer, headers, har, auth_store, registry
            )
            credential_store = load_credential_store(config)
            saver = DiskFileSaver(
                Path(config.output_dir),
                overwrite=config.overwrite,
                confirm=lambda path: typer.confirm(f"Save to '{path}'?", default=True),
            )

            console.print(
                f"[bold cyan]🎬 Acquiring {descriptor.type.value.upper()} stream..."
                "[/bold cyan]"
            )
            async with (
                open_session(config) as session,
                ProgressManager(console=console) as progress,
            ):
                progress.add_acquisition(
                    descriptor.id,
                    build_output_filename(filename, url, descriptor.type.value),
                )
                orchestrator = AcquisitionOrchestrator(
                    descriptor,
                    SegmentFetcher(session),
                    config=config,
                    context=context,
                    saver=saver,
                    on_progress=progress,
                    acquisition_logger=acquisition_logger,
                    credential_store=credential_store,
                )
                start_time = time.monotonic()
                result = await orchestrator.acquire()
                duration = time.monotonic() - start_time
                progress.finish(descriptor.id, success=result.ok)
        except StreamGrabError as e:
            console.print(f"[bold red]Error: {escape(str(e))}[/bold red]")
            raise typer.Exit(code=1) from e
        finally:
            auth_store.discard(CLI_CONTEXT_ID)
            registry.discard(CLI_CONTEXT_ID)
            base_logger.close()

        print_summary_panel(result, duration)
        if not result.ok:
            raise typer.Exit(code=1)

    asyncio.run(_download_async())


@app.command()
def qualities(
    url: str = typer.Argument(..., help="HLS or DASH manifest URL."),
    cookie: str | None = typer.Option(
        None, "--cookie", help="Cookie header value of the browsing session."
    ),
    referer: str | None = typer.Option(
        None, "--referer", help="Page URL the stream was played on."
    ),
    headers: list[str] | None = typer.Option(  # noqa: B008
        None, "--header", "-H", help="Extra request header 'Name: value' (repeatable)."
    ),
    har: Path | None = typer.Option(  # noqa: B008
        None, "--har", help="HAR export providing credentials.", exists=True
    ),
):
    """List the representations offered by a manifest."""
    config = _load_config({})
    stream_type = classify_type(url)

    async def _qualities_async():
        auth_store = AuthStore()
        registry = StreamRegistry()
        context = build_cli_context(cookie, referer, headers, har, auth_store, registry)
        context = ensure(context, url, load_credential_store(config))
        async with open_session(config) as session:
            text = await SegmentFetcher(session).fetch_text(url, context)

        if stream_type is StreamType.DASH or text.lstrip().startswith("<"):
            representations = dash.parse_manifest(text, url)
        elif hls.is_master_playlist(text):
            representations = hls.parse_master_playlist(text, url)
        else:
            segments = hls.parse_media_playlist(text, url)
            console.print(
                f"[yellow]Single-quality playlist with {len(segments)} segments."
                "[/yellow]"
            )
            return
        print_representations_table(representations)

    try:
        asyncio.run(_qualities_async())
    except StreamGrabError as e:
        console.print(f"[bold red]Error: {escape(str(e))}[/bold red]")
        raise typer.Exit(code=1) from e


@app.command()
def scan(
    target: str = typer.Argument(..., help="A HAR file or a web page URL."),
):
    """Detect streams in a HAR capture or a web page."""
    config = _load_config({})
    registry = StreamRegistry(config.blacklisted_domains, config.min_size)

    async def _scan_page(page_url: str):
        async with open_session(config) as session:
            return await fetch_and_scan(session, page_url)

    try:
        if Path(target).is_file():
            import_har(Path(target), AuthStore(), registry, CLI_CONTEXT_ID)
        else:
            for descriptor in asyncio.run(_scan_page(target)):
                registry.register(CLI_CONTEXT_ID, descriptor)
    except StreamGrabError as e:
        console.print(f"[bold red]Error: {escape(str(e))}[/bold red]")
        raise typer.Exit(code=1) from e

    print_streams_table(registry.list(CLI_CONTEXT_ID))
