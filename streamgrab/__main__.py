"""
`python -m streamgrab` / `streamgrab` console script.

Runs the Typer app and turns anything that escapes a command into a Rich
error panel with hints and a non-zero exit status.
"""

import asyncio
import logging
import os
import sys

import typer
from rich.console import Console

from streamgrab.cli.app import app
from streamgrab.cli.formatters import format_error_with_suggestions
from streamgrab.exceptions import StreamGrabError

log = logging.getLogger("streamgrab")


def _force_utf8_stdio() -> None:
    # Page titles end up in filenames and tables; cp1252 consoles choke on them.
    if os.name != "nt":
        return
    for stream in (sys.stdout, sys.stderr):
        try:
            stream.reconfigure(encoding="utf-8")
        except (TypeError, AttributeError):
            pass


def main() -> None:
    _force_utf8_stdio()
    console = Console(stderr=True)

    try:
        app()
    except (typer.Exit, typer.Abort):
        pass
    except (KeyboardInterrupt, asyncio.CancelledError):
        console.print("\n[yellow]Stopped; streams in progress were not saved.[/yellow]")
        sys.exit(0)
    except StreamGrabError as e:
        console.print(format_error_with_suggestions(e))
        sys.exit(1)
    except Exception as e:
        console.print(format_error_with_suggestions(e, {"type": "Unexpected"}))
        log.debug("Unhandled error while acquiring streams", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
