"""
Rich progress display for acquisitions.
The manager is the engine's progress observer: it receives a ProgressEvent
after every batch window and advances the matching task.
"""

import asyncio
import logging
from datetime import datetime

from rich.console import Console
from rich.markup import escape
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)

from streamgrab.models.stream import ProgressEvent

log = logging.getLogger("streamgrab")


class ProgressManager:
    """
    Shows one progress bar per acquisition, measured in segments.

    Usage:
        async with ProgressManager(console) as progress:
            progress.add_acquisition(descriptor.id, "video.ts")
            orchestrator = AcquisitionOrchestrator(..., on_progress=progress)
    """

    def __init__(self, console: Console, quiet: bool = False):
        self.console = console
        self.quiet = quiet

        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}", justify="left"),
            BarColumn(bar_width=30),
            "[progress.percentage]{task.percentage:>3.0f}%",
            "•",
            MofNCompleteColumn(),
            TextColumn("segments"),
            "•",
            TimeElapsedColumn(),
            "•",
            TimeRemainingColumn(),
            console=console,
            transient=False,
        )

        self._tasks: dict[str, TaskID] = {}
        self._stats = {
            "events": 0,
            "last_percent": 0,
            "start_time": None,
        }

    def add_acquisition(self, acquisition_id: str, description: str) -> TaskID | None:
        """Registers a task before the segment total is known."""
        if self.quiet:
            return None
        if len(description) > 50:
            description = description[:47] + "..."
        task_id = self.progress.add_task(escape(description), total=None, start=True)
        self._tasks[acquisition_id] = task_id
        if self._stats["start_time"] is None:
            self._stats["start_time"] = datetime.now()
        return task_id

    def __call__(self, event: ProgressEvent) -> None:
        """Progress observer entry point."""
        self._stats["events"] += 1
        self._stats["last_percent"] = event.percent
        task_id = self._tasks.get(event.acquisition_id)
        if task_id is None or self.quiet:
            log.debug(
                f"{event.acquisition_id}: {event.segments_completed}/"
                f"{event.segments_total} segments ({event.percent}%)"
            )
            return
        self.progress.update(
            task_id, completed=event.segments_completed, total=event.segments_total
        )

    def finish(self, acquisition_id: str, success: bool = True) -> None:
        task_id = self._tasks.pop(acquisition_id, None)
        if task_id is None:
            return
        style = "green" if success else "red"
        task = next(t for t in self.progress.tasks if t.id == task_id)
        total = task.total or 1
        self.progress.update(
            task_id,
            description=f"[{style}]{task.description}[/{style}]",
            total=total,
            completed=total if success else task.completed,
        )
        self.progress.stop_task(task_id)

    def get_statistics(self) -> dict:
        return self._stats.copy()

    async def __aenter__(self):
        if not self.quiet:
            self.progress.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if not self.quiet:
            await asyncio.sleep(0.1)
            self.progress.stop()
