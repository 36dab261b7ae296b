"""
Structured logging for acquisition runs.
Writes JSON-lines event logs alongside the human-readable console output.
"""

import json
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any


class StructuredLogger:
    """
    Logger that emits each event both to the standard logger and, optionally,
    as one JSON object per line in a session log file.

    Usage:
        logger = StructuredLogger("streamgrab", log_dir=Path("logs"))
        logger.info("acquisition_completed", acquisition_id="a1", segments=42)
    """

    def __init__(
        self,
        name: str,
        log_dir: Path | None = None,
        enable_json: bool = True,
        enable_console: bool = True,
    ):
        """
        Args:
            name: Logger name
            log_dir: Directory for JSON log files (None = disabled)
            enable_json: Enable JSON file logging
            enable_console: Forward events to the standard logger
        """
        self.name = name
        self.log_dir = log_dir
        self.enable_json = enable_json and log_dir is not None
        self.enable_console = enable_console
        self.json_log_path: Path | None = None

        self._logger = logging.getLogger(name)

        self._json_file = None
        if self.enable_json:
            log_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.json_log_path = log_dir / f"streamgrab_{timestamp}.jsonl"
            self._json_file = open(  # noqa: SIM115
                self.json_log_path, "a", encoding="utf-8"
            )

        # Added to every JSON entry
        self._session_context: dict[str, Any] = {
            "session_id": f"{int(time.time())}_{id(self)}",
            "start_time": datetime.now().isoformat(),
        }

    def set_session_context(self, **kwargs) -> None:
        """Set session-level context that appears in all logs."""
        self._session_context.update(kwargs)

    def _format_message(self, event: str, **context) -> str:
        parts = [f"[{event}]"]
        parts.extend(f"{key}={value}" for key, value in context.items())
        return " ".join(parts)

    def _write_json(self, level: str, event: str, **context) -> None:
        if not self._json_file or self._json_file.closed:
            return

        entry = {
            "timestamp": datetime.now().isoformat(),
            "level": level,
            "event": event,
            **self._session_context,
            **context,
        }

        try:
            self._json_file.write(json.dumps(entry, default=str) + "\n")
            self._json_file.flush()
        except OSError as e:
            print(f"JSON logging failed: {e}", file=sys.stderr)

    def _emit(self, level: int, event: str, **context) -> None:
        if self.enable_console:
            # Markup off: event context may contain brackets from URLs
            self._logger.log(
                level,
                self._format_message(event, **context),
                extra={"markup": False},
            )
        if self.enable_json:
            self._write_json(logging.getLevelName(level), event, **context)

    def debug(self, event: str, **context) -> None:
        self._emit(logging.DEBUG, event, **context)

    def info(self, event: str, **context) -> None:
        self._emit(logging.INFO, event, **context)

    def warning(self, event: str, **context) -> None:
        self._emit(logging.WARNING, event, **context)

    def error(self, event: str, **context) -> None:
        self._emit(logging.ERROR, event, **context)

    def close(self) -> None:
        """Close JSON log file."""
        if self._json_file and not self._json_file.closed:
            self._json_file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class AcquisitionLogger:
    """Event helpers for the acquisition state machine."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def acquisition_started(self, acquisition_id: str, url: str, stream_type: str):
        self.logger.info(
            "acquisition_started",
            acquisition_id=acquisition_id,
            url=url,
            stream_type=stream_type,
        )

    def state_changed(self, acquisition_id: str, from_state: str, to_state: str):
        self.logger.debug(
            "acquisition_state_changed",
            acquisition_id=acquisition_id,
            from_state=from_state,
            to_state=to_state,
        )

    def representation_selected(
        self, acquisition_id: str, representation_id: str, bandwidth: int
    ):
        self.logger.info(
            "representation_selected",
            acquisition_id=acquisition_id,
            representation_id=representation_id,
            bandwidth=bandwidth,
        )

    def segments_retrieved(
        self,
        acquisition_id: str,
        segment_count: int,
        failure_count: int,
        reached_end: bool,
    ):
        self.logger.info(
            "segments_retrieved",
            acquisition_id=acquisition_id,
            segment_count=segment_count,
            failure_count=failure_count,
            reached_end=reached_end,
        )

    def acquisition_completed(
        self,
        acquisition_id: str,
        bytes_assembled: int,
        segment_count: int,
        duration_s: float,
        output_path: str | None,
    ):
        """Log a persisted acquisition."""
        self.logger.info(
            "acquisition_completed",
            acquisition_id=acquisition_id,
            bytes_assembled=bytes_assembled,
            size_mb=round(bytes_assembled / (1024 * 1024), 2),
            segment_count=segment_count,
            duration_s=round(duration_s, 2),
            output_path=output_path,
        )

    def acquisition_failed(self, acquisition_id: str, state: str, error: str):
        """Log a failed acquisition and the state it failed in."""
        self.logger.error(
            "acquisition_failed",
            acquisition_id=acquisition_id,
            state=state,
            error=error,
        )


def create_structured_logger(
    log_dir: Path | None = None, enable_json: bool = False
) -> tuple[StructuredLogger, AcquisitionLogger]:
    """
    Create the structured loggers.

    Returns:
        Tuple of (base_logger, acquisition_logger)
    """
    base = StructuredLogger("streamgrab", log_dir=log_dir, enable_json=enable_json)
    return base, AcquisitionLogger(base)
