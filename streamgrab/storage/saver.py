"""
The file-save collaborator: writes assembled artifacts to disk.
"""

import logging
from pathlib import Path
from typing import Callable, Optional, Protocol

import aiofiles

from streamgrab.exceptions import SaveError, StreamGrabError
from streamgrab.models.stream import SaveRequest
from streamgrab.utils.path import create_dir, sanitize_filename, unique_path

log = logging.getLogger(__name__)

ConfirmCallback = Callable[[Path], bool]


class SaveCancelledError(StreamGrabError):
    """Raised when the user declines to save the artifact."""


class FileSaver(Protocol):
    async def save(self, request: SaveRequest) -> Path: ...


class DiskFileSaver:
    """Saves artifacts into an output directory without clobbering files."""

    def __init__(
        self,
        output_dir: Path,
        overwrite: bool = False,
        confirm: Optional[ConfirmCallback] = None,
    ):
        """
        Args:
            output_dir: Directory that receives the artifacts.
            overwrite: Replace existing files instead of picking a new name.
            confirm: Asked with the target path when a request wants confirmation.
        """
        self.output_dir = Path(output_dir)
        self.overwrite = overwrite
        self._confirm = confirm

    def _target_path(self, suggested_filename: str) -> Path:
        filename = sanitize_filename(suggested_filename)
        if self.overwrite:
            return self.output_dir / filename
        return unique_path(self.output_dir, filename)

    async def save(self, request: SaveRequest) -> Path:
        """
        Writes the request's bytes and returns the final path.

        Raises:
            SaveCancelledError: If confirmation was requested and declined.
            SaveError: If the output directory or the file cannot be written.
        """
        try:
            create_dir(self.output_dir)
        except OSError as e:
            raise SaveError(
                f"Cannot create output directory {self.output_dir}: {e}"
            ) from e
        path = self._target_path(request.suggested_filename)

        if request.confirm and self._confirm is not None and not self._confirm(path):
            raise SaveCancelledError(f"Saving '{path.name}' was cancelled.")

        tmp_path = path.with_name(path.name + ".part")
        try:
            async with aiofiles.open(tmp_path, "wb") as f:
                await f.write(request.data)
            tmp_path.replace(path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise SaveError(f"Failed to write {path}: {e}") from e

        log.debug(f"Saved {len(request.data)} bytes to {path}")
        return path
