"""
Data records shared by the parsers, the scheduler and the orchestrator.
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class StreamType(str, Enum):
    """Kinds of stream a descriptor can point at."""

    DIRECT = "direct"
    HLS = "hls"
    DASH = "dash"
    AUDIO = "audio"
    MSE_BLOB = "mse-blob"


def generate_id() -> str:
    """Short, roughly time-ordered identifier for a detected stream."""
    return f"{int(time.time() * 1000):x}{uuid.uuid4().hex[:6]}"


@dataclass(frozen=True)
class StreamDescriptor:
    """
    A candidate stream handed to the engine by upstream detection.

    Everything is immutable except `selected_representation`, which the caller
    may set exactly once (via `select_representation`) before acquisition.
    """

    url: str
    type: StreamType = StreamType.DIRECT
    quality: Optional[str] = None
    filename: Optional[str] = None
    duration: Optional[float] = None
    resolution: Optional[str] = None
    page_url: Optional[str] = None
    page_title: Optional[str] = None
    content_type: Optional[str] = None
    size: int = 0
    id: str = field(default_factory=generate_id)
    selected_representation: Optional[str] = None

    def select_representation(self, value: str) -> None:
        """Pins the representation (URL or id) to acquire."""
        if self.selected_representation is not None:
            raise ValueError(
                f"Representation already selected for stream {self.id}: "
                f"{self.selected_representation}"
            )
        object.__setattr__(self, "selected_representation", value)

    @property
    def is_adaptive(self) -> bool:
        return self.type in (StreamType.HLS, StreamType.DASH)


@dataclass(frozen=True)
class SegmentTemplate:
    """DASH URL pattern from which segment URLs are generated."""

    media: Optional[str] = None
    initialization: Optional[str] = None
    start_number: int = 1
    timescale: int = 1
    duration: int = 0

    @property
    def segment_seconds(self) -> float:
        if self.duration <= 0 or self.timescale <= 0:
            return 0.0
        return self.duration / self.timescale


@dataclass(frozen=True)
class Representation:
    """One quality/bitrate variant of a stream."""

    id: str
    bandwidth: int = 0
    url: Optional[str] = None
    segment_template: Optional[SegmentTemplate] = None
    resolution: Optional[str] = None
    codecs: Optional[str] = None
    is_audio: bool = False
    is_video: bool = False
    label: str = ""
    mime_type: Optional[str] = None
    presentation_duration: Optional[float] = None

    @property
    def height(self) -> int:
        if not self.resolution or "x" not in self.resolution:
            return 0
        try:
            return int(self.resolution.split("x", 1)[1])
        except ValueError:
            return 0


@dataclass(frozen=True)
class Segment:
    """One time-bounded chunk of media, in manifest order."""

    url: str
    sequence_index: int
    duration: Optional[float] = None


@dataclass(frozen=True)
class KeyInfo:
    """An HLS `#EXT-X-KEY` directive that requires AES-128 decryption."""

    key_uri: str
    method: str = "AES-128"
    explicit_iv: Optional[bytes] = None


@dataclass(frozen=True)
class ProgressEvent:
    """Emitted after every batch window."""

    acquisition_id: str
    segments_completed: int
    segments_total: int
    percent: int = field(init=False)

    def __post_init__(self):
        if self.segments_total > 0:
            percent = round(self.segments_completed / self.segments_total * 100)
        else:
            percent = 0
        object.__setattr__(self, "percent", min(100, percent))


@dataclass(frozen=True)
class SaveRequest:
    """Payload handed to the file-save collaborator."""

    data: bytes
    suggested_filename: str
    confirm: bool = True


class AcquisitionStatus(str, Enum):
    OK = "ok"
    ERROR = "error"


@dataclass
class AcquisitionResult:
    """Outcome of one acquisition request."""

    status: AcquisitionStatus
    bytes_assembled: int = 0
    segment_count: int = 0
    error_detail: Optional[str] = None
    output_path: Optional[str] = None
    state_history: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status is AcquisitionStatus.OK

    @classmethod
    def success(
        cls, bytes_assembled: int, segment_count: int, output_path: str | None = None
    ) -> "AcquisitionResult":
        return cls(
            status=AcquisitionStatus.OK,
            bytes_assembled=bytes_assembled,
            segment_count=segment_count,
            output_path=output_path,
        )

    @classmethod
    def failure(cls, detail: str) -> "AcquisitionResult":
        return cls(status=AcquisitionStatus.ERROR, error_detail=detail)

    def as_record(self) -> dict[str, Any]:
        """The flat result record reported back to the caller."""
        if self.ok:
            return {"ok": True, "segmentCount": self.segment_count}
        return {"error": self.error_detail or "Unknown error"}
