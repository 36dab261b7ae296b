"""
Bounded-concurrency retrieval of an ordered segment list.

Segments are split into fixed-size windows. Windows run strictly one after
another; the requests inside a window run concurrently. Chunks are stored by
position, so completion order inside a window never affects output order.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional, Protocol

from streamgrab.auth.context import AuthContext
from streamgrab.exceptions import (
    FailureBudgetExceededError,
    FetchError,
    SegmentFetchError,
)
from streamgrab.models.stream import ProgressEvent, Segment

log = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 3
DEFAULT_FAILURE_BUDGET = 5
# Shortest run of missing segments accepted as the end of a probed list
MIN_END_OF_CONTENT_RUN = 3

ProgressCallback = Callable[[ProgressEvent], None]
SegmentTransform = Callable[[int, bytes], Awaitable[bytes]]


class Fetcher(Protocol):
    async def fetch_authenticated(self, url: str, context: Optional[AuthContext]): ...


class FailurePolicy(str, Enum):
    """
    STRICT suits explicit segment lists (HLS): any failure is a real defect.
    TOLERANT suits generated lists (DASH templates), which are expected to run
    past the true end of the content.
    """

    STRICT = "strict"
    TOLERANT = "tolerant"


@dataclass
class BatchResult:
    """Retrieved chunks in segment order plus the number of failed segments."""

    chunks: list[bytes] = field(default_factory=list)
    failure_count: int = 0
    reached_end: bool = False

    @property
    def total_bytes(self) -> int:
        return sum(len(chunk) for chunk in self.chunks)


class BatchScheduler:
    """
    Retrieves segments window by window with retries, a failure budget and
    progress reporting.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        concurrency: int = DEFAULT_CONCURRENCY,
        failure_budget: int = DEFAULT_FAILURE_BUDGET,
        policy: FailurePolicy = FailurePolicy.STRICT,
        segment_retries: int = 0,
        retry_delay: float = 1.0,
        on_progress: Optional[ProgressCallback] = None,
        acquisition_id: str = "",
        transform: Optional[SegmentTransform] = None,
        end_probe: bool = False,
    ):
        """
        Args:
            fetcher: Anything exposing `fetch_authenticated(url, context)`.
            concurrency: Window size, i.e. max simultaneous segment requests.
            failure_budget: Failures tolerated before a TOLERANT run aborts.
            policy: How segment failures are treated.
            segment_retries: Extra attempts per segment before it counts as failed.
            retry_delay: Base delay for exponential backoff between attempts.
            on_progress: Observer invoked synchronously after every window.
            acquisition_id: Identifier reported in progress events.
            transform: Optional coroutine applied to each chunk (e.g. decryption).
            end_probe: The list is an estimate that may run past the content;
                a run of missing segments after real content ends retrieval
                instead of counting against the budget.
        """
        if concurrency < 1:
            raise ValueError("Concurrency must be at least 1.")
        self.fetcher = fetcher
        self.concurrency = concurrency
        self.failure_budget = failure_budget
        self.policy = policy
        self.segment_retries = segment_retries
        self.retry_delay = retry_delay
        self.on_progress = on_progress
        self.acquisition_id = acquisition_id
        self.transform = transform
        self.end_probe = end_probe

    def _windows(self, segments: list[Segment]) -> list[list[Segment]]:
        return [
            segments[i : i + self.concurrency]
            for i in range(0, len(segments), self.concurrency)
        ]

    async def _fetch_segment(
        self, segment: Segment, context: Optional[AuthContext]
    ) -> Optional[bytes]:
        """Returns the (transformed) segment body, or None if every attempt failed."""
        for attempt in range(1, self.segment_retries + 2):
            try:
                response = await self.fetcher.fetch_authenticated(segment.url, context)
                data = response.body
                if self.transform is not None:
                    data = await self.transform(segment.sequence_index, data)
                return data
            except FetchError as e:
                log.debug(
                    f"Segment {segment.sequence_index} attempt "
                    f"{attempt}/{self.segment_retries + 1} failed: {e}"
                )
                if attempt <= self.segment_retries:
                    await asyncio.sleep(self.retry_delay * (2 ** (attempt - 1)))
        return None

    def _report(self, completed: int, total: int) -> None:
        if self.on_progress is None:
            return
        try:
            self.on_progress(ProgressEvent(self.acquisition_id, completed, total))
        except Exception as e:
            log.debug(f"Progress observer raised: {e}")

    async def retrieve_all(
        self, segments: list[Segment], context: Optional[AuthContext] = None
    ) -> BatchResult:
        """
        Retrieves every segment in order.

        Raises:
            SegmentFetchError: Under STRICT policy, on the first failed segment.
            FailureBudgetExceededError: Under TOLERANT policy, once failures
                exceed the budget. The partial result is discarded.
        """
        total = len(segments)
        result = BatchResult()
        completed = 0
        # Failures not yet followed by a success; in probe mode a long enough
        # run of them after real content marks the end of the stream.
        pending: list[Segment] = []
        end_run = max(self.concurrency, MIN_END_OF_CONTENT_RUN)

        for window in self._windows(segments):
            bodies = await asyncio.gather(
                *(self._fetch_segment(segment, context) for segment in window)
            )

            for position, (segment, body) in enumerate(zip(window, bodies)):
                if body is None:
                    if self.policy is FailurePolicy.STRICT:
                        raise SegmentFetchError(
                            f"Segment {segment.sequence_index} could not be "
                            f"downloaded ({completed + position + 1}/{total}): "
                            f"{segment.url}"
                        )
                    pending.append(segment)
                    continue
                self._charge(result, pending)
                pending = []
                result.chunks.append(body)

            completed += len(window)

            if self.end_probe and result.chunks and len(pending) >= end_run:
                log.debug(
                    f"{len(pending)} consecutive segments missing after segment "
                    f"{pending[0].sequence_index - 1}; treating it as the end of "
                    "the content."
                )
                result.reached_end = True
                pending = []
                self._report(len(result.chunks), len(result.chunks))
                break

            charged = result.failure_count
            if not (self.end_probe and result.chunks):
                charged += len(pending)
            if charged > self.failure_budget:
                raise FailureBudgetExceededError(
                    f"{charged} segments failed; authentication likely expired."
                )

            self._report(completed, total)

        self._charge(result, pending)
        if result.failure_count > self.failure_budget:
            raise FailureBudgetExceededError(
                f"{result.failure_count} segments failed; "
                "authentication likely expired."
            )
        return result

    def _charge(self, result: BatchResult, failed: list[Segment]) -> None:
        """Counts skipped segments against the failure budget."""
        for segment in failed:
            result.failure_count += 1
            log.warning(
                f"[yellow]Skipped segment {segment.sequence_index} "
                f"({result.failure_count}/{self.failure_budget} failures).[/yellow]"
            )
