import asyncio
import random

import pytest

from streamgrab.core.scheduler import BatchScheduler, FailurePolicy
from streamgrab.exceptions import (
    FailureBudgetExceededError,
    FetchError,
    SegmentFetchError,
)
from streamgrab.models.stream import Segment


class FakeResponse:
    def __init__(self, body: bytes):
        self.body = body


class FakeFetcher:
    """Serves `seg-N` URLs; listed indices fail, optional random latency."""

    def __init__(self, failing=(), jitter: bool = False, fail_times=None):
        self.failing = set(failing)
        self.jitter = jitter
        self.fail_times = dict(fail_times or {})
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch_authenticated(self, url, context=None):
        self.calls.append(url)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.jitter:
                await asyncio.sleep(random.uniform(0, 0.01))
            else:
                await asyncio.sleep(0)
            index = int(url.rsplit("-", 1)[1])
            if index in self.failing:
                raise FetchError(f"HTTP 404 for {url}", url=url, status=404)
            if self.fail_times.get(index, 0) > 0:
                self.fail_times[index] -= 1
                raise FetchError(f"HTTP 500 for {url}", url=url, status=500)
            return FakeResponse(f"<{index}>".encode())
        finally:
            self.in_flight -= 1


def segments(count: int, start: int = 0) -> list[Segment]:
    return [
        Segment(url=f"https://cdn.example/seg-{i}", sequence_index=i)
        for i in range(start, start + count)
    ]


async def test_chunks_keep_segment_order_despite_completion_order():
    fetcher = FakeFetcher(jitter=True)
    scheduler = BatchScheduler(fetcher, concurrency=4)

    result = await scheduler.retrieve_all(segments(17))

    assert result.chunks == [f"<{i}>".encode() for i in range(17)]
    assert result.failure_count == 0


async def test_concurrency_bounds_simultaneous_requests():
    fetcher = FakeFetcher(jitter=True)

    await BatchScheduler(fetcher, concurrency=3).retrieve_all(segments(10))

    assert fetcher.max_in_flight <= 3


async def test_strict_policy_fails_on_first_missing_segment():
    fetcher = FakeFetcher(failing={4})
    scheduler = BatchScheduler(fetcher, concurrency=3, policy=FailurePolicy.STRICT)

    with pytest.raises(SegmentFetchError) as exc_info:
        await scheduler.retrieve_all(segments(9))

    assert not isinstance(exc_info.value, FailureBudgetExceededError)
    # The window holding segment 4 finishes; later windows never start
    assert "https://cdn.example/seg-6" not in fetcher.calls


async def test_tolerant_policy_skips_failures_within_budget():
    fetcher = FakeFetcher(failing={1, 4})
    scheduler = BatchScheduler(
        fetcher, concurrency=3, failure_budget=2, policy=FailurePolicy.TOLERANT
    )

    result = await scheduler.retrieve_all(segments(6))

    assert result.failure_count == 2
    assert result.chunks == [b"<0>", b"<2>", b"<3>", b"<5>"]


async def test_failures_equal_to_budget_are_tolerated():
    fetcher = FakeFetcher(failing={0, 1, 2})
    scheduler = BatchScheduler(
        fetcher, concurrency=3, failure_budget=3, policy=FailurePolicy.TOLERANT
    )

    result = await scheduler.retrieve_all(segments(6))

    assert result.failure_count == 3
    assert len(result.chunks) == 3


async def test_failures_above_budget_abort_and_discard():
    fetcher = FakeFetcher(failing={0, 1, 2, 3})
    scheduler = BatchScheduler(
        fetcher, concurrency=3, failure_budget=3, policy=FailurePolicy.TOLERANT
    )

    with pytest.raises(FailureBudgetExceededError):
        await scheduler.retrieve_all(segments(9))

    assert "https://cdn.example/seg-6" not in fetcher.calls


ISOLATED_FAILURES = {1, 3, 5, 7, 9}


@pytest.mark.parametrize("end_probe", [False, True])
async def test_tolerant_accepts_isolated_failures_up_to_budget(end_probe):
    fetcher = FakeFetcher(failing=ISOLATED_FAILURES)
    scheduler = BatchScheduler(
        fetcher,
        concurrency=3,
        failure_budget=5,
        policy=FailurePolicy.TOLERANT,
        end_probe=end_probe,
    )

    result = await scheduler.retrieve_all(segments(12))

    assert result.failure_count == 5
    assert not result.reached_end
    assert result.chunks == [
        f"<{i}>".encode() for i in range(12) if i not in ISOLATED_FAILURES
    ]


@pytest.mark.parametrize("end_probe", [False, True])
async def test_tolerant_aborts_on_sixth_isolated_failure(end_probe):
    fetcher = FakeFetcher(failing=ISOLATED_FAILURES | {11})
    scheduler = BatchScheduler(
        fetcher,
        concurrency=3,
        failure_budget=5,
        policy=FailurePolicy.TOLERANT,
        end_probe=end_probe,
    )

    with pytest.raises(FailureBudgetExceededError, match="^6 segments failed"):
        await scheduler.retrieve_all(segments(13))


async def test_strict_aborts_on_first_isolated_failure():
    fetcher = FakeFetcher(failing=ISOLATED_FAILURES)
    scheduler = BatchScheduler(
        fetcher, concurrency=3, failure_budget=5, policy=FailurePolicy.STRICT
    )

    with pytest.raises(SegmentFetchError, match="Segment 1 could not") as excinfo:
        await scheduler.retrieve_all(segments(12))

    assert excinfo.type is SegmentFetchError
    assert "https://cdn.example/seg-3" not in fetcher.calls


async def test_end_probe_charges_short_trailing_run():
    # Two trailing misses are too short to mean end of content
    fetcher = FakeFetcher(failing={1, 3, 5, 7, 9, 13, 14})
    scheduler = BatchScheduler(
        fetcher,
        concurrency=3,
        failure_budget=5,
        policy=FailurePolicy.TOLERANT,
        end_probe=True,
    )

    with pytest.raises(FailureBudgetExceededError, match="^7 segments failed"):
        await scheduler.retrieve_all(segments(15))


async def test_end_probe_short_trailing_run_within_budget():
    fetcher = FakeFetcher(failing={1, 13, 14})
    scheduler = BatchScheduler(
        fetcher,
        concurrency=3,
        failure_budget=5,
        policy=FailurePolicy.TOLERANT,
        end_probe=True,
    )

    result = await scheduler.retrieve_all(segments(15))

    assert result.failure_count == 3
    assert not result.reached_end
    assert len(result.chunks) == 12


async def test_retries_recover_transient_failures():
    fetcher = FakeFetcher(fail_times={2: 2})
    scheduler = BatchScheduler(fetcher, concurrency=2, segment_retries=2, retry_delay=0)

    result = await scheduler.retrieve_all(segments(4))

    assert len(result.chunks) == 4
    assert fetcher.calls.count("https://cdn.example/seg-2") == 3


async def test_end_probe_stops_at_first_missing_run():
    # Content ends after segment 4; the estimated list runs to 30
    fetcher = FakeFetcher(failing=set(range(5, 40)))
    scheduler = BatchScheduler(
        fetcher,
        concurrency=3,
        failure_budget=1,
        policy=FailurePolicy.TOLERANT,
        end_probe=True,
    )

    result = await scheduler.retrieve_all(segments(30))

    assert result.reached_end
    assert result.failure_count == 0
    assert result.chunks == [f"<{i}>".encode() for i in range(5)]
    assert "https://cdn.example/seg-12" not in fetcher.calls


async def test_end_probe_counts_gaps_followed_by_content():
    fetcher = FakeFetcher(failing={2})
    scheduler = BatchScheduler(
        fetcher,
        concurrency=3,
        failure_budget=1,
        policy=FailurePolicy.TOLERANT,
        end_probe=True,
    )

    result = await scheduler.retrieve_all(segments(6))

    assert not result.reached_end
    assert result.failure_count == 1
    assert len(result.chunks) == 5


async def test_end_probe_without_any_content_exhausts_budget():
    fetcher = FakeFetcher(failing=set(range(0, 30)))
    scheduler = BatchScheduler(
        fetcher,
        concurrency=3,
        failure_budget=5,
        policy=FailurePolicy.TOLERANT,
        end_probe=True,
    )

    with pytest.raises(FailureBudgetExceededError):
        await scheduler.retrieve_all(segments(30))


async def test_progress_reported_after_every_window():
    events = []
    scheduler = BatchScheduler(
        FakeFetcher(), concurrency=4, on_progress=events.append, acquisition_id="a1"
    )

    await scheduler.retrieve_all(segments(10))

    assert [(e.segments_completed, e.segments_total) for e in events] == [
        (4, 10),
        (8, 10),
        (10, 10),
    ]
    assert [e.percent for e in events] == [40, 80, 100]
    assert {e.acquisition_id for e in events} == {"a1"}


async def test_progress_observer_errors_do_not_stop_retrieval():
    def broken(event):
        raise RuntimeError("observer failed")

    scheduler = BatchScheduler(FakeFetcher(), concurrency=2, on_progress=broken)

    result = await scheduler.retrieve_all(segments(3))

    assert len(result.chunks) == 3


async def test_transform_applied_with_sequence_index():
    async def tag(index, data):
        return data + str(index).encode()

    scheduler = BatchScheduler(FakeFetcher(), concurrency=2, transform=tag)

    result = await scheduler.retrieve_all(segments(2, start=7))

    assert result.chunks == [b"<7>7", b"<8>8"]


async def test_empty_segment_list():
    result = await BatchScheduler(FakeFetcher()).retrieve_all([])

    assert result.chunks == []
    assert result.total_bytes == 0


def test_concurrency_must_be_positive():
    with pytest.raises(ValueError):
        BatchScheduler(FakeFetcher(), concurrency=0)
