"""Print history logger tests."""

from unittest.mock import AsyncMock

from fastapi_printqueue.fsm import HistoryEventType, JobStatus
from fastapi_printqueue.history import FailureStats, PrintHistoryLogger
from fastapi_printqueue.queue import JobSpec


async def test_append_and_timeline(history, clock) -> None:
    await history.append(
        "job-1", HistoryEventType.CREATED, None, JobStatus.PENDING
    )
    clock.advance(seconds=5)
    await history.append(
        "job-1",
        HistoryEventType.STATUS_CHANGED,
        JobStatus.PENDING,
        JobStatus.PROCESSING,
        {"printerId": "printer-1"},
        printer_id="printer-1",
    )

    events = await history.timeline("job-1")

    assert [e.event_type for e in events] == ["created", "status_changed"]
    assert events[1].detail == {"printerId": "printer-1"}
    assert events[1].created_at == clock()
    assert await history.timeline("job-2") == []


async def test_append_never_raises(clock, caplog) -> None:
    store = AsyncMock()
    store.add.side_effect = RuntimeError("disk full")
    logger = PrintHistoryLogger(store, clock)

    result = await logger.append(
        "job-1", HistoryEventType.FAILED, "processing", "failed"
    )

    assert result is None
    assert "Failed to record failed history event for job job-1" in caplog.text


async def test_failure_stats_by_printer_and_window(
    queue, completion, history, clock
) -> None:
    async def run(printer_id, success):
        job = await queue.enqueue(
            JobSpec(user_id="user-1", printer_id=printer_id, max_retries=1)
        )
        await queue.transition(job.id, JobStatus.PROCESSING)
        await completion.complete(job.id, success, "jam")

    await run("printer-1", False)
    clock.advance(hours=2)
    since = clock()
    await run("printer-1", True)
    await run("printer-1", False)
    await run("printer-2", True)

    stats = await history.failure_stats(printer_id="printer-1")
    assert stats == FailureStats(completed=1, failed=2)
    assert stats.failure_rate == 2 / 3

    recent = await history.failure_stats(since=since, printer_id="printer-1")
    assert recent.total == 2
    assert await history.printer_throughput("printer-2") == 1


def test_failure_rate_without_events() -> None:
    assert FailureStats(completed=0, failed=0).failure_rate == 0.0
