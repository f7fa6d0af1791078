"""Print queue store tests against a real aiosqlite database."""

from datetime import timedelta

import pytest

from fastapi_printqueue.exceptions import (
    InvalidTransitionError,
    JobNotFoundError,
    JobValidationError,
    TransitionConflictError,
)
from fastapi_printqueue.fsm import JobStatus, Priority
from fastapi_printqueue.queue import JobSpec


def _spec(**kwargs) -> JobSpec:
    values = {"user_id": "user-1", "printer_id": "printer-1"}
    values.update(kwargs)
    return JobSpec(**values)


async def test_enqueue_sets_defaults(queue, history) -> None:
    job = await queue.enqueue(_spec(payload={"orderNumber": "#1001"}))

    assert job.status == JobStatus.PENDING
    assert job.priority == Priority.NORMAL
    assert job.retry_count == 0
    assert job.max_retries == 3
    assert job.payload == {"orderNumber": "#1001"}

    events = await history.timeline(job.id)
    assert [e.event_type for e in events] == ["created"]
    assert events[0].to_status == "pending"


async def test_enqueue_rejects_unknown_priority(queue) -> None:
    with pytest.raises(JobValidationError):
        await queue.enqueue(_spec(priority="asap"))


async def test_enqueue_requires_printer(queue) -> None:
    with pytest.raises(JobValidationError):
        await queue.enqueue(_spec(printer_id=""))


async def test_list_pending_orders_by_priority_then_age(queue, clock) -> None:
    c = await queue.enqueue(_spec(priority="normal"))
    clock.advance(seconds=1)
    a = await queue.enqueue(_spec(priority="normal"))
    clock.advance(seconds=1)
    b = await queue.enqueue(_spec(priority="urgent"))

    pending = await queue.list_pending("printer-1", limit=10)

    assert [job.id for job in pending] == [b.id, c.id, a.id]


async def test_list_pending_is_scoped_to_printer_and_limited(queue) -> None:
    for _ in range(3):
        await queue.enqueue(_spec())
    await queue.enqueue(_spec(printer_id="printer-2"))

    assert len(await queue.list_pending("printer-1", limit=2)) == 2
    assert len(await queue.list_pending("printer-2", limit=10)) == 1


async def test_list_pending_only_returns_pending_or_retrying(queue) -> None:
    pending = await queue.enqueue(_spec())
    processing = await queue.enqueue(_spec())
    cancelled = await queue.enqueue(_spec())
    await queue.transition(processing.id, JobStatus.PROCESSING)
    await queue.transition(cancelled.id, JobStatus.CANCELLED)

    listed = await queue.list_pending("printer-1")

    assert [job.id for job in listed] == [pending.id]
    assert all(job.status in ("pending", "retrying") for job in listed)


async def test_list_pending_waits_for_next_attempt(queue, clock) -> None:
    job = await queue.enqueue(_spec())
    await queue.transition(job.id, JobStatus.PROCESSING)
    await queue.transition(
        job.id,
        JobStatus.RETRYING,
        retry_count=1,
        next_attempt_at=clock() + timedelta(minutes=1),
    )

    assert await queue.list_pending("printer-1") == []
    clock.advance(minutes=1)
    assert [j.id for j in await queue.list_pending("printer-1")] == [job.id]


async def test_transition_sets_timestamps(queue, clock) -> None:
    job = await queue.enqueue(_spec())

    claimed = await queue.transition(job.id, JobStatus.PROCESSING)
    assert claimed.started_at == clock()

    clock.advance(seconds=30)
    done = await queue.transition(job.id, JobStatus.COMPLETED)
    assert done.completed_at == clock()


async def test_stale_from_status_is_a_conflict(queue) -> None:
    job = await queue.enqueue(_spec())
    await queue.transition(job.id, JobStatus.PROCESSING)

    with pytest.raises(TransitionConflictError) as excinfo:
        await queue.transition(
            job.id, JobStatus.PROCESSING, from_status=JobStatus.PENDING
        )

    assert excinfo.value.actual == "processing"
    assert (await queue.get(job.id)).status == JobStatus.PROCESSING


async def test_lost_compare_and_swap_is_a_conflict(queue, jobs) -> None:
    job = await queue.enqueue(_spec())
    # Another dispatcher claims the job between our read and our write.
    original = jobs.compare_and_set

    async def racing_compare_and_set(job_id, expected_status, **values):
        await original(job_id, expected_status, status="processing")
        return await original(job_id, expected_status, **values)

    jobs.compare_and_set = racing_compare_and_set

    with pytest.raises(TransitionConflictError):
        await queue.transition(job.id, JobStatus.PROCESSING)


async def test_illegal_transition_is_rejected(queue) -> None:
    job = await queue.enqueue(_spec())

    with pytest.raises(InvalidTransitionError):
        await queue.transition(job.id, JobStatus.COMPLETED)
    assert (await queue.get(job.id)).status == JobStatus.PENDING


async def test_retry_count_cannot_exceed_max_retries(queue) -> None:
    job = await queue.enqueue(_spec(max_retries=1))
    await queue.transition(job.id, JobStatus.PROCESSING)

    with pytest.raises(InvalidTransitionError):
        await queue.transition(job.id, JobStatus.RETRYING, retry_count=1)
    with pytest.raises(InvalidTransitionError):
        await queue.transition(job.id, JobStatus.FAILED, retry_count=2)


async def test_transition_unknown_job(queue) -> None:
    with pytest.raises(JobNotFoundError):
        await queue.transition("missing", JobStatus.PROCESSING)


async def test_transitions_are_recorded_in_history(
    queue, history, clock
) -> None:
    job = await queue.enqueue(_spec())
    clock.advance(seconds=1)
    await queue.transition(job.id, JobStatus.PROCESSING)
    clock.advance(seconds=1)
    await queue.transition(job.id, JobStatus.FAILED, error_message="jam")

    events = await history.timeline(job.id)

    assert [(e.event_type, e.from_status, e.to_status) for e in events] == [
        ("created", None, "pending"),
        ("status_changed", "pending", "processing"),
        ("failed", "processing", "failed"),
    ]


async def test_cancel_for_order_leaves_processing_jobs(queue) -> None:
    waiting = await queue.enqueue(_spec(order_id="order-1"))
    running = await queue.enqueue(_spec(order_id="order-1"))
    other = await queue.enqueue(_spec(order_id="order-2"))
    await queue.transition(running.id, JobStatus.PROCESSING)

    cancelled = await queue.cancel_for_order("order-1", "buyer cancelled")

    assert [job.id for job in cancelled] == [waiting.id]
    assert cancelled[0].error_message == "buyer cancelled"
    assert (await queue.get(running.id)).status == JobStatus.PROCESSING
    assert (await queue.get(other.id)).status == JobStatus.PENDING


async def test_cleanup_removes_old_terminal_jobs_only(queue, clock) -> None:
    old_done = await queue.enqueue(_spec())
    old_pending = await queue.enqueue(_spec())
    await queue.transition(old_done.id, JobStatus.CANCELLED)
    clock.advance(days=31)
    fresh_done = await queue.enqueue(_spec())
    await queue.transition(fresh_done.id, JobStatus.CANCELLED)

    assert await queue.cleanup(retention_days=30) == 1

    with pytest.raises(JobNotFoundError):
        await queue.get(old_done.id)
    assert (await queue.get(old_pending.id)).status == JobStatus.PENDING
    assert (await queue.get(fresh_done.id)).status == JobStatus.CANCELLED


async def test_stats_and_user_history(queue, clock) -> None:
    clock.advance(days=-1)
    await queue.enqueue(_spec())
    clock.advance(days=1)
    done = await queue.enqueue(_spec())
    await queue.transition(done.id, JobStatus.PROCESSING)
    await queue.transition(done.id, JobStatus.COMPLETED)
    await queue.enqueue(_spec(user_id="user-2"))

    stats = await queue.stats("user-1")

    assert stats.total == 2
    assert stats.today == 1
    assert stats.pending == 1
    assert stats.completed == 1
    assert stats.failed == 0

    completed = await queue.history_for_user("user-1", status="completed")
    assert [job.id for job in completed] == [done.id]
