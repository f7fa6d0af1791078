"""Order and print job state machines.

All legal status changes live in the tables below. Services never compare
status strings on their own; they ask this module whether a move is allowed.
"""

from __future__ import annotations

from enum import StrEnum

from fastapi_printqueue.exceptions import InvalidTransitionError


class OrderStatus(StrEnum):
    PENDING = "pending"
    QUEUED = "queued"
    PRINTED = "printed"
    SHIPPED = "shipped"
    CANCELLED = "cancelled"


class JobStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"
    CANCELLED = "cancelled"


class Priority(StrEnum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class PrinterStatus(StrEnum):
    ONLINE = "online"
    OFFLINE = "offline"


class HistoryEventType(StrEnum):
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    COMPLETED = "completed"
    FAILED = "failed"


PRIORITY_RANK: dict[str, int] = {
    Priority.LOW: 0,
    Priority.NORMAL: 1,
    Priority.HIGH: 2,
    Priority.URGENT: 3,
}

PENDING_STATUSES = frozenset({JobStatus.PENDING, JobStatus.RETRYING})
TERMINAL_JOB_STATUSES = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
)
PRINTABLE_ORDER_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.QUEUED})

JOB_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING, JobStatus.CANCELLED}),
    JobStatus.RETRYING: frozenset(
        {JobStatus.PROCESSING, JobStatus.PENDING, JobStatus.CANCELLED}
    ),
    JobStatus.PROCESSING: frozenset(
        {JobStatus.COMPLETED, JobStatus.RETRYING, JobStatus.FAILED}
    ),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}

ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset(
        {OrderStatus.QUEUED, OrderStatus.PRINTED, OrderStatus.CANCELLED}
    ),
    OrderStatus.QUEUED: frozenset(
        {OrderStatus.PRINTED, OrderStatus.CANCELLED}
    ),
    OrderStatus.PRINTED: frozenset(
        {OrderStatus.SHIPPED, OrderStatus.CANCELLED}
    ),
    OrderStatus.SHIPPED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

# History event recorded for a job arriving in a given status.
EVENT_FOR_STATUS: dict[JobStatus, HistoryEventType] = {
    JobStatus.COMPLETED: HistoryEventType.COMPLETED,
    JobStatus.FAILED: HistoryEventType.FAILED,
}


def can_transition_job(current: str, target: str) -> bool:
    return JobStatus(target) in JOB_TRANSITIONS[JobStatus(current)]


def can_transition_order(current: str, target: str) -> bool:
    return OrderStatus(target) in ORDER_TRANSITIONS[OrderStatus(current)]


def ensure_job_transition(current: str, target: str) -> None:
    """Raise ``InvalidTransitionError`` unless the job move is legal."""
    if not can_transition_job(current, target):
        raise InvalidTransitionError(
            f"Print job cannot move from {current} to {target}"
        )


def ensure_order_transition(current: str, target: str) -> None:
    """Raise ``InvalidTransitionError`` unless the order move is legal."""
    if not can_transition_order(current, target):
        raise InvalidTransitionError(
            f"Order cannot move from {current} to {target}"
        )
