# =============================================================================
# Evaluator Activity — Lifecycle Side Channel
# =============================================================================
#
# The worker runner reports every instance transition (started, completed,
# degraded, failed, timeout) as an ActivityRecord. Where the records go is
# pluggable:
#
#   LoggingActivitySink  — application log (default)
#   MemoryActivitySink   — list in memory (tests, debugging)
#   DatabaseActivitySink — evaluator_activity table, written in background
#
# DESIGN DECISION: emit() is synchronous and must not block. The database
# sink schedules its insert as a fire-and-forget task with its own session,
# the same way request handlers persist metrics after responding. An
# evaluation never waits on, or fails because of, its activity log.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Protocol

from pitchswarm.config import settings
from pitchswarm.db.models import ActivityEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActivityRecord:
    run_id: str
    submission_id: str
    instance_id: str
    parent_id: str | None
    definition_id: str
    depth: int
    event: ActivityEvent
    failure_kind: str | None = None
    message: str | None = None
    confidence: float | None = None
    verdict: str | None = None
    duration_ms: int | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class ActivitySink(Protocol):
    def emit(self, record: ActivityRecord) -> None:
        ...


class LoggingActivitySink:
    def emit(self, record: ActivityRecord) -> None:
        logger.info(
            "[run %s] %s %s (depth=%d)%s",
            record.run_id or "-",
            record.instance_id,
            record.event.value,
            record.depth,
            f" {record.failure_kind}: {record.message}" if record.failure_kind else "",
        )


class MemoryActivitySink:
    """Keeps every record; `events(instance_id)` gives one instance's history."""

    def __init__(self) -> None:
        self.records: list[ActivityRecord] = []

    def emit(self, record: ActivityRecord) -> None:
        self.records.append(record)

    def events(self, instance_id: str) -> list[ActivityEvent]:
        return [r.event for r in self.records if r.instance_id == instance_id]


class DatabaseActivitySink:
    """
    Persist records as EvaluatorActivity rows.

    Each emit() logs the record and schedules one insert on the running
    loop. `drain()` awaits outstanding inserts; the Celery task calls it
    before its event loop closes.
    """

    def __init__(self) -> None:
        self._log = LoggingActivitySink()
        self._pending: set[asyncio.Task] = set()

    def emit(self, record: ActivityRecord) -> None:
        self._log.emit(record)
        task = asyncio.get_running_loop().create_task(self._persist(record))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def _persist(self, record: ActivityRecord) -> None:
        from pitchswarm.db.engine import async_session_factory
        from pitchswarm.db.models import EvaluatorActivity

        values = asdict(record)
        values.pop("timestamp")
        try:
            async with async_session_factory() as session:
                session.add(EvaluatorActivity(**values))
                await session.commit()
        except Exception as e:
            logger.warning(
                "Failed to persist activity for %s (%s): %s",
                record.instance_id, record.event.value, e,
            )


def build_activity_sink(kind: str | None = None) -> ActivitySink:
    kind = kind or settings.activity_sink
    if kind == "database":
        return DatabaseActivitySink()
    return LoggingActivitySink()
