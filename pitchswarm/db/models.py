# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# SCHEMA:
#
# ┌──────────────────────────────────────┐
# │  evaluator_activity                  │
# ├──────────────────────────────────────┤
# │ id (PK)                              │
# │ run_id              (indexed)        │
# │ submission_id       (indexed)        │
# │ instance_id                          │
# │ parent_id           (null = top)     │
# │ definition_id                        │
# │ depth                                │
# │ event   started|completed|failed|... │
# │ failure_kind        (null unless failed)
# │ message                              │
# │ confidence / verdict (completed only)│
# │ duration_ms                          │
# │ created_at                           │
# └──────────────────────────────────────┘
#
# DESIGN DECISION: Append-only event rows, not one mutable row per
# instance. Lifecycle records arrive from concurrent workers in any order;
# inserting never conflicts, and the full history of an instance is a
# simple filter on instance_id.
# =============================================================================

import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum, Float, Index, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class."""

    pass


class ActivityEvent(str, enum.Enum):
    """
    Lifecycle of one evaluator instance:

        STARTED → COMPLETED
                → DEGRADED   (malformed output replaced by a neutral result)
                → FAILED     (judge error / invalid output)
                → TIMEOUT    (cancelled by the run deadline)
    """

    STARTED = "started"
    COMPLETED = "completed"
    DEGRADED = "degraded"
    FAILED = "failed"
    TIMEOUT = "timeout"


class EvaluatorActivity(Base):
    """One lifecycle event of one evaluator instance."""

    __tablename__ = "evaluator_activity"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    run_id: Mapped[str] = mapped_column(String(64), nullable=False)
    submission_id: Mapped[str] = mapped_column(String(255), nullable=False)

    instance_id: Mapped[str] = mapped_column(String(128), nullable=False)
    parent_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    definition_id: Mapped[str] = mapped_column(String(100), nullable=False)
    depth: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    event: Mapped[ActivityEvent] = mapped_column(Enum(ActivityEvent), nullable=False)
    failure_kind: Mapped[str | None] = mapped_column(String(50), nullable=True)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Set on COMPLETED / DEGRADED only
    confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    verdict: Mapped[str | None] = mapped_column(String(50), nullable=True)

    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_evaluator_activity_run_id", "run_id"),
        Index("ix_evaluator_activity_submission_id", "submission_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<EvaluatorActivity(run_id='{self.run_id}', "
            f"instance_id='{self.instance_id}', event={self.event})>"
        )
