# =============================================================================
# Worker Runner — One Evaluator Instance, One Judgment
# =============================================================================
#
# The single runner for every evaluator type. A definition's data (domain,
# expertise, allow-list) shapes the prompt; the runner's behaviour is the
# same for all of them:
#
#   build context ──▶ await judge ──▶ validate ──▶ InstanceOutcome
#
# OUTCOMES:
#   judge raised                 → Failure(judge_error)
#   output not a valid judgment  → Failure(invalid_output), or a degraded
#                                  neutral result if degrade_invalid_output
#   cancelled (run deadline)     → timeout record emitted, cancellation
#                                  re-raised for the engine to account for
#
# DESIGN DECISION: The runner never raises for a judge or validation
# problem. One evaluator failing must not affect its siblings, so every
# such problem becomes data (a Failure) on the outcome.
# =============================================================================

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from pitchswarm.agents.instances import EvaluatorInstance, Failure, FailureKind, InstanceOutcome
from pitchswarm.agents.judge import Judge, build_context
from pitchswarm.config import settings
from pitchswarm.db.models import ActivityEvent
from pitchswarm.models.domain import JudgmentResult, Submission
from pitchswarm.services.activity import ActivityRecord, ActivitySink, LoggingActivitySink

logger = logging.getLogger(__name__)


class InvalidJudgmentError(ValueError):
    """Judge output that is not a JSON object matching JudgmentResult."""


def parse_judgment(raw: Mapping[str, Any] | str | bytes) -> JudgmentResult:
    """Validate raw judge output (JSON text or mapping) into a JudgmentResult."""
    try:
        data = json.loads(raw) if isinstance(raw, str | bytes) else raw
    except json.JSONDecodeError as e:
        raise InvalidJudgmentError(f"output is not valid JSON: {e}") from e

    if not isinstance(data, Mapping):
        raise InvalidJudgmentError(
            f"output is a {type(data).__name__}, expected a JSON object"
        )

    try:
        return JudgmentResult.model_validate(dict(data))
    except ValidationError as e:
        raise InvalidJudgmentError(
            f"{e.error_count()} validation error(s): {e.errors()[0]['msg']}"
        ) from e


class WorkerRunner:
    def __init__(
        self,
        judge: Judge,
        degrade_invalid_output: bool | None = None,
        activity_sink: ActivitySink | None = None,
        max_spawn_depth: int | None = None,
    ) -> None:
        self.judge = judge
        self.degrade_invalid_output = (
            settings.degrade_invalid_output
            if degrade_invalid_output is None else degrade_invalid_output
        )
        self.activity_sink = activity_sink or LoggingActivitySink()
        self.max_spawn_depth = (
            settings.max_spawn_depth if max_spawn_depth is None else max_spawn_depth
        )

    async def run(
        self,
        instance: EvaluatorInstance,
        submission: Submission,
        run_id: str = "",
    ) -> InstanceOutcome:
        """
        Evaluate one instance. Returns an outcome for every judge or
        validation problem; only cancellation propagates.
        """
        context = build_context(
            instance, submission,
            spawn_allowed=instance.depth < self.max_spawn_depth,
        )
        started_at = datetime.now(UTC)
        t0 = time.perf_counter()
        self._emit(instance, submission, run_id, ActivityEvent.STARTED)

        def elapsed_ms() -> int:
            return int((time.perf_counter() - t0) * 1000)

        try:
            raw = await self.judge.judge(context, submission)
        except asyncio.CancelledError:
            self._emit(
                instance, submission, run_id, ActivityEvent.TIMEOUT,
                failure_kind=FailureKind.TIMEOUT.value,
                message="Cancelled by run deadline",
                duration_ms=elapsed_ms(),
            )
            raise
        except Exception as e:
            logger.warning("Judge failed for %s: %s", instance.instance_id, e)
            return self._failed(
                instance, submission, run_id,
                Failure(FailureKind.JUDGE_ERROR, f"{type(e).__name__}: {e}"),
                started_at, elapsed_ms(),
            )

        event = ActivityEvent.COMPLETED
        try:
            result = parse_judgment(raw)
        except InvalidJudgmentError as e:
            if not self.degrade_invalid_output:
                logger.warning(
                    "Invalid judge output for %s: %s", instance.instance_id, e,
                )
                return self._failed(
                    instance, submission, run_id,
                    Failure(FailureKind.INVALID_OUTPUT, str(e)),
                    started_at, elapsed_ms(),
                )
            logger.warning(
                "Invalid judge output for %s, degrading to neutral: %s",
                instance.instance_id, e,
            )
            result = JudgmentResult.degraded_result(str(e))
            event = ActivityEvent.DEGRADED

        if result.requested_sub_workers and not instance.definition.can_spawn:
            logger.info(
                "Dropping sub-worker requests from %s (cannot spawn): %s",
                instance.instance_id, result.requested_sub_workers,
            )
            result = result.model_copy(update={"requested_sub_workers": []})

        duration_ms = elapsed_ms()
        self._emit(
            instance, submission, run_id, event,
            confidence=result.confidence,
            verdict=result.verdict.value,
            duration_ms=duration_ms,
        )
        return InstanceOutcome(
            instance=instance,
            result=result,
            started_at=started_at,
            completed_at=datetime.now(UTC),
            duration_ms=duration_ms,
        )

    def record_timeout(
        self,
        instance: EvaluatorInstance,
        submission: Submission,
        run_id: str = "",
        message: str = "Cancelled before start",
    ) -> None:
        """Emit the TIMEOUT record for an instance the deadline cut off before `run` began."""
        self._emit(
            instance, submission, run_id, ActivityEvent.TIMEOUT,
            failure_kind=FailureKind.TIMEOUT.value,
            message=message,
        )

    # -----------------------------------------------------------------------
    # Internal Helpers
    # -----------------------------------------------------------------------

    def _failed(
        self,
        instance: EvaluatorInstance,
        submission: Submission,
        run_id: str,
        failure: Failure,
        started_at: datetime,
        duration_ms: int,
    ) -> InstanceOutcome:
        self._emit(
            instance, submission, run_id, ActivityEvent.FAILED,
            failure_kind=failure.kind.value,
            message=failure.message,
            duration_ms=duration_ms,
        )
        return InstanceOutcome(
            instance=instance,
            failure=failure,
            started_at=started_at,
            completed_at=datetime.now(UTC),
            duration_ms=duration_ms,
        )

    def _emit(
        self,
        instance: EvaluatorInstance,
        submission: Submission,
        run_id: str,
        event: ActivityEvent,
        **fields: Any,
    ) -> None:
        record = ActivityRecord(
            run_id=run_id,
            submission_id=submission.id,
            instance_id=instance.instance_id,
            parent_id=instance.parent_id,
            definition_id=instance.definition_id,
            depth=instance.depth,
            event=event,
            **fields,
        )
        try:
            self.activity_sink.emit(record)
        except Exception as e:
            logger.warning(
                "Activity sink failed for %s (%s): %s",
                instance.instance_id, event.value, e,
            )
