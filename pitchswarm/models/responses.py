# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# Shapes of data going OUT of the API, and the JSON returned by the Celery
# evaluation task.
#
# DESIGN DECISION: Separate response models from the engine's dataclasses.
# EvaluatorInstance carries its full definition (including the predicate
# callable); the response exposes ids, lineage and the outcome only.
# Names are stable snake_case, verdicts are enum values, amounts are
# integer cents and equity has one decimal.
# =============================================================================

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from pitchswarm.models.domain import ConsensusResult, JudgmentResult, Offer


class HealthResponse(BaseModel):
    """Response for GET /health — confirms the API is running."""

    status: str = "ok"
    version: str
    service: str
    evaluators: int = Field(description="Number of registered evaluator definitions")


# ---------------------------------------------------------------------------
# Registry / Preview
# ---------------------------------------------------------------------------


class EvaluatorSummary(BaseModel):
    id: str
    name: str
    domain: str
    group: str
    expertise: list[str] = Field(default_factory=list)
    can_spawn: bool = False
    sub_worker_types: list[str] = Field(default_factory=list)
    cost_weight: float = 0.0


class RegistryResponse(BaseModel):
    """Response for GET /evaluate/agents."""

    total: int
    evaluators: list[EvaluatorSummary]


class PreviewEvaluator(BaseModel):
    id: str
    name: str
    domain: str
    group: str
    can_spawn: bool


class PreviewResponse(BaseModel):
    """
    Response for POST /evaluate/preview — who would evaluate this pitch.

    Sub-workers are requested at run time, so they are not part of the
    preview or its cost estimate.
    """

    submission_id: str
    total: int
    groups: dict[str, int]
    estimated_cost: float
    evaluators: list[PreviewEvaluator]


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


class FailureResponse(BaseModel):
    kind: str = Field(description="judge_error, invalid_output or timeout")
    message: str


class InstanceResponse(BaseModel):
    """One evaluator instance of a run and how it settled."""

    instance_id: str
    parent_id: str | None = None
    definition_id: str
    domain: str
    depth: int
    succeeded: bool
    result: JudgmentResult | None = None
    failure: FailureResponse | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0


class LineageResponse(BaseModel):
    parent_id: str
    child_id: str
    child_definition_id: str


class EvaluationResponse(BaseModel):
    """Response for POST /evaluate, and the result of the Celery task."""

    submission_id: str
    run_id: str
    consensus: ConsensusResult
    offers: list[Offer]
    instances: list[InstanceResponse]
    lineage: list[LineageResponse] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_result(cls, result) -> EvaluationResponse:
        """Build from an orchestrator EvaluationResult."""
        return cls(
            submission_id=result.submission_id,
            run_id=result.run_id,
            consensus=result.consensus,
            offers=result.offers,
            instances=[
                InstanceResponse(
                    instance_id=o.instance.instance_id,
                    parent_id=o.instance.parent_id,
                    definition_id=o.instance.definition_id,
                    domain=o.instance.definition.domain,
                    depth=o.instance.depth,
                    succeeded=o.succeeded,
                    result=o.result,
                    failure=(
                        FailureResponse(kind=o.failure.kind.value, message=o.failure.message)
                        if o.failure else None
                    ),
                    started_at=o.started_at,
                    completed_at=o.completed_at,
                    duration_ms=o.duration_ms,
                )
                for o in result.instances
            ],
            lineage=[
                LineageResponse(
                    parent_id=e.parent_id,
                    child_id=e.child_id,
                    child_definition_id=e.child_definition_id,
                )
                for e in result.lineage
            ],
            metadata=result.metadata,
        )


class EvaluateAsyncResponse(BaseModel):
    """
    Response for POST /evaluate/async. Poll GET /evaluate/tasks/{task_id}
    for the result.
    """

    task_id: str = Field(description="Celery task ID")
    status: str = Field(default="queued")
    message: str = Field(default="Evaluation queued")


class TaskStatusResponse(BaseModel):
    """Response for GET /evaluate/tasks/{task_id}."""

    task_id: str
    status: str = Field(description="Task status: PENDING, STARTED, SUCCESS, FAILURE")
    result: EvaluationResponse | None = Field(
        default=None,
        description="Evaluation result (available when status is SUCCESS)",
    )
    error: str | None = Field(
        default=None,
        description="Error message (available when status is FAILURE)",
    )
