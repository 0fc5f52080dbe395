# =============================================================================
# Evaluation API — Pitch Evaluation by the Evaluator Swarm
# =============================================================================
#
# Endpoints:
#   GET  /evaluate/agents           → Registry listing
#   POST /evaluate/preview          → Which evaluators would run + cost
#   POST /evaluate                  → Run a full evaluation (synchronous)
#   POST /evaluate/async            → Queue an evaluation (Celery)
#   GET  /evaluate/tasks/{task_id}  → Poll a queued evaluation
#
# DESIGN DECISION: Synchronous POST /evaluate by default. A run is bounded
# by EVALUATION_TIMEOUT_SECONDS, so the request cannot hang forever, and
# most clients want the verdict in the response. /evaluate/async exists
# for clients behind short proxy timeouts.
#
# ERROR MAPPING:
#   RunFailureError (every evaluator failed) → 502 Bad Gateway: the judge
#     backend, not the request, is at fault.
#   LLM backend not configured               → 503 (raised by get_judge)
# =============================================================================

from __future__ import annotations

import logging

from celery.result import AsyncResult
from fastapi import APIRouter, Depends, HTTPException

from pitchswarm.agents.consensus import RunFailureError
from pitchswarm.agents.judge import Judge
from pitchswarm.agents.orchestrator import evaluate_pitch
from pitchswarm.agents.registry import DEFAULT_REGISTRY
from pitchswarm.agents.selector import selection_breakdown
from pitchswarm.api.deps import get_activity_sink, get_judge, get_provider_id
from pitchswarm.models.requests import EvaluateRequest
from pitchswarm.models.responses import (
    EvaluateAsyncResponse,
    EvaluationResponse,
    EvaluatorSummary,
    PreviewResponse,
    RegistryResponse,
    TaskStatusResponse,
)
from pitchswarm.services.activity import ActivitySink
from pitchswarm.workers.tasks import evaluate_pitch as evaluate_pitch_task

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Evaluation"])


# ---------------------------------------------------------------------------
# GET /evaluate/agents — Registry Listing
# ---------------------------------------------------------------------------


@router.get(
    "/evaluate/agents",
    response_model=RegistryResponse,
    summary="List every registered evaluator",
)
async def list_evaluators() -> RegistryResponse:
    return RegistryResponse(
        total=len(DEFAULT_REGISTRY),
        evaluators=[
            EvaluatorSummary(
                id=d.id,
                name=d.name,
                domain=d.domain,
                group=d.group,
                expertise=list(d.expertise),
                can_spawn=d.can_spawn,
                sub_worker_types=list(d.sub_worker_types),
                cost_weight=d.cost_weight,
            )
            for d in DEFAULT_REGISTRY
        ],
    )


# ---------------------------------------------------------------------------
# POST /evaluate/preview — Selection Without Execution
# ---------------------------------------------------------------------------


@router.post(
    "/evaluate/preview",
    response_model=PreviewResponse,
    summary="Preview which evaluators a pitch would get",
    description=(
        "Runs only the selector: no judge calls, no cost. Sub-workers are "
        "requested at run time and are not included."
    ),
)
async def preview_evaluation(request: EvaluateRequest) -> PreviewResponse:
    breakdown = selection_breakdown(request.submission, DEFAULT_REGISTRY)
    return PreviewResponse(submission_id=request.submission.id, **breakdown)


# ---------------------------------------------------------------------------
# POST /evaluate — Full Evaluation
# ---------------------------------------------------------------------------


@router.post(
    "/evaluate",
    response_model=EvaluationResponse,
    summary="Evaluate a pitch with the evaluator swarm",
    description=(
        "Selects evaluators for the pitch, runs them concurrently (with "
        "sub-workers where requested), and returns the consensus and any "
        "investment offers."
    ),
)
async def evaluate(
    request: EvaluateRequest,
    judge: Judge = Depends(get_judge),
    activity_sink: ActivitySink = Depends(get_activity_sink),
) -> EvaluationResponse:
    try:
        result = await evaluate_pitch(
            request.submission, judge=judge, activity_sink=activity_sink,
        )
    except RunFailureError as e:
        logger.error(
            "Evaluation of %s failed: %s", request.submission.id, e,
        )
        raise HTTPException(
            status_code=502,
            detail=f"Evaluation failed: {e}",
        ) from e

    return EvaluationResponse.from_result(result)


# ---------------------------------------------------------------------------
# POST /evaluate/async — Queue Evaluation
# ---------------------------------------------------------------------------


@router.post(
    "/evaluate/async",
    response_model=EvaluateAsyncResponse,
    status_code=202,
    summary="Queue a pitch evaluation",
)
async def evaluate_async(
    request: EvaluateRequest,
    provider_id: str | None = Depends(get_provider_id),
) -> EvaluateAsyncResponse:
    task = evaluate_pitch_task.delay(
        request.submission.model_dump(mode="json"), provider_id,
    )
    logger.info(
        "Queued evaluation of %s as task %s", request.submission.id, task.id,
    )
    return EvaluateAsyncResponse(
        task_id=task.id,
        message=f"Evaluation queued. Poll GET /evaluate/tasks/{task.id} for the result.",
    )


# ---------------------------------------------------------------------------
# GET /evaluate/tasks/{task_id} — Poll Queued Evaluation
# ---------------------------------------------------------------------------


@router.get(
    "/evaluate/tasks/{task_id}",
    response_model=TaskStatusResponse,
    summary="Check the status of a queued evaluation",
)
async def get_evaluation_task(task_id: str) -> TaskStatusResponse:
    """
    Celery task states: PENDING (unknown or not yet picked up), STARTED,
    SUCCESS (result attached), FAILURE (error attached).
    """
    result = AsyncResult(task_id, app=evaluate_pitch_task.app)
    status = result.status

    response = TaskStatusResponse(task_id=task_id, status=status)
    if status == "SUCCESS":
        response.result = EvaluationResponse.model_validate(result.result)
    elif status == "FAILURE":
        response.error = str(result.result) if result.result else "Unknown error"
    return response
