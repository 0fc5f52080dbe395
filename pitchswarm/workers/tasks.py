# =============================================================================
# Celery Task Definitions — Background Evaluation
# =============================================================================
#
# `evaluate_pitch` runs the same pipeline as POST /evaluate and stores the
# EvaluationResponse as the task result.
#
# Celery tasks are synchronous. The evaluation pipeline is async, so the
# task drives it with asyncio.run(): a fresh event loop per task, closed
# when the task returns. Anything scheduled on that loop (database
# activity writes) is drained before the loop closes.
#
# RETRY STRATEGY: none. A run that fails because every evaluator failed is
# reported as FAILURE; retrying immediately would hit the same backend
# outage. Judge-level retries belong to the LLM SDKs.
# =============================================================================

from __future__ import annotations

import asyncio
import logging

from pitchswarm.agents.judge import build_judge
from pitchswarm.agents.orchestrator import evaluate_pitch as run_evaluation
from pitchswarm.models.domain import Submission
from pitchswarm.models.responses import EvaluationResponse
from pitchswarm.services.activity import DatabaseActivitySink, build_activity_sink
from pitchswarm.services.cache import get_judgment_cache
from pitchswarm.services.llm import create_provider_from_id, get_llm_provider
from pitchswarm.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


async def _evaluate(submission: Submission, provider_id: str | None) -> dict:
    llm = create_provider_from_id(provider_id) if provider_id else get_llm_provider()
    judge = build_judge(llm, get_judgment_cache())
    sink = build_activity_sink()
    try:
        result = await run_evaluation(submission, judge=judge, activity_sink=sink)
    finally:
        if isinstance(sink, DatabaseActivitySink):
            await sink.drain()
            # Pooled asyncpg connections belong to this loop, which
            # asyncio.run() is about to close.
            from pitchswarm.db.engine import async_engine
            await async_engine.dispose()
    return EvaluationResponse.from_result(result).model_dump(mode="json")


@celery_app.task(bind=True, name="evaluate_pitch")
def evaluate_pitch(
    self,
    submission: dict,
    provider_id: str | None = None,
) -> dict:
    """
    Evaluate a submission in the background.

    Args:
        self: Celery task instance (bound task, provides self.request.id).
        submission: Submission as a JSON-compatible dict.
        provider_id: Optional "type/model[@base_url]" backend override.

    Returns:
        EvaluationResponse as a JSON-compatible dict.
    """
    task_id = self.request.id
    parsed = Submission.model_validate(submission)
    logger.info("[%s] Background evaluation of submission %s", task_id, parsed.id)

    try:
        return asyncio.run(_evaluate(parsed, provider_id))
    except Exception:
        logger.exception("[%s] Background evaluation failed", task_id)
        raise
