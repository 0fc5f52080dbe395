# =============================================================================
# API Dependencies — Judge & Activity Sink Injection
# =============================================================================
#
# Route handlers never build their own judge. They receive one through
# FastAPI's dependency injection:
#
#   get_provider_id()    — the `provider_id` query override, 400 if malformed
#   get_judge()          — LLMJudge over the configured provider (or the
#                          `provider_id` query override), wrapped in the
#                          process-wide judgment cache when one is configured
#   get_activity_sink()  — sink selected by ACTIVITY_SINK
#
# DESIGN DECISION: Dependencies (not module globals read in the handler)
# so tests swap the judge with `app.dependency_overrides[get_judge]` and
# never touch an LLM.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Query

from pitchswarm.agents.judge import Judge, build_judge
from pitchswarm.services.activity import ActivitySink, build_activity_sink
from pitchswarm.services.cache import get_judgment_cache
from pitchswarm.services.llm import (
    create_provider_from_id,
    get_llm_provider,
    parse_provider_id,
)

logger = logging.getLogger(__name__)


def get_provider_id(
    provider_id: str | None = Query(
        default=None,
        description=(
            "LLM backend override for every judge call of this evaluation, "
            "format 'type/model[@base_url]'. If omitted, the configured "
            "provider is used."
        ),
        examples=["anthropic/claude-sonnet-4-6"],
    ),
) -> str | None:
    """
    The `provider_id` query override, checked for format only.

    Raises:
        HTTPException 400: malformed provider_id.
    """
    if provider_id:
        try:
            parse_provider_id(provider_id)
        except ValueError as e:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid provider '{provider_id}': {e}",
            ) from e
    return provider_id or None


def get_judge(provider_id: str | None = Depends(get_provider_id)) -> Judge:
    """
    Judge for one evaluation request.

    Raises:
        HTTPException 503: the LLM backend is not configured (no API key).
    """
    try:
        llm = create_provider_from_id(provider_id) if provider_id else get_llm_provider()
    except ValueError as e:
        logger.error("LLM provider unavailable: %s", e)
        raise HTTPException(
            status_code=503,
            detail=f"LLM backend not configured: {e}",
        ) from e

    return build_judge(llm, get_judgment_cache())


def get_activity_sink() -> ActivitySink:
    return build_activity_sink()
