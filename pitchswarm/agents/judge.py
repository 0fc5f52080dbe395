# =============================================================================
# Judge — The Opaque Async Capability Behind Every Evaluator
# =============================================================================
#
# A Judge turns (context, submission) into a raw judgment: a JSON string or
# a mapping. It may raise. Validation is NOT the judge's job; the worker
# runner validates whatever comes back into a JudgmentResult.
#
#   Judge (Protocol)
#   ├── LLMJudge     — one LLM completion per call (services/llm.py)
#   └── CachedJudge  — wraps any Judge with a JudgmentCache
#
# DESIGN DECISION: Prompts are built from definition data (domain,
# expertise, sub-worker allow-list), not from per-evaluator prompt
# constants. One template serves every registry entry, so a new evaluator
# never needs new prompt code.
#
# DESIGN DECISION: Caching is a wrapper owned by the caller, not a hidden
# module-level memo inside the engine. Two runs share cached judgments only
# if the caller hands them the same CachedJudge.
# =============================================================================

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from pitchswarm.agents.instances import EvaluatorInstance
from pitchswarm.models.domain import Submission, Verdict
from pitchswarm.services.cache import JudgmentCache, judgment_cache_key
from pitchswarm.services.llm import LLMProvider

logger = logging.getLogger(__name__)


class JudgeError(Exception):
    """Raised by a judge backend that could not produce a judgment."""


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class JudgeContext:
    """Everything a judge needs to evaluate one instance."""

    instance_id: str
    definition_id: str
    domain: str
    expertise: tuple[str, ...]
    allowed_sub_workers: tuple[str, ...]
    depth: int
    system_prompt: str
    user_prompt: str


class Judge(Protocol):
    async def judge(
        self, context: JudgeContext, submission: Submission,
    ) -> Mapping[str, Any] | str:
        ...


_VERDICT_CHOICES = " | ".join(f'"{v.value}"' for v in Verdict)

_RESPONSE_FORMAT = (
    "Respond with a single JSON object and nothing else:\n"
    "{\n"
    '  "confidence": <number 0-100>,\n'
    f'  "verdict": {_VERDICT_CHOICES},\n'
    '  "strengths": ["..."],\n'
    '  "weaknesses": ["..."],\n'
    '  "questions": ["..."],\n'
    '  "recommendations": ["..."],\n'
    '  "requested_sub_workers": ["..."],\n'
    '  "reasoning": "detailed analysis explaining the verdict"\n'
    "}"
)


def build_context(
    instance: EvaluatorInstance,
    submission: Submission,
    spawn_allowed: bool = True,
) -> JudgeContext:
    """
    Frame the submission for one evaluator.

    The sub-worker allow-list is only offered when the definition can
    spawn and the instance is still allowed to (spawn_allowed); otherwise
    the judge is told to leave `requested_sub_workers` empty.
    """
    definition = instance.definition
    allowed = definition.sub_worker_types if definition.can_spawn and spawn_allowed else ()

    system = (
        f"You are an expert {definition.domain} evaluator in a startup "
        "evaluation panel.\n\n"
        f"Domain: {definition.domain}\n"
        f"Expertise: {', '.join(definition.expertise)}\n\n"
        "Assess the pitch strictly from your domain's perspective. Name "
        "concrete strengths and weaknesses, the questions the founders must "
        "answer, and give a verdict with a confidence score. Your judgment "
        "is combined with other evaluators to reach a final decision.\n\n"
    )
    if allowed:
        system += (
            f"Available sub-workers: {', '.join(allowed)}\n"
            "List any of them in requested_sub_workers if a deeper "
            "specialist review is needed.\n\n"
        )
    else:
        system += "Leave requested_sub_workers empty.\n\n"
    system += _RESPONSE_FORMAT

    return JudgeContext(
        instance_id=instance.instance_id,
        definition_id=definition.id,
        domain=definition.domain,
        expertise=definition.expertise,
        allowed_sub_workers=allowed,
        depth=instance.depth,
        system_prompt=system,
        user_prompt=_format_submission(submission, definition.domain),
    )


def _format_submission(submission: Submission, domain: str) -> str:
    lines = [
        f"Evaluate this startup pitch from your {domain} expertise.",
        "",
        f"Company: {submission.name}",
    ]
    if submission.tagline:
        lines.append(f"Tagline: {submission.tagline}")
    if submission.industry:
        lines.append(f"Industry: {submission.industry}")
    if submission.stage:
        lines.append(f"Stage: {submission.stage}")
    lines += ["", "Description:", submission.description or "(none)", ""]
    lines.append(
        f"Funding ask: ${submission.funding_ask:,} at "
        f"${submission.valuation:,} valuation"
    )
    lines.append(
        "Revenue: "
        + (f"${submission.revenue:,}" if submission.revenue else "Pre-revenue")
    )
    lines.append(f"Users: {submission.users:,}" if submission.users else "Users: N/A")
    lines.append(f"Team size: {submission.team_size}")
    if submission.founder_name:
        founder = submission.founder_name
        if submission.founder_background:
            founder += f" - {submission.founder_background}"
        lines.append(f"Founder: {founder}")
    if submission.traction:
        lines.append(f"Traction: {submission.traction}")
    if submission.business_model:
        lines.append(f"Business model: {submission.business_model}")
    if submission.tech_stack:
        lines.append(f"Tech stack: {', '.join(submission.tech_stack)}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# LLM-backed Judge
# ---------------------------------------------------------------------------


class LLMJudge:
    """
    One completion per judgment.

    Provider errors are wrapped in JudgeError so the runner sees a single
    exception type from the backend; the original is chained.
    """

    def __init__(
        self,
        llm: LLMProvider,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> None:
        self._llm = llm
        self._temperature = temperature
        self._max_tokens = max_tokens

    async def judge(self, context: JudgeContext, submission: Submission) -> str:
        try:
            response = await self._llm.complete(
                messages=[{"role": "user", "content": context.user_prompt}],
                system=context.system_prompt,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                json_output=True,
            )
        except Exception as e:
            raise JudgeError(f"{type(e).__name__}: {e}") from e

        logger.debug(
            "Judge %s answered (model=%s, tokens=%d/%d)",
            context.instance_id, response.model,
            response.input_tokens, response.output_tokens,
        )
        return strip_code_fences(response.content)


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` block if the model added one."""
    stripped = text.strip()
    if not stripped.startswith("```"):
        return stripped
    lines = stripped.splitlines()
    lines = lines[1:]
    if lines and lines[-1].strip().startswith("```"):
        lines = lines[:-1]
    return "\n".join(lines).strip()


# ---------------------------------------------------------------------------
# Cached Judge
# ---------------------------------------------------------------------------


class CachedJudge:
    """
    Memoise judgments by (definition_id, submission_id).

    Only output that validates as a judgment is cached, and validation
    still runs on every hit. Judge errors and malformed output are never
    cached, so the next run asks the judge again. A cache that fails on
    read or write is treated as a miss.
    """

    def __init__(self, judge: Judge, cache: JudgmentCache) -> None:
        self._judge = judge
        self._cache = cache

    async def judge(
        self, context: JudgeContext, submission: Submission,
    ) -> Mapping[str, Any] | str:
        # runner.py imports this module
        from pitchswarm.agents.runner import InvalidJudgmentError, parse_judgment

        key = judgment_cache_key(context.definition_id, submission.id)

        cached = await self._cache.get(key)
        if cached is not None:
            logger.info("Judgment cache hit: %s", key)
            return cached

        raw = await self._judge.judge(context, submission)
        try:
            parse_judgment(raw)
        except InvalidJudgmentError:
            logger.info("Not caching invalid judgment for %s", key)
            return raw

        payload = raw if isinstance(raw, str) else json.dumps(dict(raw))
        await self._cache.set(key, payload)
        return raw


def build_judge(
    llm: LLMProvider,
    cache: JudgmentCache | None = None,
) -> Judge:
    """LLMJudge over `llm`, wrapped in a CachedJudge when a cache is given."""
    judge: Judge = LLMJudge(llm)
    if cache is not None:
        judge = CachedJudge(judge, cache)
    return judge
