# =============================================================================
# Unit Tests — Worker Runner & Judges
# =============================================================================
#
# One instance through the runner with a scripted judge: validation,
# degradation, failure capture, sub-worker request stripping and the
# activity side channel. Also the LLM-backed and cached judges, with a
# mock provider. No API keys, no Redis.
# =============================================================================

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from pitchswarm.agents.instances import EvaluatorInstance, FailureKind
from pitchswarm.agents.judge import (
    CachedJudge,
    JudgeError,
    LLMJudge,
    build_context,
    build_judge,
    strip_code_fences,
)
from pitchswarm.agents.registry import DEFAULT_REGISTRY
from pitchswarm.agents.runner import InvalidJudgmentError, WorkerRunner, parse_judgment
from pitchswarm.db.models import ActivityEvent
from pitchswarm.models.domain import Verdict
from pitchswarm.services.activity import MemoryActivitySink
from pitchswarm.services.cache import InMemoryJudgmentCache, judgment_cache_key
from pitchswarm.services.llm import LLMResponse
from fakes import ScriptedJudge, judgment, make_submission


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _instance(definition_id: str = "market_analyst") -> EvaluatorInstance:
    return EvaluatorInstance.create(DEFAULT_REGISTRY.get(definition_id))


def _runner(judge, **kwargs) -> tuple[WorkerRunner, MemoryActivitySink]:
    sink = MemoryActivitySink()
    kwargs.setdefault("degrade_invalid_output", False)
    kwargs.setdefault("max_spawn_depth", 1)
    return WorkerRunner(judge, activity_sink=sink, **kwargs), sink


# ---------------------------------------------------------------------------
# Test: Output Parsing
# ---------------------------------------------------------------------------


class TestParseJudgment:
    def test_json_string(self):
        result = parse_judgment(json.dumps(judgment("reject", 40)))
        assert result.verdict is Verdict.REJECT
        assert result.confidence == 40

    def test_mapping(self):
        result = parse_judgment(judgment(strengths=["Team"]))
        assert result.strengths == ["Team"]

    def test_not_json(self):
        with pytest.raises(InvalidJudgmentError, match="not valid JSON"):
            parse_judgment("I think this is great")

    def test_json_array_rejected(self):
        with pytest.raises(InvalidJudgmentError, match="expected a JSON object"):
            parse_judgment("[1, 2]")

    def test_unknown_verdict(self):
        with pytest.raises(InvalidJudgmentError):
            parse_judgment(judgment(verdict="maybe"))

    def test_confidence_out_of_range(self):
        with pytest.raises(InvalidJudgmentError):
            parse_judgment(judgment(confidence=140))

    def test_missing_confidence(self):
        with pytest.raises(InvalidJudgmentError):
            parse_judgment({"verdict": "accept"})


class TestStripCodeFences:
    def test_plain_text_untouched(self):
        assert strip_code_fences('  {"a": 1} ') == '{"a": 1}'

    def test_json_fence_removed(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_unterminated_fence(self):
        assert strip_code_fences('```\n{"a": 1}') == '{"a": 1}'


# ---------------------------------------------------------------------------
# Test: Context
# ---------------------------------------------------------------------------


class TestBuildContext:
    def test_spawning_definition_gets_allow_list(self):
        instance = _instance("financial_analyst")
        context = build_context(instance, make_submission())
        assert context.allowed_sub_workers == ("valuation_modeler",)
        assert "valuation_modeler" in context.system_prompt
        assert "Crumb & Co" in context.user_prompt

    def test_non_spawning_definition_told_to_leave_requests_empty(self):
        context = build_context(_instance("market_analyst"), make_submission())
        assert context.allowed_sub_workers == ()
        assert "Leave requested_sub_workers empty" in context.system_prompt

    def test_allow_list_withheld_when_spawning_not_allowed(self):
        instance = _instance("financial_analyst")
        context = build_context(instance, make_submission(), spawn_allowed=False)
        assert context.allowed_sub_workers == ()


# ---------------------------------------------------------------------------
# Test: Worker Runner
# ---------------------------------------------------------------------------


class TestWorkerRunner:
    def test_valid_judgment_succeeds(self):
        judge = ScriptedJudge(default=json.dumps(judgment("accept", 82)))
        runner, sink = _runner(judge)
        instance = _instance()

        outcome = _run(runner.run(instance, make_submission(), run_id="r1"))

        assert outcome.succeeded
        assert outcome.failure is None
        assert outcome.result.confidence == 82
        assert outcome.started_at is not None and outcome.completed_at is not None
        assert sink.events(instance.instance_id) == [
            ActivityEvent.STARTED, ActivityEvent.COMPLETED,
        ]
        completed = sink.records[-1]
        assert completed.run_id == "r1"
        assert completed.verdict == "accept"

    def test_invalid_output_fails(self):
        runner, sink = _runner(ScriptedJudge(default="not json"))
        instance = _instance()

        outcome = _run(runner.run(instance, make_submission()))

        assert not outcome.succeeded
        assert outcome.result is None
        assert outcome.failure.kind is FailureKind.INVALID_OUTPUT
        assert sink.events(instance.instance_id)[-1] is ActivityEvent.FAILED

    def test_invalid_output_degrades_when_enabled(self):
        runner, sink = _runner(
            ScriptedJudge(default=judgment(verdict="maybe")),
            degrade_invalid_output=True,
        )
        instance = _instance()

        outcome = _run(runner.run(instance, make_submission()))

        assert outcome.succeeded
        assert outcome.result.degraded
        assert outcome.result.verdict is Verdict.NEUTRAL
        assert outcome.result.confidence == 50
        assert sink.events(instance.instance_id)[-1] is ActivityEvent.DEGRADED

    def test_judge_exception_becomes_failure(self):
        judge = ScriptedJudge(responses={"market_analyst": RuntimeError("backend down")})
        runner, _ = _runner(judge)

        outcome = _run(runner.run(_instance(), make_submission()))

        assert outcome.failure.kind is FailureKind.JUDGE_ERROR
        assert "RuntimeError" in outcome.failure.message
        assert "backend down" in outcome.failure.message

    def test_requests_dropped_for_non_spawning_definition(self):
        judge = ScriptedJudge(
            default=judgment(requested_sub_workers=["valuation_modeler"]),
        )
        runner, _ = _runner(judge)

        outcome = _run(runner.run(_instance("market_analyst"), make_submission()))

        assert outcome.result.requested_sub_workers == []

    def test_requests_kept_for_spawning_definition(self):
        judge = ScriptedJudge(
            default=judgment(requested_sub_workers=["valuation_modeler"]),
        )
        runner, _ = _runner(judge)

        outcome = _run(runner.run(_instance("financial_analyst"), make_submission()))

        assert outcome.result.requested_sub_workers == ["valuation_modeler"]

    def test_failing_sink_does_not_fail_run(self):
        class BrokenSink:
            def emit(self, record):
                raise RuntimeError("sink offline")

        runner = WorkerRunner(
            ScriptedJudge(), activity_sink=BrokenSink(), degrade_invalid_output=False,
        )
        outcome = _run(runner.run(_instance(), make_submission()))
        assert outcome.succeeded

    def test_cancellation_propagates_with_timeout_record(self):
        judge = ScriptedJudge(delays={"market_analyst": 5})
        runner, sink = _runner(judge)
        instance = _instance()

        async def scenario():
            task = asyncio.create_task(runner.run(instance, make_submission()))
            await asyncio.sleep(0.01)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        _run(scenario())
        assert sink.events(instance.instance_id) == [
            ActivityEvent.STARTED, ActivityEvent.TIMEOUT,
        ]


# ---------------------------------------------------------------------------
# Test: LLM Judge with Mock Provider
# ---------------------------------------------------------------------------


def _llm_response(content: str) -> LLMResponse:
    return LLMResponse(content=content, model="test-model", input_tokens=100, output_tokens=50)


class TestLLMJudge:
    def test_calls_provider_with_domain_prompt(self):
        mock_llm = AsyncMock()
        mock_llm.complete.return_value = _llm_response(
            '```json\n{"verdict": "accept", "confidence": 77}\n```'
        )
        context = build_context(_instance(), make_submission())

        raw = _run(LLMJudge(mock_llm).judge(context, make_submission()))

        assert json.loads(raw) == {"verdict": "accept", "confidence": 77}
        mock_llm.complete.assert_called_once()
        call_kwargs = mock_llm.complete.call_args.kwargs
        assert "Market & Competition" in call_kwargs["system"]
        assert call_kwargs["json_output"] is True

    def test_provider_error_wrapped(self):
        mock_llm = AsyncMock()
        mock_llm.complete.side_effect = ConnectionError("refused")
        context = build_context(_instance(), make_submission())

        with pytest.raises(JudgeError, match="ConnectionError"):
            _run(LLMJudge(mock_llm).judge(context, make_submission()))


# ---------------------------------------------------------------------------
# Test: Cached Judge
# ---------------------------------------------------------------------------


class TestCachedJudge:
    def test_second_call_served_from_cache(self):
        inner = ScriptedJudge(default=judgment("accept", 90))
        cache = InMemoryJudgmentCache(ttl_seconds=60)
        judge = CachedJudge(inner, cache)
        submission = make_submission()
        context = build_context(_instance(), submission)

        first = _run(judge.judge(context, submission))
        second = _run(judge.judge(context, submission))

        assert len(inner.calls) == 1
        assert first == judgment("accept", 90)
        assert json.loads(second) == judgment("accept", 90)
        assert len(cache) == 1

    def test_errors_are_not_cached(self):
        inner = ScriptedJudge(default=RuntimeError("boom"))
        cache = InMemoryJudgmentCache(ttl_seconds=60)
        judge = CachedJudge(inner, cache)
        submission = make_submission()
        context = build_context(_instance(), submission)

        with pytest.raises(RuntimeError):
            _run(judge.judge(context, submission))
        assert _run(cache.get(judgment_cache_key("market_analyst", submission.id))) is None

    def test_invalid_output_is_not_cached(self):
        inner = ScriptedJudge(default="I think this is great")
        cache = InMemoryJudgmentCache(ttl_seconds=60)
        judge = CachedJudge(inner, cache)
        submission = make_submission()
        context = build_context(_instance(), submission)

        _run(judge.judge(context, submission))
        inner.default = judgment("accept", 90)
        second = _run(judge.judge(context, submission))

        assert len(inner.calls) == 2
        assert second == judgment("accept", 90)
        assert len(cache) == 1

    def test_expired_entry_is_a_miss(self):
        cache = InMemoryJudgmentCache(ttl_seconds=0.001)

        async def scenario():
            await cache.set("k", "v")
            await asyncio.sleep(0.01)
            return await cache.get("k")

        assert _run(scenario()) is None

    def test_build_judge_wraps_only_with_cache(self):
        llm = AsyncMock()
        assert isinstance(build_judge(llm), LLMJudge)
        assert isinstance(build_judge(llm, InMemoryJudgmentCache()), CachedJudge)
