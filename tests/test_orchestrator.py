# =============================================================================
# Unit Tests — Evaluation Pipeline (LangGraph Orchestrator)
# =============================================================================
#
# End-to-end runs of evaluate_pitch() with a scripted judge: selection,
# sub-worker waves, consensus, offers and run metadata. The LLM singleton
# must never be touched when a judge is injected.
# =============================================================================

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest

from pitchswarm.agents.consensus import RunFailureError
from pitchswarm.agents.orchestrator import describe_strategy, evaluate_pitch
from pitchswarm.config import Settings
from pitchswarm.models.domain import ConsensusVerdict
from pitchswarm.services.activity import MemoryActivitySink
from fakes import ScriptedJudge, judgment, make_submission


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _settings(**overrides) -> Settings:
    values = {"evaluation_timeout_seconds": 5, "activity_sink": "log"}
    values.update(overrides)
    return Settings(**values)


class TestEvaluatePitch:
    def test_ai_pitch_accepted_with_offers(self):
        submission = make_submission(
            name="NeuroLedger",
            industry="AI / ML",
            description="We train a neural network to forecast cash flow.",
            funding_ask=1_000_000,
        )
        judge = ScriptedJudge(
            responses={
                "ai_ml_expert": judgment(
                    "strong_accept", 95, requested_sub_workers=["data_scientist"],
                ),
                "team_evaluator": judgment("neutral", 60),
            },
            default=judgment("accept", 85),
        )
        sink = MemoryActivitySink()

        result = _run(evaluate_pitch(
            submission, judge=judge, activity_sink=sink, settings=_settings(),
        ))

        top_level = [o.instance.definition_id for o in result.instances if o.instance.depth == 0]
        assert top_level == [
            "financial_analyst", "market_analyst", "team_evaluator", "ai_ml_expert",
        ]
        assert result.instances[-1].instance.definition_id == "data_scientist"
        assert len(result.lineage) == 1

        # 4 of 5 positive
        assert result.consensus.verdict is ConsensusVerdict.ACCEPT
        assert result.consensus.succeeded_count == 5
        assert [o.confidence for o in result.offers] == [95, 85, 85]
        assert result.offers[0].source_definition_id == "ai_ml_expert"

        assert result.metadata["total_instances"] == 5
        assert result.metadata["waves"] == 2
        assert result.metadata["failed_count"] == 0
        assert "with 1 sub-workers" in result.metadata["strategy"]
        assert result.submission_id == submission.id
        assert {r.run_id for r in sink.records} == {result.run_id}

    def test_all_evaluators_failing_is_run_failure(self):
        judge = ScriptedJudge(default=RuntimeError("judge backend down"))

        with pytest.raises(RunFailureError) as exc_info:
            _run(evaluate_pitch(
                make_submission(), judge=judge,
                activity_sink=MemoryActivitySink(), settings=_settings(),
            ))
        assert exc_info.value.failed_count == 3

    def test_partial_failure_still_reaches_consensus(self):
        judge = ScriptedJudge(
            responses={"market_analyst": RuntimeError("rate limited")},
            default=judgment("reject", 30, reasoning="No moat."),
        )

        result = _run(evaluate_pitch(
            make_submission(), judge=judge,
            activity_sink=MemoryActivitySink(), settings=_settings(),
        ))

        assert result.consensus.verdict is ConsensusVerdict.REJECT
        assert result.consensus.failed_count == 1
        assert result.metadata["failed_count"] == 1
        assert result.offers == []
        assert len(result.consensus.critical_issues) == 2

    def test_zero_spawn_depth_runs_single_wave(self):
        judge = ScriptedJudge(
            responses={
                "financial_analyst": judgment(requested_sub_workers=["valuation_modeler"]),
            },
        )

        result = _run(evaluate_pitch(
            make_submission(), judge=judge, activity_sink=MemoryActivitySink(),
            settings=_settings(max_spawn_depth=0),
        ))

        assert result.metadata["waves"] == 1
        assert result.lineage == []

    def test_injected_judge_bypasses_llm_singleton(self):
        with patch("pitchswarm.services.llm.get_llm_provider") as mock_singleton:
            _run(evaluate_pitch(
                make_submission(), judge=ScriptedJudge(),
                activity_sink=MemoryActivitySink(), settings=_settings(),
            ))
        mock_singleton.assert_not_called()


class TestDescribeStrategy:
    def test_summary_names_domains(self):
        from pitchswarm.agents.registry import DEFAULT_REGISTRY
        from pitchswarm.agents.selector import select

        instances = select(make_submission(), DEFAULT_REGISTRY)
        text = describe_strategy(instances, [])
        assert text.startswith("Ran 3 evaluators (Finance & Metrics")
        assert text.endswith("with 0 sub-workers for deeper analysis.")
