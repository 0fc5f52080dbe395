# =============================================================================
# Unit Tests — Spawner & Execution Engine
# =============================================================================
#
# Spawn rules (allow-list, depth cap, de-duplication) and the engine's
# wave scheduling: fault isolation, sub-worker waves with lineage, the
# run deadline and the concurrency bound. The judge is scripted; delays
# are kept short so the whole module runs in well under a second.
# =============================================================================

from __future__ import annotations

import asyncio

import pytest

from pitchswarm.agents.engine import ExecutionEngine
from pitchswarm.agents.instances import EvaluatorInstance, FailureKind
from pitchswarm.agents.registry import (
    ALWAYS,
    DEFAULT_REGISTRY,
    NEVER,
    EvaluatorDefinition,
    EvaluatorRegistry,
    RegistryConfigError,
)
from pitchswarm.agents.runner import WorkerRunner
from pitchswarm.agents.selector import select
from pitchswarm.agents.spawner import Spawner
from pitchswarm.db.models import ActivityEvent
from pitchswarm.services.activity import MemoryActivitySink
from fakes import ScriptedJudge, judgment, make_submission


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _engine(
    judge,
    registry: EvaluatorRegistry = DEFAULT_REGISTRY,
    max_depth: int = 1,
    **kwargs,
) -> ExecutionEngine:
    runner = WorkerRunner(
        judge,
        degrade_invalid_output=False,
        activity_sink=MemoryActivitySink(),
        max_spawn_depth=max_depth,
    )
    return ExecutionEngine(
        runner, spawner=Spawner(registry, max_depth=max_depth), **kwargs,
    )


def _chain_registry() -> EvaluatorRegistry:
    """root → child → grandchild, every level allowed to spawn the next."""
    return EvaluatorRegistry([
        EvaluatorDefinition(
            id="root", name="Root", domain="Root", expertise=("x",),
            predicate=ALWAYS, can_spawn=True, sub_worker_types=("child",),
            group="core",
        ),
        EvaluatorDefinition(
            id="child", name="Child", domain="Child", expertise=("x",),
            predicate=NEVER, can_spawn=True, sub_worker_types=("grandchild",),
            group="sub_worker",
        ),
        EvaluatorDefinition(
            id="grandchild", name="Grandchild", domain="Grandchild", expertise=("x",),
            predicate=NEVER, group="sub_worker",
        ),
    ])


def _chain_judge() -> ScriptedJudge:
    return ScriptedJudge(responses={
        "root": judgment(requested_sub_workers=["child"]),
        "child": judgment(requested_sub_workers=["grandchild"]),
        "grandchild": judgment(),
    })


# ---------------------------------------------------------------------------
# Test: Spawner
# ---------------------------------------------------------------------------


class TestSpawner:
    def _parent(self, definition_id: str = "defi_protocol_expert") -> EvaluatorInstance:
        return EvaluatorInstance.create(DEFAULT_REGISTRY.get(definition_id))

    def test_spawns_allowed_types_with_parent_and_depth(self):
        parent = self._parent()
        children = Spawner(max_depth=1).spawn(
            parent, ["tokenomics_specialist", "security_auditor"],
        )
        assert [c.definition_id for c in children] == [
            "tokenomics_specialist", "security_auditor",
        ]
        assert all(c.parent_id == parent.instance_id for c in children)
        assert all(c.depth == 1 for c in children)

    def test_skips_types_outside_allow_list(self):
        children = Spawner(max_depth=1).spawn(
            self._parent(), ["growth_hacker", "liquidity_analyst", "no_such_type"],
        )
        assert [c.definition_id for c in children] == ["liquidity_analyst"]

    def test_duplicate_requests_spawn_once(self):
        children = Spawner(max_depth=1).spawn(
            self._parent(), ["security_auditor", "security_auditor"],
        )
        assert len(children) == 1

    def test_non_spawning_parent_gets_nothing(self):
        children = Spawner(max_depth=1).spawn(
            self._parent("market_analyst"), ["valuation_modeler"],
        )
        assert children == []

    def test_depth_cap(self):
        registry = _chain_registry()
        root = EvaluatorInstance.create(registry.get("root"))
        [child] = Spawner(registry, max_depth=1).spawn(root, ["child"])

        assert Spawner(registry, max_depth=1).spawn(child, ["grandchild"]) == []
        [grandchild] = Spawner(registry, max_depth=2).spawn(child, ["grandchild"])
        assert grandchild.depth == 2

    def test_zero_depth_disables_spawning(self):
        assert Spawner(max_depth=0).spawn(self._parent(), ["security_auditor"]) == []

    def test_depth_above_hard_cap_rejected(self):
        with pytest.raises(RegistryConfigError):
            Spawner(max_depth=4)

    def test_lineage_edges(self):
        parent = self._parent()
        children = Spawner(max_depth=1).spawn(parent, ["security_auditor"])
        [edge] = Spawner.lineage(children)
        assert edge.parent_id == parent.instance_id
        assert edge.child_id == children[0].instance_id
        assert edge.child_definition_id == "security_auditor"


# ---------------------------------------------------------------------------
# Test: Execution Engine
# ---------------------------------------------------------------------------


class TestExecutionEngine:
    def test_every_instance_settles_despite_failures(self):
        judge = ScriptedJudge(responses={
            "market_analyst": RuntimeError("rate limited"),
            "team_evaluator": "no json here",
        })
        submission = make_submission()
        instances = select(submission)

        report = _run(_engine(judge).execute(submission, instances))

        assert [o.instance.instance_id for o in report.outcomes] == [
            i.instance_id for i in instances
        ]
        kinds = {o.instance.definition_id: o.failure.kind for o in report.failed}
        assert kinds == {
            "market_analyst": FailureKind.JUDGE_ERROR,
            "team_evaluator": FailureKind.INVALID_OUTPUT,
        }
        assert [o.instance.definition_id for o in report.succeeded] == ["financial_analyst"]
        assert report.waves == 1
        assert not report.deadline_expired

    def test_sub_workers_run_in_second_wave(self):
        judge = ScriptedJudge(responses={
            "financial_analyst": judgment(requested_sub_workers=["valuation_modeler"]),
        })
        submission = make_submission()

        report = _run(_engine(judge).execute(submission, select(submission)))

        assert report.waves == 2
        assert len(report.outcomes) == 4
        spawned = report.outcomes[-1]
        assert spawned.instance.definition_id == "valuation_modeler"
        assert spawned.instance.depth == 1
        parent = report.outcomes[0].instance
        assert spawned.instance.parent_id == parent.instance_id
        assert [(e.parent_id, e.child_id) for e in report.lineage] == [
            (parent.instance_id, spawned.instance.instance_id),
        ]

    def test_failed_parent_spawns_nothing(self):
        judge = ScriptedJudge(responses={"financial_analyst": RuntimeError("down")})
        submission = make_submission()

        report = _run(_engine(judge).execute(submission, select(submission)))

        assert report.waves == 1
        assert report.lineage == []

    def test_default_depth_stops_at_sub_workers(self):
        registry = _chain_registry()
        submission = make_submission()

        report = _run(
            _engine(_chain_judge(), registry, max_depth=1)
            .execute(submission, select(submission, registry))
        )

        assert [o.instance.definition_id for o in report.outcomes] == ["root", "child"]
        assert max(o.instance.depth for o in report.outcomes) == 1

    def test_configured_depth_allows_grandchildren(self):
        registry = _chain_registry()
        submission = make_submission()

        report = _run(
            _engine(_chain_judge(), registry, max_depth=2)
            .execute(submission, select(submission, registry))
        )

        assert [o.instance.definition_id for o in report.outcomes] == [
            "root", "child", "grandchild",
        ]
        assert [o.instance.depth for o in report.outcomes] == [0, 1, 2]
        assert report.waves == 3
        assert len(report.lineage) == 2

    def test_deadline_cancels_slow_instances(self):
        judge = ScriptedJudge(delays={"market_analyst": 5})
        submission = make_submission()

        report = _run(
            _engine(judge, timeout_seconds=0.2).execute(submission, select(submission))
        )

        assert report.deadline_expired
        assert len(report.outcomes) == 3
        [timed_out] = report.failed
        assert timed_out.instance.definition_id == "market_analyst"
        assert timed_out.failure.kind is FailureKind.TIMEOUT
        assert len(report.succeeded) == 2

    def test_deadline_covers_sub_worker_wave(self):
        judge = ScriptedJudge(
            responses={
                "financial_analyst": judgment(requested_sub_workers=["valuation_modeler"]),
            },
            delays={"market_analyst": 5, "valuation_modeler": 5},
        )
        submission = make_submission()

        report = _run(
            _engine(judge, timeout_seconds=0.2).execute(submission, select(submission))
        )

        assert report.deadline_expired
        spawned = report.outcomes[-1]
        assert spawned.instance.definition_id == "valuation_modeler"
        assert spawned.failure.kind is FailureKind.TIMEOUT
        assert len(report.lineage) == 1

    def test_queued_instances_cut_off_by_deadline_get_timeout_records(self):
        judge = ScriptedJudge(delays={
            "financial_analyst": 5, "market_analyst": 5, "team_evaluator": 5,
        })
        submission = make_submission()
        engine = _engine(judge, max_concurrency=1, timeout_seconds=0.2)

        report = _run(engine.execute(submission, select(submission), run_id="run_1"))

        records = engine.runner.activity_sink.records
        assert len(report.failed) == 3
        assert len(judge.calls) == 1
        for outcome in report.outcomes:
            events = [r.event for r in records if r.instance_id == outcome.instance.instance_id]
            assert events.count(ActivityEvent.TIMEOUT) == 1
        started = [r for r in records if r.event is ActivityEvent.STARTED]
        assert [r.definition_id for r in started] == ["financial_analyst"]
        assert all(r.run_id == "run_1" for r in records)

    def test_concurrency_is_bounded(self):
        judge = ScriptedJudge(delays={
            "financial_analyst": 0.02, "market_analyst": 0.02, "team_evaluator": 0.02,
        })
        submission = make_submission()

        _run(_engine(judge, max_concurrency=1).execute(submission, select(submission)))

        assert judge.max_active == 1
        assert len(judge.calls) == 3

    def test_instances_run_concurrently(self):
        judge = ScriptedJudge(delays={
            "financial_analyst": 0.05, "market_analyst": 0.05, "team_evaluator": 0.05,
        })
        submission = make_submission()

        _run(_engine(judge, max_concurrency=8).execute(submission, select(submission)))

        assert judge.max_active == 3

    def test_runner_crash_is_confined_to_its_instance(self):
        class CrashingRunner(WorkerRunner):
            async def run(self, instance, submission, run_id=""):
                if instance.definition_id == "team_evaluator":
                    raise KeyError("unexpected")
                return await super().run(instance, submission, run_id=run_id)

        runner = CrashingRunner(
            ScriptedJudge(), degrade_invalid_output=False,
            activity_sink=MemoryActivitySink(),
        )
        submission = make_submission()

        report = _run(ExecutionEngine(runner).execute(submission, select(submission)))

        assert len(report.succeeded) == 2
        [crashed] = report.failed
        assert crashed.failure.kind is FailureKind.JUDGE_ERROR
        assert "KeyError" in crashed.failure.message

    def test_empty_instance_list(self):
        report = _run(_engine(ScriptedJudge()).execute(make_submission(), []))
        assert report.outcomes == []
        assert report.waves == 0
