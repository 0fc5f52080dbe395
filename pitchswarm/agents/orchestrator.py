# =============================================================================
# LangGraph Orchestrator — Evaluation Pipeline Assembly
# =============================================================================
#
# Wires the swarm's stages into a LangGraph StateGraph:
#
#   START ──▶ select ──▶ execute ──▶ synthesize ──▶ offers ──▶ END
#
#   select      registry predicates → top-level evaluator instances
#   execute     concurrent waves, spawning, one deadline  (agents/engine.py)
#   synthesize  outcomes → ConsensusResult                (agents/consensus.py)
#   offers      consensus → [Offer]                       (agents/offers.py)
#
# DESIGN DECISION: Linear graph. All branching (which evaluators, which
# sub-workers) happens inside select and execute as data, not as graph
# edges, so the topology stays the same for every submission.
#
# DESIGN DECISION: Collaborators (judge, registry, activity sink, settings)
# travel in the state. They are not JSON-serialisable; that is safe as long
# as no checkpointer is configured on the graph (current: none).
#
# A run in which every evaluator failed raises RunFailureError out of
# graph.ainvoke; the caller decides how to surface it.
# =============================================================================

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from langgraph.graph import END, START, StateGraph
from typing_extensions import TypedDict

from pitchswarm.agents import offers as offer_generator
from pitchswarm.agents.consensus import ConsensusPolicy, synthesize
from pitchswarm.agents.engine import ExecutionEngine, ExecutionReport
from pitchswarm.agents.instances import EvaluatorInstance, InstanceOutcome, LineageEdge
from pitchswarm.agents.judge import Judge, build_judge
from pitchswarm.agents.registry import DEFAULT_REGISTRY, EvaluatorRegistry, estimate_cost
from pitchswarm.agents.runner import WorkerRunner
from pitchswarm.agents.selector import select
from pitchswarm.agents.spawner import Spawner
from pitchswarm.config import Settings, settings as default_settings
from pitchswarm.models.domain import ConsensusResult, Offer, Submission
from pitchswarm.services.activity import ActivitySink, build_activity_sink

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass
class EvaluationResult:
    submission_id: str
    run_id: str
    instances: list[InstanceOutcome]
    lineage: list[LineageEdge]
    consensus: ConsensusResult
    offers: list[Offer]
    metadata: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Graph State
# ---------------------------------------------------------------------------


class EvaluationState(TypedDict, total=False):
    """
    State flowing through the graph. total=False so each node returns only
    the keys it sets.
    """

    # --- Input ---
    submission: Submission
    run_id: str

    # --- Collaborators ---
    judge: Judge
    registry: EvaluatorRegistry
    activity_sink: ActivitySink
    settings: Settings

    # --- Set by nodes ---
    instances: list[EvaluatorInstance]
    report: ExecutionReport
    consensus: ConsensusResult
    offers: list[Offer]


# ---------------------------------------------------------------------------
# Node Functions
# ---------------------------------------------------------------------------


async def select_node(state: EvaluationState) -> dict:
    instances = select(state["submission"], state["registry"])
    return {"instances": instances}


async def execute_node(state: EvaluationState) -> dict:
    s = state["settings"]
    runner = WorkerRunner(
        judge=state["judge"],
        degrade_invalid_output=s.degrade_invalid_output,
        activity_sink=state["activity_sink"],
        max_spawn_depth=s.max_spawn_depth,
    )
    engine = ExecutionEngine(
        runner=runner,
        spawner=Spawner(state["registry"], max_depth=s.max_spawn_depth),
        max_concurrency=s.max_concurrent_evaluators,
        timeout_seconds=s.evaluation_timeout_seconds,
    )
    report = await engine.execute(
        state["submission"], state["instances"], run_id=state["run_id"],
    )
    return {"report": report}


async def synthesize_node(state: EvaluationState) -> dict:
    consensus = synthesize(
        state["report"].outcomes,
        ConsensusPolicy.from_settings(state["settings"]),
    )
    return {"consensus": consensus}


async def offers_node(state: EvaluationState) -> dict:
    offers = offer_generator.generate(
        state["consensus"],
        state["report"].outcomes,
        state["submission"],
        offer_generator.OfferPolicy.from_settings(state["settings"]),
    )
    return {"offers": offers}


# ---------------------------------------------------------------------------
# Graph Assembly
# ---------------------------------------------------------------------------

_builder = StateGraph(EvaluationState)
_builder.add_node("select", select_node)
_builder.add_node("execute", execute_node)
_builder.add_node("synthesize", synthesize_node)
_builder.add_node("offers", offers_node)

_builder.add_edge(START, "select")
_builder.add_edge("select", "execute")
_builder.add_edge("execute", "synthesize")
_builder.add_edge("synthesize", "offers")
_builder.add_edge("offers", END)

graph = _builder.compile()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def evaluate_pitch(
    submission: Submission,
    judge: Judge | None = None,
    registry: EvaluatorRegistry = DEFAULT_REGISTRY,
    activity_sink: ActivitySink | None = None,
    settings: Settings | None = None,
) -> EvaluationResult:
    """
    Run one full evaluation of a submission.

    Args:
        submission: The pitch to evaluate.
        judge: Judge for every evaluator. Defaults to an LLMJudge over the
            configured provider (no cache; callers that want caching pass
            a CachedJudge).
        registry: Evaluator catalog to select from.
        activity_sink: Destination for lifecycle records.
        settings: Execution and policy settings.

    Raises:
        RunFailureError: every evaluator failed.
    """
    s = settings or default_settings
    if judge is None:
        from pitchswarm.services.llm import get_llm_provider
        judge = build_judge(get_llm_provider())

    run_id = uuid.uuid4().hex
    initial_state: EvaluationState = {
        "submission": submission,
        "run_id": run_id,
        "judge": judge,
        "registry": registry,
        "activity_sink": activity_sink or build_activity_sink(s.activity_sink),
        "settings": s,
    }

    logger.info(
        "Evaluating submission %s ('%s'), run %s",
        submission.id, submission.name[:80], run_id,
    )
    t0 = time.perf_counter()
    final = await graph.ainvoke(initial_state)
    elapsed_ms = int((time.perf_counter() - t0) * 1000)

    report: ExecutionReport = final["report"]
    consensus: ConsensusResult = final["consensus"]
    offers: list[Offer] = final["offers"]

    top_level = [o.instance for o in report.outcomes if o.instance.parent_id is None]
    spawned = [o.instance for o in report.outcomes if o.instance.parent_id is not None]

    logger.info(
        "Run %s complete: %s (confidence %.2f), %d offers, %dms",
        run_id, consensus.verdict.value, consensus.confidence, len(offers), elapsed_ms,
    )

    return EvaluationResult(
        submission_id=submission.id,
        run_id=run_id,
        instances=report.outcomes,
        lineage=report.lineage,
        consensus=consensus,
        offers=offers,
        metadata={
            "total_instances": len(report.outcomes),
            "failed_count": len(report.failed),
            "waves": report.waves,
            "deadline_expired": report.deadline_expired,
            "strategy": describe_strategy(top_level, spawned),
            "estimated_cost": estimate_cost(o.instance.definition for o in report.outcomes),
            "elapsed_ms": elapsed_ms,
        },
    )


def describe_strategy(
    top_level: list[EvaluatorInstance],
    spawned: list[EvaluatorInstance],
) -> str:
    """One-line summary of who evaluated the submission."""
    domains = ", ".join(i.definition.domain for i in top_level)
    return (
        f"Ran {len(top_level)} evaluators ({domains}) with "
        f"{len(spawned)} sub-workers for deeper analysis."
    )
