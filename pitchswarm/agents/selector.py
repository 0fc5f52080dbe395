# =============================================================================
# Selector — Which Evaluators Does This Pitch Need?
# =============================================================================
#
# Pure function from a Submission to the top-level evaluator instances of a
# run. No I/O and no LLM call: predicates are keyword / numeric tests, so
# selection is instant and reproducible.
#
# ORDER: registry declaration order. Priority ordering, if it is ever
# needed, belongs to the execution engine; keeping the selector order
# stable makes its output easy to assert on.
#
# No minimum or maximum count is enforced here. A submission that matches
# no conditional predicate still gets every ALWAYS evaluator.
# =============================================================================

from __future__ import annotations

import logging
from typing import Any

from pitchswarm.agents.instances import EvaluatorInstance
from pitchswarm.agents.registry import (
    DEFAULT_REGISTRY,
    EvaluatorDefinition,
    EvaluatorRegistry,
    estimate_cost,
)
from pitchswarm.models.domain import Submission

logger = logging.getLogger(__name__)


def select_definitions(
    submission: Submission,
    registry: EvaluatorRegistry = DEFAULT_REGISTRY,
) -> list[EvaluatorDefinition]:
    """Registry entries relevant to the submission, in declaration order."""
    selected: list[EvaluatorDefinition] = []
    for definition in registry:
        if definition.spawn_only:
            continue
        if definition.always or definition.predicate(submission):
            selected.append(definition)
    return selected


def select(
    submission: Submission,
    registry: EvaluatorRegistry = DEFAULT_REGISTRY,
) -> list[EvaluatorInstance]:
    """
    Build the top-level instances for one run.

    Instance ids are freshly generated on each call; the definitions are
    identical for identical submissions.
    """
    definitions = select_definitions(submission, registry)
    logger.info(
        "Selected %d evaluators for submission %s: %s",
        len(definitions),
        submission.id,
        ", ".join(d.id for d in definitions),
    )
    return [EvaluatorInstance.create(d) for d in definitions]


def selection_breakdown(
    submission: Submission,
    registry: EvaluatorRegistry = DEFAULT_REGISTRY,
) -> dict[str, Any]:
    """
    Preview of a run without executing it: counts per registry group,
    estimated cost and the selected evaluators.
    """
    definitions = select_definitions(submission, registry)
    groups: dict[str, int] = {}
    for d in definitions:
        groups[d.group] = groups.get(d.group, 0) + 1

    return {
        "total": len(definitions),
        "groups": groups,
        "estimated_cost": estimate_cost(definitions),
        "evaluators": [
            {
                "id": d.id,
                "name": d.name,
                "domain": d.domain,
                "group": d.group,
                "can_spawn": d.can_spawn,
            }
            for d in definitions
        ],
    }
