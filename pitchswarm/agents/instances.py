# =============================================================================
# Evaluator Instances & Outcomes — Run-Scoped Units of Work
# =============================================================================
#
# An EvaluatorInstance is one scheduled execution of a registry definition
# within one evaluation run. Top-level instances come from the selector;
# sub-worker instances come from the spawner and carry their parent's id
# and an explicit depth.
#
# An InstanceOutcome is the settled state of an instance: exactly one of
# `result` (a validated JudgmentResult) or `failure` (a typed Failure).
# The engine pre-allocates one outcome slot per instance, so every
# scheduled instance is accounted for even when it times out.
# =============================================================================

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from pitchswarm.agents.registry import EvaluatorDefinition
from pitchswarm.models.domain import JudgmentResult


@dataclass(frozen=True)
class EvaluatorInstance:
    """A scheduled evaluator. Immutable once created."""

    definition: EvaluatorDefinition
    instance_id: str
    parent_id: str | None = None
    depth: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def create(
        cls,
        definition: EvaluatorDefinition,
        parent: EvaluatorInstance | None = None,
    ) -> EvaluatorInstance:
        return cls(
            definition=definition,
            instance_id=f"{definition.id}_{uuid.uuid4().hex[:12]}",
            parent_id=parent.instance_id if parent else None,
            depth=parent.depth + 1 if parent else 0,
        )

    @property
    def definition_id(self) -> str:
        return self.definition.id


class FailureKind(str, Enum):
    JUDGE_ERROR = "judge_error"        # judge call raised
    INVALID_OUTPUT = "invalid_output"  # output did not validate
    TIMEOUT = "timeout"                # run deadline expired


@dataclass(frozen=True)
class Failure:
    kind: FailureKind
    message: str


@dataclass(frozen=True)
class InstanceOutcome:
    """Settled state of one instance: success with a result, or a failure."""

    instance: EvaluatorInstance
    result: JudgmentResult | None = None
    failure: Failure | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0

    def __post_init__(self) -> None:
        if (self.result is None) == (self.failure is None):
            raise ValueError("An outcome has exactly one of result or failure")

    @property
    def succeeded(self) -> bool:
        return self.result is not None

    @classmethod
    def timed_out(
        cls, instance: EvaluatorInstance, message: str = "Evaluation deadline expired",
    ) -> InstanceOutcome:
        return cls(
            instance=instance,
            failure=Failure(FailureKind.TIMEOUT, message),
            completed_at=datetime.now(UTC),
        )


@dataclass(frozen=True)
class LineageEdge:
    parent_id: str
    child_id: str
    child_definition_id: str
