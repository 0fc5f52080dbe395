# =============================================================================
# Domain Models — Submission, Judgments, Consensus, Offers
# =============================================================================
#
# Pydantic V2 models for the values that flow through the evaluation swarm:
#
#   Submission ──▶ JudgmentResult (one per successful evaluator)
#              ──▶ ConsensusResult (one per run)
#              ──▶ Offer (zero or more per run)
#
# DESIGN DECISION: Frozen models for everything that crosses a worker
# boundary. A Submission is shared by every concurrently running evaluator,
# so it must not be mutable; judgments and offers are derived data.
#
# DESIGN DECISION: Verdict values are closed enums. The judge backend is
# asked for one of five verdicts; anything else fails validation and is
# handled by the worker runner (degrade or fail), never silently mapped.
# =============================================================================

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Verdict(str, Enum):
    """Per-evaluator verdict, ordered from most negative to most positive."""

    STRONG_REJECT = "strong_reject"
    REJECT = "reject"
    NEUTRAL = "neutral"
    ACCEPT = "accept"
    STRONG_ACCEPT = "strong_accept"


POSITIVE_VERDICTS = frozenset({Verdict.ACCEPT, Verdict.STRONG_ACCEPT})
NEGATIVE_VERDICTS = frozenset({Verdict.REJECT, Verdict.STRONG_REJECT})

# Hard equity range for every offer, in percent. Configuration may narrow
# it but never widen it.
EQUITY_MIN = 8.0
EQUITY_MAX = 25.0


class ConsensusVerdict(str, Enum):
    """Overall decision for a submission."""

    ACCEPT = "accept"
    REJECT = "reject"
    NEEDS_REVISION = "needs_revision"


class DealStructure(str, Enum):
    EQUITY = "equity"
    SAFE = "safe"
    CONVERTIBLE = "convertible"
    REVENUE_SHARE = "revenue_share"
    HYBRID = "hybrid"


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


class Submission(BaseModel):
    """
    A startup pitch submitted for evaluation.

    Monetary fields are whole currency units as entered by the founder.
    Offers convert to minor units (cents) on output.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Submission identifier")
    name: str = Field(..., min_length=1, description="Company name")
    tagline: str = Field(default="", description="One-line pitch")
    description: str = Field(default="", description="Free-text description")
    industry: str = Field(default="", description="Industry label, e.g. 'AI / ML'")
    stage: str = Field(default="", description="Company stage, e.g. 'IDEA', 'MVP'")
    funding_ask: int = Field(..., gt=0, description="Amount requested")
    valuation: int = Field(default=0, ge=0, description="Proposed valuation")
    team_size: int = Field(default=1, ge=0)
    revenue: int | None = Field(default=None, ge=0)
    users: int | None = Field(default=None, ge=0)
    tech_stack: tuple[str, ...] = Field(default_factory=tuple)
    business_model: str | None = None
    founder_name: str | None = None
    founder_background: str | None = None
    traction: str | None = None

    def searchable_text(self) -> str:
        """Lower-cased text that spawn predicates match keywords against."""
        parts = [
            self.name,
            self.tagline,
            self.description,
            self.industry,
            self.stage,
            self.business_model or "",
            " ".join(self.tech_stack),
        ]
        return " ".join(p for p in parts if p).lower()


# ---------------------------------------------------------------------------
# Judgment
# ---------------------------------------------------------------------------


class JudgmentResult(BaseModel):
    """
    Structured output of one evaluator instance.

    Produced only for instances that completed. A failed instance has no
    JudgmentResult at all, which keeps failure distinguishable from a
    genuine neutral judgment.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    confidence: float = Field(..., ge=0, le=100)
    verdict: Verdict
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    questions: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    reasoning: str = ""
    requested_sub_workers: list[str] = Field(default_factory=list)
    degraded: bool = Field(
        default=False,
        description="True when this result replaced malformed judge output",
    )

    @classmethod
    def degraded_result(cls, reason: str) -> JudgmentResult:
        """Neutral, midpoint-confidence result used when output is malformed."""
        return cls(
            confidence=50.0,
            verdict=Verdict.NEUTRAL,
            reasoning=f"Evaluator output could not be validated: {reason}",
            degraded=True,
        )


# ---------------------------------------------------------------------------
# Consensus
# ---------------------------------------------------------------------------


class ConsensusResult(BaseModel):
    """Aggregated decision over all successful judgments of one run."""

    model_config = ConfigDict(frozen=True)

    verdict: ConsensusVerdict
    confidence: float = Field(..., ge=0, le=100)
    top_strengths: list[str] = Field(default_factory=list)
    top_weaknesses: list[str] = Field(default_factory=list)
    critical_issues: list[str] = Field(default_factory=list)
    succeeded_count: int = Field(..., ge=1)
    failed_count: int = Field(default=0, ge=0)
    verdict_counts: dict[str, int] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Offer
# ---------------------------------------------------------------------------


class Offer(BaseModel):
    """
    A financial proposal derived from one evaluator's positive judgment.

    `amount` is in minor currency units (cents). `equity` is a percentage
    with one fractional digit.
    """

    model_config = ConfigDict(frozen=True)

    offer_id: str
    source_instance_id: str
    source_definition_id: str
    interested: bool
    amount: int | None = Field(default=None, ge=0)
    equity: float | None = Field(default=None, ge=EQUITY_MIN, le=EQUITY_MAX)
    deal_structure: DealStructure | None = None
    terms: str = ""
    conditions: list[str] = Field(default_factory=list)
    expected_return: str = ""
    time_horizon: str = ""
    confidence: float = Field(..., ge=0, le=100)

    @model_validator(mode="after")
    def _no_terms_without_interest(self) -> Offer:
        if not self.interested and (self.amount is not None or self.equity is not None):
            raise ValueError("An offer without interest cannot carry amount or equity")
        if self.interested and (self.amount is None or self.equity is None):
            raise ValueError("An interested offer must carry amount and equity")
        return self
