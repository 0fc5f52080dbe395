# =============================================================================
# Capability Registry — Evaluator Definitions & Spawn Predicates
# =============================================================================
#
# Static catalog of every evaluator the swarm can run. Each entry is data,
# not a subclass: one EvaluatorDefinition parameterises the single worker
# runner (agents/runner.py) with a domain, expertise tags, a spawn predicate
# and a sub-worker allow-list.
#
# GROUPS (declaration order = selection order):
#   core       — ALWAYS predicate, run for every submission
#   domain     — keyword predicates over the pitch text
#   specialist — keyword / numeric / stage predicates
#   sub-worker — NEVER predicate, only reachable through the Spawner
#
# DESIGN DECISION: Predicates are small pure callables built by factory
# functions (keywords(), funding_above(), ...) rather than a switch
# statement, so adding an evaluator is one new entry, not an edit to the
# selector.
#
# DESIGN DECISION: The registry validates itself on construction and the
# default registry is built at import time. A definition that may spawn
# without an allow-list (or points at an unknown sub-worker) is a
# configuration error and stops the service at startup, not mid-run.
# =============================================================================

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field

from pitchswarm.models.domain import Submission

logger = logging.getLogger(__name__)


class RegistryConfigError(Exception):
    """Raised when the evaluator registry is malformed."""


# ---------------------------------------------------------------------------
# Spawn Predicates
# ---------------------------------------------------------------------------

SpawnPredicate = Callable[[Submission], bool]


class _Marker:
    """Named predicate constant with a fixed answer."""

    def __init__(self, name: str, value: bool) -> None:
        self._name = name
        self._value = value

    def __call__(self, submission: Submission) -> bool:
        return self._value

    def __repr__(self) -> str:
        return self._name


# Matches every submission. The selector checks for this marker by identity.
ALWAYS: SpawnPredicate = _Marker("ALWAYS", True)

# Matches nothing: the definition is only reachable as a sub-worker.
NEVER: SpawnPredicate = _Marker("NEVER", False)


def keywords(*terms: str) -> SpawnPredicate:
    """
    Case-insensitive keyword test over the submission's searchable text.

    A term matches at the start of a word and may run on from there, so
    "health" matches "Healthcare" and "ai" matches "AI / ML", but "ai"
    does not match "retail".
    """
    if not terms:
        raise RegistryConfigError("keywords() requires at least one term")
    pattern = re.compile(r"\b(?:" + "|".join(re.escape(t.lower()) for t in terms) + ")")

    def predicate(submission: Submission) -> bool:
        return pattern.search(submission.searchable_text()) is not None

    predicate.__qualname__ = f"keywords{terms!r}"
    return predicate


def funding_above(amount: int) -> SpawnPredicate:
    def predicate(submission: Submission) -> bool:
        return submission.funding_ask > amount

    predicate.__qualname__ = f"funding_above({amount})"
    return predicate


def stage_in(*stages: str) -> SpawnPredicate:
    wanted = {s.upper() for s in stages}

    def predicate(submission: Submission) -> bool:
        return submission.stage.strip().upper() in wanted

    predicate.__qualname__ = f"stage_in{tuple(sorted(wanted))!r}"
    return predicate


def team_at_least(size: int) -> SpawnPredicate:
    def predicate(submission: Submission) -> bool:
        return submission.team_size >= size

    return predicate


def any_of(*predicates: SpawnPredicate) -> SpawnPredicate:
    def predicate(submission: Submission) -> bool:
        return any(p(submission) for p in predicates)

    return predicate


def all_of(*predicates: SpawnPredicate) -> SpawnPredicate:
    def predicate(submission: Submission) -> bool:
        return all(p(submission) for p in predicates)

    return predicate


# ---------------------------------------------------------------------------
# Evaluator Definition
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EvaluatorDefinition:
    """One registry entry."""

    id: str
    name: str
    domain: str
    expertise: tuple[str, ...]
    predicate: SpawnPredicate
    can_spawn: bool = False
    sub_worker_types: tuple[str, ...] = ()
    cost_weight: float = 0.5  # reporting / estimation only
    group: str = "domain"
    description: str = ""

    @property
    def always(self) -> bool:
        return self.predicate is ALWAYS

    @property
    def spawn_only(self) -> bool:
        return self.predicate is NEVER


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


@dataclass
class EvaluatorRegistry:
    """
    Ordered, validated collection of evaluator definitions.

    Iteration follows declaration order. Lookups of unknown ids return None
    so the spawner can log-and-skip rather than raise.
    """

    definitions: list[EvaluatorDefinition] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._by_id: dict[str, EvaluatorDefinition] = {}
        for definition in self.definitions:
            if definition.id in self._by_id:
                raise RegistryConfigError(
                    f"Duplicate evaluator id '{definition.id}'"
                )
            self._by_id[definition.id] = definition
        self._validate()

    def _validate(self) -> None:
        for d in self.definitions:
            if d.can_spawn and not d.sub_worker_types:
                raise RegistryConfigError(
                    f"Evaluator '{d.id}' may spawn sub-workers but has no allow-list"
                )
            if d.sub_worker_types and not d.can_spawn:
                raise RegistryConfigError(
                    f"Evaluator '{d.id}' lists sub-workers but cannot spawn"
                )
            for sub_id in d.sub_worker_types:
                if sub_id not in self._by_id:
                    raise RegistryConfigError(
                        f"Evaluator '{d.id}' allows unknown sub-worker '{sub_id}'"
                    )
                if sub_id == d.id:
                    raise RegistryConfigError(
                        f"Evaluator '{d.id}' lists itself as a sub-worker"
                    )
            if d.cost_weight < 0:
                raise RegistryConfigError(
                    f"Evaluator '{d.id}' has a negative cost weight"
                )

    def get(self, definition_id: str) -> EvaluatorDefinition | None:
        return self._by_id.get(definition_id)

    def __iter__(self) -> Iterator[EvaluatorDefinition]:
        return iter(self.definitions)

    def __len__(self) -> int:
        return len(self.definitions)

    def __contains__(self, definition_id: object) -> bool:
        return definition_id in self._by_id


def estimate_cost(definitions: Iterable[EvaluatorDefinition]) -> float:
    """Sum of cost weights, rounded to cents."""
    return round(sum(d.cost_weight for d in definitions), 2)


# ---------------------------------------------------------------------------
# Default Registry
# ---------------------------------------------------------------------------

_CORE = [
    EvaluatorDefinition(
        id="financial_analyst",
        name="Financial Analyst",
        domain="Finance & Metrics",
        expertise=(
            "Financial modeling", "Unit economics", "Burn rate",
            "Revenue projections", "Valuation",
        ),
        predicate=ALWAYS,
        can_spawn=True,
        sub_worker_types=("valuation_modeler",),
        cost_weight=0.60,
        group="core",
        description="Revenue model, burn rate and financial viability",
    ),
    EvaluatorDefinition(
        id="market_analyst",
        name="Market Analyst",
        domain="Market & Competition",
        expertise=(
            "Market sizing", "TAM/SAM/SOM", "Competitive analysis", "Market trends",
        ),
        predicate=ALWAYS,
        cost_weight=0.65,
        group="core",
        description="Market size, competition and timing",
    ),
    EvaluatorDefinition(
        id="team_evaluator",
        name="Team Evaluator",
        domain="Team & Execution",
        expertise=(
            "Founder assessment", "Team composition", "Execution capability", "Culture",
        ),
        predicate=ALWAYS,
        cost_weight=0.50,
        group="core",
        description="Founder and team ability to execute",
    ),
]

_DOMAIN = [
    EvaluatorDefinition(
        id="defi_protocol_expert",
        name="DeFi Protocol Expert",
        domain="DeFi & Crypto",
        expertise=(
            "Smart contracts", "Tokenomics", "DeFi mechanics",
            "Protocol design", "MEV", "Liquidity",
        ),
        predicate=keywords(
            "defi", "crypto", "blockchain", "web3", "token", "smart contract",
        ),
        can_spawn=True,
        sub_worker_types=(
            "tokenomics_specialist", "security_auditor", "liquidity_analyst",
        ),
        cost_weight=0.70,
    ),
    EvaluatorDefinition(
        id="b2b_saas_expert",
        name="B2B SaaS Expert",
        domain="B2B SaaS",
        expertise=(
            "SaaS metrics", "Enterprise sales", "Product-market fit",
            "Churn analysis", "CAC/LTV",
        ),
        predicate=keywords("saas", "b2b", "enterprise", "software", "platform"),
        can_spawn=True,
        sub_worker_types=("gtm_strategist", "pricing_analyst"),
        cost_weight=0.60,
    ),
    EvaluatorDefinition(
        id="ai_ml_expert",
        name="AI/ML Expert",
        domain="AI & Machine Learning",
        expertise=(
            "ML models", "Data pipelines", "AI product design",
            "Compute economics", "Model training",
        ),
        predicate=keywords(
            "ai", "machine learning", "ml", "neural network", "llm", "gpt",
        ),
        can_spawn=True,
        sub_worker_types=("data_scientist", "ml_engineer"),
        cost_weight=0.70,
    ),
    EvaluatorDefinition(
        id="consumer_product_expert",
        name="Consumer Product Expert",
        domain="Consumer Products",
        expertise=(
            "User acquisition", "Retention", "Viral growth", "Monetization", "Community",
        ),
        predicate=keywords("consumer", "b2c", "mobile app", "social", "marketplace"),
        can_spawn=True,
        sub_worker_types=("growth_hacker", "community_strategist"),
        cost_weight=0.60,
    ),
    EvaluatorDefinition(
        id="hardware_expert",
        name="Hardware & IoT Expert",
        domain="Hardware & IoT",
        expertise=(
            "Manufacturing", "Supply chain", "Unit economics",
            "Hardware/software integration",
        ),
        predicate=keywords(
            "hardware", "iot", "device", "manufacturing", "physical product", "robotics",
        ),
        can_spawn=True,
        sub_worker_types=("supply_chain_analyst", "manufacturing_expert"),
        cost_weight=0.60,
    ),
    EvaluatorDefinition(
        id="biotech_expert",
        name="Biotech & Health Expert",
        domain="Biotech & Health",
        expertise=(
            "Clinical trials", "Regulatory pathways", "FDA approval", "R&D pipeline",
        ),
        predicate=keywords("biotech", "health", "medical", "pharma", "clinical"),
        can_spawn=True,
        sub_worker_types=("regulatory_specialist", "clinical_advisor"),
        cost_weight=0.65,
    ),
    EvaluatorDefinition(
        id="fintech_regulator",
        name="FinTech Regulatory Expert",
        domain="FinTech Regulation",
        expertise=(
            "Banking regulation", "KYC/AML", "Payment processing compliance",
        ),
        predicate=keywords("fintech", "payment", "banking", "kyc", "lending"),
        cost_weight=0.65,
    ),
    EvaluatorDefinition(
        id="climate_impact_analyst",
        name="Climate Impact Analyst",
        domain="Climate & Sustainability",
        expertise=(
            "Carbon footprint", "Sustainability metrics", "Climate tech viability",
        ),
        predicate=keywords(
            "climate", "clean energy", "sustainability", "carbon", "renewable",
        ),
        cost_weight=0.60,
    ),
]

_SPECIALIST = [
    EvaluatorDefinition(
        id="competitive_intelligence",
        name="Competitive Intelligence",
        domain="Competitive Positioning",
        expertise=(
            "Competitor analysis", "Market positioning", "Differentiation strategy",
        ),
        predicate=funding_above(2_000_000),
        cost_weight=0.60,
        group="specialist",
        description="Only for larger rounds",
    ),
    EvaluatorDefinition(
        id="data_privacy_expert",
        name="Data Privacy Expert",
        domain="Data Privacy",
        expertise=("GDPR", "CCPA", "Data handling", "Privacy regulation"),
        predicate=keywords(
            "user data", "personal information", "personal data", "gdpr", "hipaa",
        ),
        cost_weight=0.55,
        group="specialist",
    ),
    EvaluatorDefinition(
        id="team_dynamics_analyst",
        name="Team Dynamics Analyst",
        domain="Team Dynamics",
        expertise=("Founder compatibility", "Team balance", "Organizational health"),
        predicate=all_of(team_at_least(5), stage_in("IDEA")),
        cost_weight=0.50,
        group="specialist",
        description="Large teams that are still at idea stage",
    ),
]


def _sub_worker(
    id: str, name: str, domain: str, expertise: tuple[str, ...], cost: float = 0.55,
) -> EvaluatorDefinition:
    return EvaluatorDefinition(
        id=id,
        name=name,
        domain=domain,
        expertise=expertise,
        predicate=NEVER,
        cost_weight=cost,
        group="sub_worker",
    )


_SUB_WORKERS = [
    _sub_worker(
        "tokenomics_specialist", "Tokenomics Specialist", "Token Economics",
        ("Token distribution", "Vesting schedules", "Incentive alignment", "Token utility"),
    ),
    _sub_worker(
        "security_auditor", "Security Auditor", "Smart Contract Security",
        ("Vulnerability assessment", "Audit reports", "Security best practices"),
        cost=0.60,
    ),
    _sub_worker(
        "liquidity_analyst", "Liquidity Analyst", "Liquidity & Market Making",
        ("DEX design", "Liquidity pools", "Market making", "Slippage analysis"),
    ),
    _sub_worker(
        "gtm_strategist", "Go-To-Market Strategist", "Go-To-Market",
        ("Sales strategy", "Channel partnerships", "Launch planning"),
        cost=0.60,
    ),
    _sub_worker(
        "pricing_analyst", "Pricing Analyst", "Pricing Strategy",
        ("Pricing models", "Value-based pricing", "Competitive pricing"),
    ),
    _sub_worker(
        "growth_hacker", "Growth Hacker", "Growth & Virality",
        ("Viral loops", "Referral programs", "Growth experiments"),
    ),
    _sub_worker(
        "community_strategist", "Community Strategist", "Community",
        ("Community building", "Engagement programs", "Ambassador networks"),
        cost=0.50,
    ),
    _sub_worker(
        "data_scientist", "Data Scientist", "Data Strategy",
        ("Data acquisition", "Data moats", "Evaluation methodology"),
        cost=0.60,
    ),
    _sub_worker(
        "ml_engineer", "ML Engineer", "ML Infrastructure",
        ("Training infrastructure", "Inference cost", "Model deployment"),
        cost=0.60,
    ),
    _sub_worker(
        "supply_chain_analyst", "Supply Chain Analyst", "Supply Chain",
        ("Sourcing", "Logistics", "Supplier concentration"),
    ),
    _sub_worker(
        "manufacturing_expert", "Manufacturing Expert", "Manufacturing",
        ("Design for manufacturing", "Yield", "Contract manufacturers"),
    ),
    _sub_worker(
        "regulatory_specialist", "Regulatory Specialist", "Healthcare Regulation",
        ("FDA pathways", "HIPAA", "CE marking"),
        cost=0.65,
    ),
    _sub_worker(
        "clinical_advisor", "Clinical Advisor", "Clinical Validation",
        ("Trial design", "Clinical endpoints", "Evidence generation"),
        cost=0.65,
    ),
    _sub_worker(
        "valuation_modeler", "Valuation Modeler", "Valuation",
        ("Comparable companies", "DCF", "Round pricing"),
    ),
]


def build_default_registry() -> EvaluatorRegistry:
    return EvaluatorRegistry([*_CORE, *_DOMAIN, *_SPECIALIST, *_SUB_WORKERS])


# Built at import so a malformed catalog fails the process at startup.
DEFAULT_REGISTRY = build_default_registry()
