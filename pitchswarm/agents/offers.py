# =============================================================================
# Offer Generator — Deterministic, Bounded Investment Terms
# =============================================================================
#
# Offers exist only for an `accept` consensus. Each comes from one strongly
# positive evaluator (confidence >= 70, accept / strong_accept), best first,
# at most three. Everything below is arithmetic: no randomness, no LLM.
#
#   multiplier(c)  0.8 below 85, 1.0 from 85, 1.5 from 95  (≤ max_multiplier)
#   amount         floor(funding_ask * multiplier)
#   base(c)        10 + (100 - c) * 0.5   c >= 95
#                  15 + (95 - c) * 0.3    c >= 85
#                  18 + (85 - c) * 0.4    otherwise
#   equity         clamp(base + 2 * log10(amount / 100_000) - bonus, 8, 25)
#                  bonus = 3 * (multiplier - 1) when multiplier > 1
#                  rounded half-up to one decimal
#
# The clamp bounds are hard limits: no input produces equity outside them.
#
# AMOUNT TIERS (deal structure and term sheet text):
#   < 500k   SAFE, 8x cap, 25% discount
#   < 2M     SAFE, 10x cap, 20% discount
#   < 10M    priced equity, 8x post-money, board observer
#   >= 10M   lead equity, 12x post-money, board seat
#
# Amounts are whole currency units internally; Offer.amount is in cents.
# =============================================================================

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from pitchswarm.agents.instances import InstanceOutcome
from pitchswarm.config import Settings, settings as default_settings
from pitchswarm.models.domain import (
    EQUITY_MAX,
    EQUITY_MIN,
    POSITIVE_VERDICTS,
    ConsensusResult,
    ConsensusVerdict,
    DealStructure,
    Offer,
    Submission,
)

logger = logging.getLogger(__name__)


def check_equity_bounds(floor: float, ceiling: float) -> None:
    """Raise ValueError unless EQUITY_MIN <= floor < ceiling <= EQUITY_MAX."""
    if not EQUITY_MIN <= floor < ceiling <= EQUITY_MAX:
        raise ValueError(
            f"Equity bounds [{floor}, {ceiling}] must satisfy "
            f"{EQUITY_MIN} <= floor < ceiling <= {EQUITY_MAX}"
        )


@dataclass(frozen=True)
class OfferPolicy:
    min_confidence: float = 70.0
    max_offers: int = 3
    equity_floor: float = EQUITY_MIN
    equity_ceiling: float = EQUITY_MAX
    max_multiplier: float = 1.5

    def __post_init__(self) -> None:
        check_equity_bounds(self.equity_floor, self.equity_ceiling)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> OfferPolicy:
        s = settings or default_settings
        return cls(
            min_confidence=s.offer_min_confidence,
            max_offers=s.offer_max_count,
            equity_floor=s.offer_equity_floor,
            equity_ceiling=s.offer_equity_ceiling,
            max_multiplier=s.offer_max_multiplier,
        )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def generate(
    consensus: ConsensusResult,
    outcomes: Sequence[InstanceOutcome],
    submission: Submission,
    policy: OfferPolicy | None = None,
) -> list[Offer]:
    """
    Offers for an accepted submission; [] for any other verdict.

    Eligible outcomes are ranked by confidence, highest first. Python's
    sort is stable, so equal confidences keep execution order.
    """
    policy = policy or OfferPolicy.from_settings()
    if consensus.verdict is not ConsensusVerdict.ACCEPT:
        logger.info(
            "No offers for %s: consensus is %s", submission.id, consensus.verdict.value,
        )
        return []

    eligible = [
        o for o in outcomes
        if o.succeeded
        and o.result.confidence >= policy.min_confidence
        and o.result.verdict in POSITIVE_VERDICTS
    ]
    eligible.sort(key=lambda o: o.result.confidence, reverse=True)

    offers = [
        _build_offer(o, submission, policy) for o in eligible[:policy.max_offers]
    ]
    logger.info(
        "Generated %d offers for %s (%d eligible evaluators)",
        len(offers), submission.id, len(eligible),
    )
    return offers


def multiplier_for(confidence: float, max_multiplier: float = 1.5) -> float:
    if confidence >= 95:
        m = 1.5
    elif confidence >= 85:
        m = 1.0
    else:
        m = 0.8
    return min(m, max_multiplier)


def base_equity(confidence: float) -> float:
    if confidence >= 95:
        return 10 + (100 - confidence) * 0.5
    if confidence >= 85:
        return 15 + (95 - confidence) * 0.3
    return 18 + (85 - confidence) * 0.4


def equity_for(
    confidence: float,
    amount: int,
    multiplier: float,
    floor: float = EQUITY_MIN,
    ceiling: float = EQUITY_MAX,
) -> float:
    """Equity percentage for an offer of `amount` whole currency units."""
    check_equity_bounds(floor, ceiling)
    funding_adjustment = math.log10(amount / 100_000) * 2 if amount > 0 else 0.0
    bonus = (multiplier - 1) * 3 if multiplier > 1 else 0.0
    raw = base_equity(confidence) + funding_adjustment - bonus
    clamped = min(ceiling, max(floor, raw))
    return float(Decimal(str(clamped)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _Tier:
    structure: DealStructure
    terms: str
    conditions: tuple[str, ...]
    expected_return: str
    time_horizon: str


def _tier_for(amount: int) -> _Tier:
    if amount < 500_000:
        return _Tier(
            DealStructure.SAFE,
            f"${amount * 8 / 1_000_000:.1f}M valuation cap, 25% discount. "
            "Post-money SAFE. No board seat. Information rights. "
            "Pro-rata rights for next round.",
            ("Quarterly investor updates", "Use of funds as presented"),
            "10x return at exit",
            "5-7 years",
        )
    if amount < 2_000_000:
        return _Tier(
            DealStructure.SAFE,
            f"${amount * 10 / 1_000_000:.1f}M valuation cap, 20% discount. "
            "Post-money SAFE. No board seat. Information rights. "
            "Pro-rata rights for next round.",
            (
                "Quarterly investor updates",
                "Use of funds as presented",
                "Key founder vesting in place",
            ),
            "8-10x return at exit",
            "5-7 years",
        )
    if amount < 10_000_000:
        return _Tier(
            DealStructure.EQUITY,
            f"Priced round at ${amount * 8 / 1_000_000:.1f}M post-money valuation. "
            "Board observer seat. Quarterly financial reporting. Standard "
            "pro-rata rights. 1x liquidation preference.",
            (
                "Board observer seat",
                "Quarterly financial reporting",
                "Standard protective provisions",
            ),
            "5-8x return at exit",
            "4-6 years",
        )
    return _Tier(
        DealStructure.EQUITY,
        f"Lead investor at ${amount * 12 / 1_000_000:.1f}M post-money. Board seat. "
        "Monthly reporting. 2x pro-rata. Participating preferred.",
        (
            "Board seat",
            "Monthly financial reporting",
            "Approval rights on new senior hires",
        ),
        "3-5x return at exit",
        "4-6 years",
    )


def _build_offer(
    outcome: InstanceOutcome,
    submission: Submission,
    policy: OfferPolicy,
) -> Offer:
    confidence = outcome.result.confidence
    multiplier = multiplier_for(confidence, policy.max_multiplier)
    amount = math.floor(submission.funding_ask * multiplier)
    equity = equity_for(
        confidence, amount, multiplier, policy.equity_floor, policy.equity_ceiling,
    )
    tier = _tier_for(amount)

    return Offer(
        offer_id=f"offer_{outcome.instance.instance_id}",
        source_instance_id=outcome.instance.instance_id,
        source_definition_id=outcome.instance.definition_id,
        interested=True,
        amount=amount * 100,
        equity=equity,
        deal_structure=tier.structure,
        terms=tier.terms,
        conditions=list(tier.conditions),
        expected_return=tier.expected_return,
        time_horizon=tier.time_horizon,
        confidence=confidence,
    )
