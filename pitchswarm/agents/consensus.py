# =============================================================================
# Consensus Synthesizer — Many Judgments, One Decision
# =============================================================================
#
# Pure reduction over the settled outcomes of a run:
#
#   1. Only succeeded outcomes vote. Failures contribute nothing (their
#      count is reported as metadata).
#   2. accept          if positive votes >= accept_ratio * n
#      reject          elif negative votes >= reject_ratio * n
#      needs_revision  otherwise
#   3. confidence = mean of succeeded confidences (not rounded)
#   4. top strengths / weaknesses ranked by how many evaluators raised them
#   5. critical issues = reasoning snippets of rejecting evaluators
#
# n == 0 is a run failure, never an empty or neutral consensus.
#
# DESIGN DECISION: Thresholds compared as exact fractions. With floats,
# 0.7 * 10 is 7.000000000000001 and seven positive votes out of ten would
# miss the accept threshold.
#
# DESIGN DECISION: Ties in the top-N lists break by first-seen order across
# outcomes in execution order. The sort is explicit and stable, so the same
# outcomes always give the same lists.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from fractions import Fraction

from pitchswarm.agents.instances import InstanceOutcome
from pitchswarm.config import Settings, settings as default_settings
from pitchswarm.models.domain import (
    NEGATIVE_VERDICTS,
    POSITIVE_VERDICTS,
    ConsensusResult,
    ConsensusVerdict,
    Verdict,
)

logger = logging.getLogger(__name__)


class RunFailureError(Exception):
    """No evaluator of the run produced a judgment."""

    def __init__(self, message: str, failed_count: int = 0) -> None:
        super().__init__(message)
        self.failed_count = failed_count


@dataclass(frozen=True)
class ConsensusPolicy:
    accept_ratio: float = 0.7
    reject_ratio: float = 0.5
    top_n: int = 5
    snippet_chars: int = 200

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> ConsensusPolicy:
        s = settings or default_settings
        return cls(
            accept_ratio=s.consensus_accept_ratio,
            reject_ratio=s.consensus_reject_ratio,
            top_n=s.consensus_top_n,
            snippet_chars=s.critical_issue_snippet_chars,
        )


def synthesize(
    outcomes: Sequence[InstanceOutcome],
    policy: ConsensusPolicy | None = None,
) -> ConsensusResult:
    """
    Reduce settled outcomes to a ConsensusResult.

    Raises:
        RunFailureError: no outcome succeeded.
    """
    policy = policy or ConsensusPolicy.from_settings()
    succeeded = [o for o in outcomes if o.succeeded]
    failed_count = len(outcomes) - len(succeeded)
    n = len(succeeded)

    if n == 0:
        raise RunFailureError(
            f"All {failed_count} evaluators failed; no judgment to synthesize",
            failed_count=failed_count,
        )

    verdict_counts = {v.value: 0 for v in Verdict}
    for o in succeeded:
        verdict_counts[o.result.verdict.value] += 1

    positive = sum(verdict_counts[v.value] for v in POSITIVE_VERDICTS)
    negative = sum(verdict_counts[v.value] for v in NEGATIVE_VERDICTS)

    if positive >= Fraction(str(policy.accept_ratio)) * n:
        verdict = ConsensusVerdict.ACCEPT
    elif negative >= Fraction(str(policy.reject_ratio)) * n:
        verdict = ConsensusVerdict.REJECT
    else:
        verdict = ConsensusVerdict.NEEDS_REVISION

    confidence = sum(o.result.confidence for o in succeeded) / n

    result = ConsensusResult(
        verdict=verdict,
        confidence=confidence,
        top_strengths=rank_by_frequency(
            (s for o in succeeded for s in o.result.strengths), policy.top_n,
        ),
        top_weaknesses=rank_by_frequency(
            (w for o in succeeded for w in o.result.weaknesses), policy.top_n,
        ),
        critical_issues=[
            _critical_issue(o, policy.snippet_chars)
            for o in succeeded
            if o.result.verdict in NEGATIVE_VERDICTS
        ],
        succeeded_count=n,
        failed_count=failed_count,
        verdict_counts=verdict_counts,
    )
    logger.info(
        "Consensus: %s (confidence %.2f, %d/%d positive, %d failed)",
        verdict.value, confidence, positive, n, failed_count,
    )
    return result


def rank_by_frequency(items: Iterable[str], n: int) -> list[str]:
    """
    Most frequent items first, at most n.

    Items are compared case-insensitively after trimming; the first surface
    form seen is the one returned. Blank items are ignored.
    """
    counts: dict[str, int] = {}
    surface: dict[str, str] = {}
    for item in items:
        text = item.strip()
        if not text:
            continue
        key = text.casefold()
        if key not in counts:
            counts[key] = 0
            surface[key] = text
        counts[key] += 1

    # dicts keep insertion order and sorted() is stable: equal counts stay
    # in first-seen order.
    ranked = sorted(counts, key=lambda k: counts[k], reverse=True)
    return [surface[k] for k in ranked[:n]]


def _critical_issue(outcome: InstanceOutcome, snippet_chars: int) -> str:
    reasoning = outcome.result.reasoning.strip()
    if not reasoning:
        snippet = "(no reasoning given)"
    elif len(reasoning) > snippet_chars:
        snippet = reasoning[:snippet_chars] + "..."
    else:
        snippet = reasoning
    return f"[{outcome.instance.definition.domain}] {snippet}"
