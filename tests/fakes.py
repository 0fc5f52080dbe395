# =============================================================================
# Test Doubles — Scripted Judge & Submission Builder
# =============================================================================
#
# Shared by the runner, engine, orchestrator and API tests. The scripted
# judge answers per definition_id, so a test states "market_analyst says
# reject" instead of mocking an LLM.
# =============================================================================

from __future__ import annotations

import asyncio
from typing import Any

from pitchswarm.agents.judge import JudgeContext
from pitchswarm.models.domain import Submission


def make_submission(**overrides: Any) -> Submission:
    fields: dict[str, Any] = {
        "id": "sub_1",
        "name": "Crumb & Co",
        "tagline": "Neighbourhood bakery",
        "description": "Sourdough and pastries baked daily.",
        "industry": "Food",
        "stage": "MVP",
        "funding_ask": 250_000,
        "team_size": 2,
    }
    fields.update(overrides)
    return Submission(**fields)


def judgment(verdict: str = "accept", confidence: float = 80, **extra: Any) -> dict:
    return {"verdict": verdict, "confidence": confidence, **extra}


class ScriptedJudge:
    """
    Answers from a per-definition script.

    A scripted value that is an exception is raised instead of returned.
    `delays` holds seconds to sleep before answering, per definition.
    """

    def __init__(
        self,
        responses: dict[str, Any] | None = None,
        default: Any = None,
        delays: dict[str, float] | None = None,
    ) -> None:
        self.responses = responses or {}
        self.default = judgment() if default is None else default
        self.delays = delays or {}
        self.calls: list[JudgeContext] = []
        self.active = 0
        self.max_active = 0

    async def judge(self, context: JudgeContext, submission: Submission) -> Any:
        self.calls.append(context)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delays.get(context.definition_id, 0))
            response = self.responses.get(context.definition_id, self.default)
            if isinstance(response, Exception):
                raise response
            return response
        finally:
            self.active -= 1

    def called(self) -> list[str]:
        return [c.definition_id for c in self.calls]
