# =============================================================================
# Execution Engine — Concurrent, All-Settled, Wave-Based
# =============================================================================
#
# Runs the instances of one evaluation:
#
#   wave 1: top-level instances from the selector
#      │    (all launched at once, bounded by a semaphore)
#      ▼    ── barrier: wait for every instance of the wave to settle ──
#   wave 2: sub-workers requested by wave-1 results (via the Spawner)
#      ▼
#   ...     until a wave requests nothing
#
# ALL-SETTLED: every scheduled instance ends with exactly one outcome. No
# short-circuit on failure and no retry; a failed evaluator is simply a
# failed outcome next to its successful siblings.
#
# DEADLINE: one deadline for the whole run, not per wave. When it expires,
# in-flight tasks are cancelled and recorded as timeouts. A wave that has
# not started by then is recorded as timeouts without being launched.
# Each of them gets exactly one TIMEOUT activity record: from the runner
# if it had started, from the engine if it was still queued or unlaunched.
#
# DESIGN DECISION: asyncio.wait(timeout=...) + explicit cancel over
# asyncio.wait_for around a gather. wait_for would cancel the gather as a
# whole and lose the outcomes that had already completed; asyncio.wait
# keeps the finished tasks and tells us exactly which ones were pending.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from pitchswarm.agents.instances import (
    EvaluatorInstance,
    Failure,
    FailureKind,
    InstanceOutcome,
    LineageEdge,
)
from pitchswarm.agents.runner import WorkerRunner
from pitchswarm.agents.spawner import Spawner
from pitchswarm.config import settings
from pitchswarm.models.domain import Submission

logger = logging.getLogger(__name__)


@dataclass
class ExecutionReport:
    """Every outcome of a run, in execution order, plus the spawn lineage."""

    outcomes: list[InstanceOutcome] = field(default_factory=list)
    lineage: list[LineageEdge] = field(default_factory=list)
    waves: int = 0
    deadline_expired: bool = False

    @property
    def succeeded(self) -> list[InstanceOutcome]:
        return [o for o in self.outcomes if o.succeeded]

    @property
    def failed(self) -> list[InstanceOutcome]:
        return [o for o in self.outcomes if not o.succeeded]


class ExecutionEngine:
    def __init__(
        self,
        runner: WorkerRunner,
        spawner: Spawner | None = None,
        max_concurrency: int | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.runner = runner
        self.spawner = spawner
        self.max_concurrency = max_concurrency or settings.max_concurrent_evaluators
        self.timeout_seconds = timeout_seconds or settings.evaluation_timeout_seconds
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

    async def execute(
        self,
        submission: Submission,
        instances: list[EvaluatorInstance],
        run_id: str = "",
    ) -> ExecutionReport:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout_seconds
        semaphore = asyncio.Semaphore(self.max_concurrency)
        report = ExecutionReport()

        wave = list(instances)
        while wave:
            report.waves += 1
            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.warning(
                    "Run %s: deadline passed before wave %d, %d instances not started",
                    run_id or "-", report.waves, len(wave),
                )
                report.deadline_expired = True
                for instance in wave:
                    self.runner.record_timeout(
                        instance, submission, run_id, "Deadline expired before start",
                    )
                    report.outcomes.append(
                        InstanceOutcome.timed_out(instance, "Deadline expired before start")
                    )
                break

            logger.info(
                "Run %s: wave %d with %d instances (%.1fs left)",
                run_id or "-", report.waves, len(wave), remaining,
            )
            settled, expired = await self._run_wave(
                wave, submission, semaphore, remaining, run_id,
            )
            report.outcomes.extend(settled)
            report.deadline_expired = report.deadline_expired or expired

            wave = self._next_wave(settled, report)

        logger.info(
            "Run %s: %d instances settled in %d waves (%d succeeded, %d failed)",
            run_id or "-", len(report.outcomes), report.waves,
            len(report.succeeded), len(report.failed),
        )
        return report

    # -----------------------------------------------------------------------
    # Internal Helpers
    # -----------------------------------------------------------------------

    async def _run_wave(
        self,
        wave: list[EvaluatorInstance],
        submission: Submission,
        semaphore: asyncio.Semaphore,
        timeout: float,
        run_id: str,
    ) -> tuple[list[InstanceOutcome], bool]:
        # Instances that got a semaphore slot; the runner records their
        # lifecycle itself, including a cancellation.
        started: set[str] = set()

        async def bounded(instance: EvaluatorInstance) -> InstanceOutcome:
            async with semaphore:
                started.add(instance.instance_id)
                return await self.runner.run(instance, submission, run_id=run_id)

        tasks = [
            asyncio.create_task(bounded(instance), name=instance.instance_id)
            for instance in wave
        ]
        try:
            _, pending = await asyncio.wait(tasks, timeout=timeout)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise

        if pending:
            logger.warning(
                "Run %s: deadline expired with %d instances in flight, cancelling",
                run_id or "-", len(pending),
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        settled: list[InstanceOutcome] = []
        for instance, task in zip(wave, tasks):
            if task.cancelled():
                if instance.instance_id not in started:
                    self.runner.record_timeout(instance, submission, run_id)
                settled.append(InstanceOutcome.timed_out(instance))
            elif task.exception() is not None:
                # The runner turns judge problems into outcomes; anything
                # else escaping it is still confined to this instance.
                exc = task.exception()
                logger.error(
                    "Run %s: runner crashed for %s: %r",
                    run_id or "-", instance.instance_id, exc,
                )
                settled.append(InstanceOutcome(
                    instance=instance,
                    failure=Failure(FailureKind.JUDGE_ERROR, f"{type(exc).__name__}: {exc}"),
                ))
            else:
                settled.append(task.result())
        return settled, bool(pending)

    def _next_wave(
        self,
        settled: list[InstanceOutcome],
        report: ExecutionReport,
    ) -> list[EvaluatorInstance]:
        if self.spawner is None:
            return []
        next_wave: list[EvaluatorInstance] = []
        for outcome in settled:
            if not outcome.succeeded or not outcome.result.requested_sub_workers:
                continue
            children = self.spawner.spawn(
                outcome.instance, outcome.result.requested_sub_workers,
            )
            next_wave.extend(children)
            report.lineage.extend(Spawner.lineage(children))
        return next_wave
