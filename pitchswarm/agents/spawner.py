# =============================================================================
# Spawner — Bounded Sub-Worker Creation
# =============================================================================
#
# A completed evaluator may ask for deeper review by listing sub-worker
# types. The spawner decides which of those requests become instances:
#
#   parent definition can spawn?         no  → nothing
#   parent depth < max_depth?            no  → nothing
#   type in parent's allow-list?         no  → skip (warning)
#   type known to the registry?          no  → skip (warning)
#
# Children get parent_id and depth = parent.depth + 1. With the default
# max_depth of 1, sub-workers never spawn again.
#
# DESIGN DECISION: The spawner only creates instances. Scheduling belongs
# to the execution engine, which runs spawned instances as the next wave.
# A rejected request is a spawn failure: logged, skipped, never fatal.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Iterable

from pitchswarm.agents.instances import EvaluatorInstance, LineageEdge
from pitchswarm.agents.registry import DEFAULT_REGISTRY, EvaluatorRegistry, RegistryConfigError
from pitchswarm.config import HARD_MAX_SPAWN_DEPTH, settings

logger = logging.getLogger(__name__)


class Spawner:
    def __init__(
        self,
        registry: EvaluatorRegistry = DEFAULT_REGISTRY,
        max_depth: int | None = None,
    ) -> None:
        max_depth = settings.max_spawn_depth if max_depth is None else max_depth
        if not 0 <= max_depth <= HARD_MAX_SPAWN_DEPTH:
            raise RegistryConfigError(
                f"max_depth must be between 0 and {HARD_MAX_SPAWN_DEPTH}, got {max_depth}"
            )
        self.registry = registry
        self.max_depth = max_depth

    def spawn(
        self,
        parent: EvaluatorInstance,
        requested_types: Iterable[str],
    ) -> list[EvaluatorInstance]:
        """Instances for the permitted requests, in request order, de-duplicated."""
        requested = list(dict.fromkeys(requested_types))
        if not requested:
            return []

        definition = parent.definition
        if not definition.can_spawn:
            logger.warning(
                "Spawn rejected: %s cannot spawn sub-workers (requested %s)",
                parent.instance_id, requested,
            )
            return []
        if parent.depth >= self.max_depth:
            logger.warning(
                "Spawn rejected: %s at depth %d, max depth is %d",
                parent.instance_id, parent.depth, self.max_depth,
            )
            return []

        children: list[EvaluatorInstance] = []
        for sub_type in requested:
            if sub_type not in definition.sub_worker_types:
                logger.warning(
                    "Spawn skipped: '%s' is not in the allow-list of %s",
                    sub_type, definition.id,
                )
                continue
            sub_definition = self.registry.get(sub_type)
            if sub_definition is None:
                logger.warning("Spawn skipped: unknown evaluator type '%s'", sub_type)
                continue
            children.append(EvaluatorInstance.create(sub_definition, parent=parent))

        if children:
            logger.info(
                "%s spawned %d sub-workers: %s",
                parent.instance_id, len(children),
                ", ".join(c.definition_id for c in children),
            )
        return children

    @staticmethod
    def lineage(children: Iterable[EvaluatorInstance]) -> list[LineageEdge]:
        return [
            LineageEdge(
                parent_id=child.parent_id,
                child_id=child.instance_id,
                child_definition_id=child.definition_id,
            )
            for child in children
            if child.parent_id is not None
        ]
