# =============================================================================
# FastAPI Application — Entry Point
# =============================================================================
#
#   uvicorn pitchswarm.main:app --reload
#
# STARTUP (lifespan):
#   1. Log the evaluator registry. It is built and validated at import
#      (agents/registry.py), so a malformed catalog has already stopped
#      the process before this point.
#   2. With ACTIVITY_SINK=database, create the evaluator_activity table if
#      it does not exist.
# =============================================================================

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from pitchswarm.agents.registry import DEFAULT_REGISTRY
from pitchswarm.api import evaluate
from pitchswarm.config import settings
from pitchswarm.models.responses import HealthResponse

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    groups: dict[str, int] = {}
    for definition in DEFAULT_REGISTRY:
        groups[definition.group] = groups.get(definition.group, 0) + 1
    logger.info(
        "Loaded %d evaluator definitions: %s",
        len(DEFAULT_REGISTRY),
        ", ".join(f"{count} {group}" for group, count in groups.items()),
    )
    logger.info(
        "Swarm limits: timeout=%.0fs, concurrency=%d, spawn depth=%d",
        settings.evaluation_timeout_seconds,
        settings.max_concurrent_evaluators,
        settings.max_spawn_depth,
    )

    if settings.activity_sink == "database":
        from pitchswarm.db.engine import async_engine
        from pitchswarm.db.models import Base

        async with async_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Evaluator activity table ready")

    yield

    if settings.activity_sink == "database":
        from pitchswarm.db.engine import async_engine

        await async_engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description=(
        "Evaluates startup pitches with a dynamically selected swarm of "
        "domain evaluators and derives investment offers from their consensus."
    ),
    version=settings.app_version,
    lifespan=lifespan,
)

app.include_router(evaluate.router)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health() -> HealthResponse:
    return HealthResponse(
        version=settings.app_version,
        service=settings.app_name,
        evaluators=len(DEFAULT_REGISTRY),
    )
