# =============================================================================
# Database Engine — Activity Log Storage
# =============================================================================
#
# The database holds one thing: the evaluator activity log (see
# db/models.py). Evaluation results are returned to the caller and never
# stored.
#
# DESIGN DECISION: Async SQLAlchemy only. Both writers of the activity log
# run inside an event loop: FastAPI handlers, and the Celery task, which
# drives the async pipeline with asyncio.run(). No sync engine is needed.
#
# SESSIONS: async_session_factory() is used directly by the database
# activity sink, which writes outside any request and commits itself.
# =============================================================================

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from pitchswarm.config import settings

# ---------------------------------------------------------------------------
# Engine and Session Factory
# ---------------------------------------------------------------------------
# echo follows debug so SQL shows up in development logs. The pool is sized
# for a handful of concurrent activity writes per run.
# ---------------------------------------------------------------------------
async_engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=5,
    max_overflow=10,
)

# expire_on_commit=False: attributes stay readable after commit without a
# new round-trip, which would fail outside the session in async code.
async_session_factory = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

