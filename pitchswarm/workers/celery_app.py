# =============================================================================
# Celery Application Configuration
# =============================================================================
#
# Celery runs evaluations that a client does not want to wait for:
# POST /evaluate/async enqueues, GET /evaluate/tasks/{task_id} polls.
#
# FLOW:
#   POST /evaluate/async ──▶ broker (Redis db 0) ──▶ worker runs the pipeline
#   GET  /evaluate/tasks/{id} ◀── result backend (Redis db 1) ◀──┘
#
# The evaluation's own deadline (EVALUATION_TIMEOUT_SECONDS) is enforced
# inside the run. The Celery time limits below are a backstop set above it.
# =============================================================================

from celery import Celery

from pitchswarm.config import settings

celery_app = Celery(
    "pitchswarm.workers",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

# Soft limit leaves a minute after the run deadline for synthesis and
# result serialisation; the hard limit kills a stuck worker.
_soft_limit = int(settings.evaluation_timeout_seconds) + 60

celery_app.conf.update(
    # --- Serialization ---
    # JSON only: the submission goes in as a dict, the EvaluationResponse
    # comes out as a dict. Never pickle.
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # --- Reliability ---
    # Acknowledge after completion so a crashed worker's evaluation is
    # re-queued rather than lost.
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    # One evaluation at a time per worker process: each run already fans
    # out to many concurrent judge calls.
    worker_prefetch_multiplier=1,

    # --- Timeouts ---
    task_soft_time_limit=_soft_limit,
    task_time_limit=_soft_limit * 2,

    # --- Results ---
    result_expires=3600,

    # --- Task Discovery ---
    include=["pitchswarm.workers.tasks"],
)
