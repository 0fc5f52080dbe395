# =============================================================================
# Database Package
# =============================================================================
# Async SQLAlchemy engine and session management, plus the ORM model of the
# evaluator activity log. Evaluation results are not persisted.
#
# Key exports:
#   - async_session_factory: sessions for the activity sink
#   - Base: SQLAlchemy declarative base
#   - EvaluatorActivity: one lifecycle event of one evaluator instance
# =============================================================================
