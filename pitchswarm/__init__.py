# =============================================================================
# Pitch Evaluation Swarm
# =============================================================================
# Evaluates startup pitch submissions with a dynamically selected set of
# domain evaluators, synthesises their verdicts into one consensus and
# derives bounded investment offers from it.
#
# Package structure:
#   pitchswarm/
#   ├── api/          → FastAPI route handlers (evaluate, preview, tasks)
#   ├── agents/       → Registry, selector, worker runner, spawner, execution
#   │                    engine, consensus, offers, LangGraph orchestrator
#   ├── db/           → Async engine, session, evaluator activity ORM model
#   ├── models/       → Pydantic V2 domain, request and response schemas
#   ├── services/     → LLM providers, judgment cache, activity sinks
#   └── workers/      → Celery app and background evaluation task
# =============================================================================
