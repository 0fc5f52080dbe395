# =============================================================================
# Agents Package — The Evaluation Swarm
# =============================================================================
#   - registry.py: evaluator definitions, spawn predicates, validation
#   - selector.py: submission → top-level evaluator instances
#   - instances.py: run-scoped instances, outcomes, failures, lineage
#   - judge.py: Judge protocol, prompt context, LLM and cached judges
#   - runner.py: one instance → one validated outcome
#   - spawner.py: bounded sub-worker creation
#   - engine.py: concurrent waves with one run deadline
#   - consensus.py: outcomes → consensus verdict
#   - offers.py: consensus → deterministic investment offers
#   - orchestrator.py: LangGraph graph tying the stages together
# =============================================================================
