# =============================================================================
# Services Package — Infrastructure Behind the Swarm
# =============================================================================
#   - llm.py: multi-provider LLM abstraction (Anthropic, OpenAI-compatible)
#   - cache.py: judgment cache (in-memory, Redis)
#   - activity.py: evaluator lifecycle sinks (log, memory, database)
# =============================================================================
