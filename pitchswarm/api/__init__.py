# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
#   - evaluate.py: evaluation, preview, registry listing, async tasks
#   - deps.py: judge and activity sink dependencies
# =============================================================================
