# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
#   - domain.py: Submission, JudgmentResult, ConsensusResult, Offer
#   - requests.py: API request bodies
#   - responses.py: API responses and the Celery task result
#
# Kept separate from the ORM model (pitchswarm/db/models.py): the activity
# table is an internal log, not part of the API contract.
# =============================================================================
