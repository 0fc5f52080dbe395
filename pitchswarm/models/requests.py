# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# Shapes of data coming INTO the API. FastAPI validates request bodies
# against them (422 on invalid data) and publishes them in the OpenAPI
# schema at /docs.
#
# The pitch itself is the domain Submission model (models/domain.py); the
# request body wraps it. Per-request options that select collaborators
# (e.g. the LLM backend) are query parameters resolved by dependencies in
# api/deps.py.
# =============================================================================

from pydantic import BaseModel, ConfigDict

from pitchswarm.models.domain import Submission

_EXAMPLE_SUBMISSION = {
    "id": "pitch_001",
    "name": "NeuroLedger",
    "tagline": "Neural network forecasting for SMB cash flow",
    "description": (
        "We train a neural network on bank feeds to predict cash shortfalls "
        "30 days ahead for small businesses."
    ),
    "industry": "AI / ML",
    "stage": "MVP",
    "funding_ask": 1_000_000,
    "valuation": 8_000_000,
    "team_size": 4,
    "revenue": 120_000,
    "users": 850,
    "tech_stack": ["Python", "PyTorch", "PostgreSQL"],
    "business_model": "Monthly subscription",
}


class EvaluateRequest(BaseModel):
    """
    Request body for POST /evaluate, POST /evaluate/async and
    POST /evaluate/preview.

    Example:
        {
            "submission": {
                "id": "pitch_001",
                "name": "NeuroLedger",
                "industry": "AI / ML",
                "funding_ask": 1000000,
                ...
            }
        }
    """

    submission: Submission

    model_config = ConfigDict(
        json_schema_extra={"examples": [{"submission": _EXAMPLE_SUBMISSION}]}
    )
