"""
Standardized SSE payload models.

Every event from /api/pricing/config/{company_id}/{service_name}/stream
serializes ConfigUpdatePayload so clients can re-price on a config change
without branching on payload shape.
"""
from typing import Optional
from pydantic import BaseModel


class ConfigUpdatePayload(BaseModel):
    """Strict contract for every config-stream SSE event."""
    event: str                       # "snapshot" | "update" | "error"
    company_id: str
    service_name: str
    version: Optional[str] = None
    source: Optional[str] = None     # "live" | "fallback"
    config: dict = {}                # ServiceConfig.model_dump(mode="json")
    error: Optional[str] = None

    model_config = {"json_schema_extra": {
        "example": {
            "event": "update",
            "company_id": "6f0c1a52-...",
            "service_name": "paver_patio_sqft",
            "version": "2.0.1",
            "source": "live",
            "config": {"hourly_labor_rate": 27.5},
        }
    }}
