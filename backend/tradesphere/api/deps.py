"""FastAPI dependency injection — pricing engine access."""
from fastapi import HTTPException, Request, status

from tradesphere.services.pricing_engine import PricingEngine


def get_pricing_engine(request: Request) -> PricingEngine:
    engine = getattr(request.app.state, "pricing_engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Pricing engine not initialized",
        )
    return engine
