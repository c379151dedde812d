"""Pricing routes — calculations, configuration read/write, excavation quotes, config stream."""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from tradesphere.api.deps import get_pricing_engine
from tradesphere.config import DEFAULT_SERVICE
from tradesphere.models.pricing_models import (
    CalculationResult,
    ExcavationCostResult,
    ExcavationPricingResult,
    PricingSelections,
    ServiceConfig,
)
from tradesphere.models.websocket_models import ConfigUpdatePayload
from tradesphere.services.config_validator import validate_variables_config
from tradesphere.services.errors import (
    BundledCalculationError,
    ConfigUnavailableError,
    ConfigValidationError,
    InvalidQuantityError,
)
from tradesphere.services.pricing_engine import PricingEngine
from tradesphere.services.realtime_sync import RealtimeSync

router = APIRouter(prefix="/api/pricing", tags=["Pricing"])
logger = logging.getLogger("tradesphere-api")


# ─── Pydantic schemas ────────────────────────────────────────────────────────

class CalculatePricingRequest(BaseModel):
    company_id: str = ""
    service_name: str = DEFAULT_SERVICE
    quantity: float = Field(..., gt=0)
    selections: Dict[str, Any] = {}


class ConfigUpdateRequest(BaseModel):
    hourly_labor_rate: Optional[float] = Field(None, ge=0)
    optimal_team_size: Optional[int] = Field(None, gt=0)
    base_productivity: Optional[float] = Field(None, gt=0)
    base_material_cost: Optional[float] = Field(None, ge=0)
    profit_margin: Optional[float] = Field(None, ge=0)
    variables_config: Optional[Dict[str, Any]] = None
    default_variables: Optional[Dict[str, Any]] = None
    version: Optional[str] = None


class ValidateConfigRequest(BaseModel):
    variables_config: Any = None


# ─── Calculation ─────────────────────────────────────────────────────────────

@router.post("/calculate", response_model=CalculationResult)
async def calculate_pricing(
    body: CalculatePricingRequest,
    engine: PricingEngine = Depends(get_pricing_engine),
):
    try:
        return await engine.calculate_pricing(
            PricingSelections.from_payload(body.selections),
            body.quantity,
            service_name=body.service_name,
            company_id=body.company_id,
        )
    except InvalidQuantityError as e:
        raise HTTPException(status_code=422, detail=str(e))


# ─── Configuration ───────────────────────────────────────────────────────────

@router.post("/config/validate")
async def validate_config(body: ValidateConfigRequest):
    return validate_variables_config(body.variables_config).to_dict()


@router.get("/config/{company_id}/{service_name}", response_model=ServiceConfig)
async def get_config(
    company_id: str,
    service_name: str,
    fresh: bool = Query(False, description="Bypass the cache and reload from the store"),
    engine: PricingEngine = Depends(get_pricing_engine),
):
    if fresh:
        return await engine.force_reload_config(service_name, company_id)
    return await engine.load_config(service_name, company_id)


@router.put("/config/{company_id}/{service_name}", response_model=ServiceConfig)
async def update_config(
    company_id: str,
    service_name: str,
    body: ConfigUpdateRequest,
    engine: PricingEngine = Depends(get_pricing_engine),
):
    updates = body.model_dump(exclude_none=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")
    try:
        return await engine.update_pricing_config(service_name, company_id, updates)
    except ConfigValidationError as e:
        raise HTTPException(status_code=422, detail={"errors": e.errors, "warnings": e.warnings})
    except ConfigUnavailableError as e:
        logger.error(f"Config update failed for {company_id}:{service_name}: {e}")
        raise HTTPException(status_code=503, detail="Configuration store unavailable")


@router.get("/config/{company_id}/{service_name}/stream")
async def stream_config(
    company_id: str,
    service_name: str,
    engine: PricingEngine = Depends(get_pricing_engine),
):
    """Server-Sent Events stream: one snapshot, then one event per config change."""
    async def stream():
        # Per-stream sync so concurrent viewers of one key don't replace each other
        sync = RealtimeSync(engine.store, engine.cache, metrics=engine.metrics)
        try:
            config = await engine.load_config(service_name, company_id)
            yield _sse(_payload("snapshot", config))
            async for config in sync.updates(service_name, company_id):
                yield _sse(_payload("update", config))
            yield _sse(ConfigUpdatePayload(
                event="error", company_id=company_id, service_name=service_name,
                error="Config change feed closed",
            ))
        finally:
            await sync.close_all()

    return StreamingResponse(
        stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


def _payload(event: str, config: ServiceConfig) -> ConfigUpdatePayload:
    return ConfigUpdatePayload(
        event=event,
        company_id=config.company_id,
        service_name=config.service_name,
        version=config.version,
        source=config.source,
        config=config.model_dump(mode="json"),
    )


def _sse(payload: ConfigUpdatePayload) -> str:
    return f"data: {payload.model_dump_json()}\n\n"


# ─── Excavation ──────────────────────────────────────────────────────────────

@router.get("/excavation/hours")
async def excavation_hours(
    quantity: float = Query(..., gt=0),
    engine: PricingEngine = Depends(get_pricing_engine),
):
    return {"quantity": quantity, "hours": engine.calculate_excavation_hours(quantity)}


@router.get("/excavation/cost", response_model=ExcavationCostResult)
async def excavation_cost(
    quantity: float = Query(..., gt=0),
    company_id: str = Query(""),
    depth: Optional[float] = Query(None, gt=0, description="Depth override in inches"),
    engine: PricingEngine = Depends(get_pricing_engine),
):
    try:
        return await engine.calculate_excavation_cost(quantity, company_id, depth)
    except (InvalidQuantityError, BundledCalculationError) as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.get("/excavation/pricing", response_model=ExcavationPricingResult)
async def excavation_pricing(
    quantity: float = Query(..., gt=0),
    company_id: str = Query(""),
    depth: Optional[float] = Query(None, gt=0, description="Depth in inches; defaults to the configured depth"),
    engine: PricingEngine = Depends(get_pricing_engine),
):
    try:
        return await engine.calculate_excavation_pricing(quantity, depth, company_id)
    except (InvalidQuantityError, BundledCalculationError) as e:
        raise HTTPException(status_code=422, detail=str(e))
