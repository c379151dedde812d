"""
TradeSphere Pricing API v2.0

FastAPI service around the two-tier pricing engine. Configurations live in
PostgreSQL (async SQLAlchemy for reads/writes, asyncpg LISTEN/NOTIFY for
change events) or, without DATABASE_URL, in a seeded in-memory store.
"""
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from tradesphere import __version__, config
from tradesphere.api.pricing_routes import router as pricing_router
from tradesphere.services.logging_config import setup_logging
from tradesphere.services.middleware import RequestTimingMiddleware
from tradesphere.services.perf_monitor import metrics as pricing_metrics, process_memory_mb

setup_logging(level=config.LOG_LEVEL, json_output=config.LOG_FORMAT != "text")
logger = logging.getLogger("tradesphere-api")

_STARTED_AT = time.monotonic()

if not config.DATABASE_URL:
    logger.warning("DATABASE_URL not set: dev mode, configs served from an in-memory store")


def build_store():
    """PostgreSQL store when DATABASE_URL is set, otherwise a seeded in-memory store."""
    if config.DATABASE_URL:
        from tradesphere.services.config_store import PostgresConfigStore
        return PostgresConfigStore()

    from tradesphere.services.config_store import InMemoryConfigStore
    from tradesphere.services.default_configs import FALLBACK_RECORDS

    seed = {
        (config.DEV_COMPANY_ID, service_name): {**record, "version": "dev-seed"}
        for service_name, record in FALLBACK_RECORDS.items()
    }
    logger.info(f"Seeded in-memory config store for company '{config.DEV_COMPANY_ID}'")
    return InMemoryConfigStore(seed)


@asynccontextmanager
async def lifespan(app: FastAPI):
    from tradesphere.services.pricing_engine import PricingEngine

    if config.DATABASE_URL:
        from tradesphere.db import init_db
        await init_db()

    # Tests may install their own engine before startup
    engine = getattr(app.state, "pricing_engine", None)
    if engine is None:
        engine = PricingEngine(build_store(), metrics=pricing_metrics)
        app.state.pricing_engine = engine
    logger.info(f"Pricing engine ready ({type(engine.store).__name__})")

    try:
        yield
    finally:
        await engine.close()
        if config.DATABASE_URL:
            from tradesphere.db import engine as db_engine
            await db_engine.dispose()


app = FastAPI(
    title="TradeSphere Pricing API",
    version=__version__,
    description="Two-tier labor and material pricing for contracting services",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Requested-With", "X-Request-ID"],
    expose_headers=["X-Request-ID", "X-Process-Time"],
)
# Added last so it runs outermost and times the CORS layer too
app.add_middleware(RequestTimingMiddleware)

app.include_router(pricing_router)


@app.get("/health")
async def health_check(request: Request):
    engine = getattr(request.app.state, "pricing_engine", None)
    return {
        "status": "active",
        "version": __version__,
        "store": "postgres" if config.DATABASE_URL else "memory",
        "cached_configs": len(engine.cache) if engine is not None else 0,
        "active_subscriptions": engine.sync.active_count if engine is not None else 0,
    }


@app.get("/metrics")
async def metrics(request: Request):
    """Pipeline counters from PricingMetrics plus process uptime and peak memory."""
    engine = getattr(request.app.state, "pricing_engine", None)
    collector = engine.metrics if engine is not None else pricing_metrics
    return {
        "uptime_seconds": round(time.monotonic() - _STARTED_AT, 1),
        "memory_usage_mb": process_memory_mb(),
        **collector.get_metrics(),
    }
