"""
conftest.py — Shared pytest fixtures for the TradeSphere pricing test suite.

No database or network fixtures are defined here. The in-memory config store
stands in for PostgreSQL, and async code is driven with ``asyncio.run``.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``tradesphere.*`` imports resolve correctly regardless of where pytest is
    invoked.
"""

import sys
import os
import asyncio
import copy
import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any tradesphere imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)

# Dev mode for every test: no database, text logs
os.environ.pop("DATABASE_URL", None)
os.environ.setdefault("LOG_FORMAT", "text")


COMPANY_ID = "11111111-2222-3333-4444-555555555555"
OTHER_COMPANY_ID = "99999999-8888-7777-6666-555555555555"


def run(coro):
    """Drive a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


async def wait_for(predicate, timeout: float = 2.0, interval: float = 0.01):
    """Poll ``predicate`` until it is truthy; fail the test on timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not met before timeout")
        await asyncio.sleep(interval)


# ---------------------------------------------------------------------------
# Raw store records
# ---------------------------------------------------------------------------

@pytest.fixture
def paver_record():
    """
    Paver patio record matching the production seed.

    rate = 25 $/h, team = 3, productivity = 50 sqft/day,
    material = 5.84 $/sqft, profit = 20%.
    """
    from tradesphere.services.default_configs import PAVER_PATIO_RECORD
    record = copy.deepcopy(PAVER_PATIO_RECORD)
    record["version"] = "2.0.0"
    return record


@pytest.fixture
def excavation_record():
    """
    Excavation record: 25 $/cubic yard, 5% profit, depth 12in, waste 10%,
    compaction 0%, round up to whole yards.
    """
    from tradesphere.services.default_configs import EXCAVATION_RECORD
    record = copy.deepcopy(EXCAVATION_RECORD)
    record["version"] = "2.0.0"
    return record


@pytest.fixture
def paver_config(paver_record):
    from tradesphere.services.config_normalizer import normalize_config
    paver_record["company_id"] = COMPANY_ID
    return normalize_config(paver_record)


# ---------------------------------------------------------------------------
# Store / engine fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def metrics():
    from tradesphere.services.perf_monitor import PricingMetrics
    return PricingMetrics()


@pytest.fixture
def recorder():
    from tradesphere.services.trace import RecordingTrace
    return RecordingTrace()


@pytest.fixture
def store(paver_record, excavation_record):
    from tradesphere.config import EXCAVATION_SERVICE, PAVER_PATIO_SERVICE
    from tradesphere.services.config_store import InMemoryConfigStore
    return InMemoryConfigStore({
        (COMPANY_ID, PAVER_PATIO_SERVICE): paver_record,
        (COMPANY_ID, EXCAVATION_SERVICE): excavation_record,
    })


@pytest.fixture
def engine(store, metrics, recorder):
    from tradesphere.services.pricing_engine import PricingEngine
    return PricingEngine(store, metrics=metrics, trace=recorder)


class UnavailableStore:
    """A store whose every operation fails like a network outage."""

    def __init__(self):
        self.fetch_count = 0

    async def fetch_config(self, company_id, service_name):
        from tradesphere.services.errors import ConfigUnavailableError
        self.fetch_count += 1
        raise ConfigUnavailableError("connection refused")

    async def save_config(self, company_id, service_name, updates):
        from tradesphere.services.errors import ConfigUnavailableError
        raise ConfigUnavailableError("connection refused")

    async def open_change_feed(self, company_id):
        from tradesphere.services.errors import SubscriptionError
        raise SubscriptionError("realtime channel unavailable")


@pytest.fixture
def unavailable_store():
    return UnavailableStore()
