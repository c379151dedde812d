"""
Configuration store adapters.

The pricing core only talks to the ``ConfigStore`` interface: a point lookup
by ``(company_id, service_name)``, a write, and a per-company change feed.

  InMemoryConfigStore  — dict-backed, used in dev mode and tests
  PostgresConfigStore  — SQLAlchemy async sessions for reads/writes,
                         asyncpg LISTEN for row-change notifications
"""
import asyncio
import copy
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Protocol, Set, Tuple

from tradesphere.models.pricing_models import ConfigChangeEvent
from tradesphere.services.errors import ConfigUnavailableError, SubscriptionError

logger = logging.getLogger("tradesphere-pricing.store")


class ChangeFeed:
    """
    Async iterator of ConfigChangeEvents for one company.

    Iteration ends once the feed is closed, either by the consumer
    (``close()``) or by the store when the underlying channel drops.
    """

    def __init__(self, company_id: str, on_close: Optional[Callable[["ChangeFeed"], Any]] = None):
        self.company_id = company_id
        self._queue: "asyncio.Queue[Optional[ConfigChangeEvent]]" = asyncio.Queue()
        self._on_close = on_close
        self.closed = False

    def push(self, event: ConfigChangeEvent) -> None:
        if not self.closed:
            self._queue.put_nowait(event)

    def end(self) -> None:
        """Mark the feed finished from the producer side."""
        if not self.closed:
            self.closed = True
            self._queue.put_nowait(None)

    async def close(self) -> None:
        self.end()
        if self._on_close is not None:
            callback, self._on_close = self._on_close, None
            result = callback(self)
            if asyncio.iscoroutine(result):
                await result

    def __aiter__(self):
        return self

    async def __anext__(self) -> ConfigChangeEvent:
        event = await self._queue.get()
        if event is None:
            raise StopAsyncIteration
        return event


class ConfigStore(Protocol):
    async def fetch_config(self, company_id: str, service_name: str) -> Optional[Dict[str, Any]]:
        """Active raw record, or None. Raises ConfigUnavailableError when unreachable."""
        ...

    async def save_config(self, company_id: str, service_name: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Merge ``updates`` into the record (creating it if absent); returns the stored row."""
        ...

    async def open_change_feed(self, company_id: str) -> ChangeFeed:
        """Subscribe to row changes for one company. Raises SubscriptionError."""
        ...


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------

class InMemoryConfigStore:
    """Dict-backed ConfigStore. Writes emit change events to open feeds."""

    def __init__(self, records: Optional[Dict[Tuple[str, str], Dict[str, Any]]] = None):
        self._records: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self._feeds: Dict[str, Set[ChangeFeed]] = {}
        self.fetch_count = 0
        for (company_id, service_name), record in (records or {}).items():
            self._records[(company_id, service_name)] = self._stamp(record, company_id, service_name)

    @staticmethod
    def _stamp(record: Dict[str, Any], company_id: str, service_name: str) -> Dict[str, Any]:
        row = copy.deepcopy(record)
        row["company_id"] = company_id
        row["service_name"] = service_name
        row.setdefault("is_active", True)
        row.setdefault("updated_at", datetime.now(timezone.utc))
        return row

    async def fetch_config(self, company_id: str, service_name: str) -> Optional[Dict[str, Any]]:
        self.fetch_count += 1
        row = self._records.get((company_id, service_name))
        if row is None or not row.get("is_active", True):
            return None
        return copy.deepcopy(row)

    async def save_config(self, company_id: str, service_name: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        existing = self._records.get((company_id, service_name))
        merged = {**(existing or {}), **copy.deepcopy(updates)}
        merged["updated_at"] = datetime.now(timezone.utc)
        self.upsert(company_id, service_name, merged)
        return copy.deepcopy(self._records[(company_id, service_name)])

    def upsert(self, company_id: str, service_name: str, record: Dict[str, Any]) -> None:
        """Insert or replace a record and notify the company's feeds."""
        old = self._records.get((company_id, service_name))
        new = self._stamp(record, company_id, service_name)
        self._records[(company_id, service_name)] = new
        self._notify(ConfigChangeEvent(
            event_type="UPDATE" if old is not None else "INSERT",
            company_id=company_id,
            service_name=service_name,
            new_record=copy.deepcopy(new),
            old_record=copy.deepcopy(old) if old is not None else None,
        ))

    def delete(self, company_id: str, service_name: str) -> None:
        old = self._records.pop((company_id, service_name), None)
        if old is None:
            return
        self._notify(ConfigChangeEvent(
            event_type="DELETE",
            company_id=company_id,
            service_name=service_name,
            old_record=copy.deepcopy(old),
        ))

    async def open_change_feed(self, company_id: str) -> ChangeFeed:
        feed = ChangeFeed(company_id, on_close=self._detach)
        self._feeds.setdefault(company_id, set()).add(feed)
        return feed

    def disconnect(self, company_id: Optional[str] = None) -> None:
        """Drop open feeds (all, or one company's) as if the transport closed."""
        companies = [company_id] if company_id is not None else list(self._feeds)
        for cid in companies:
            for feed in self._feeds.pop(cid, set()):
                feed.end()

    @property
    def open_feed_count(self) -> int:
        return sum(len(feeds) for feeds in self._feeds.values())

    def _detach(self, feed: ChangeFeed) -> None:
        feeds = self._feeds.get(feed.company_id)
        if feeds is not None:
            feeds.discard(feed)
            if not feeds:
                del self._feeds[feed.company_id]

    def _notify(self, event: ConfigChangeEvent) -> None:
        for feed in list(self._feeds.get(event.company_id, ())):
            feed.push(event)


# ---------------------------------------------------------------------------
# PostgreSQL store
# ---------------------------------------------------------------------------

class PostgresConfigStore:
    """ConfigStore over the ``service_pricing_configs`` table."""

    def __init__(self, session_factory=None, dsn: Optional[str] = None, channel: Optional[str] = None):
        from tradesphere import config
        from tradesphere.db import AsyncSessionLocal, asyncpg_dsn

        self._session_factory = session_factory or AsyncSessionLocal
        self._dsn = dsn or asyncpg_dsn(config.DATABASE_URL)
        self._channel = channel or config.PRICING_NOTIFY_CHANNEL

    async def fetch_config(self, company_id: str, service_name: str) -> Optional[Dict[str, Any]]:
        from sqlalchemy import select
        from tradesphere.models.orm_models import ServicePricingConfig

        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(ServicePricingConfig)
                    .where(
                        ServicePricingConfig.company_id == company_id,
                        ServicePricingConfig.service_name == service_name,
                        ServicePricingConfig.is_active.is_(True),
                    )
                    .limit(1)
                )
                row = result.scalar_one_or_none()
                return row.to_record() if row is not None else None
        except Exception as e:
            raise ConfigUnavailableError(f"Config lookup failed for {company_id}:{service_name}: {e}") from e

    async def save_config(self, company_id: str, service_name: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        from sqlalchemy import select
        from tradesphere.models.orm_models import EDITABLE_COLUMNS, ServicePricingConfig

        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(ServicePricingConfig).where(
                        ServicePricingConfig.company_id == company_id,
                        ServicePricingConfig.service_name == service_name,
                    )
                )
                row = result.scalar_one_or_none()
                if row is None:
                    row = ServicePricingConfig(company_id=company_id, service_name=service_name)
                    session.add(row)
                for column in EDITABLE_COLUMNS:
                    if column in updates:
                        setattr(row, column, updates[column])
                row.updated_at = datetime.now(timezone.utc)
                await session.commit()
                await session.refresh(row)
                return row.to_record()
        except Exception as e:
            raise ConfigUnavailableError(f"Config update failed for {company_id}:{service_name}: {e}") from e

    async def open_change_feed(self, company_id: str) -> ChangeFeed:
        import asyncpg

        try:
            conn = await asyncpg.connect(dsn=self._dsn, timeout=5.0)
        except Exception as e:
            raise SubscriptionError(f"Could not open change feed: {e}") from e

        feed: ChangeFeed

        def _listener(_conn, _pid, _channel, payload: str) -> None:
            try:
                event = ConfigChangeEvent.from_notification(json.loads(payload))
            except Exception as e:
                logger.warning(f"Undecodable change notification: {e}")
                return
            if event.company_id == company_id:
                feed.push(event)

        def _terminated(_conn) -> None:
            logger.warning(f"Change feed connection closed for company {company_id}")
            feed.end()

        async def _release(_feed: ChangeFeed) -> None:
            if conn.is_closed():
                return
            try:
                await conn.remove_listener(self._channel, _listener)
            finally:
                await conn.close()

        feed = ChangeFeed(company_id, on_close=_release)
        try:
            await conn.add_listener(self._channel, _listener)
        except Exception as e:
            await conn.close()
            raise SubscriptionError(f"LISTEN {self._channel} failed: {e}") from e
        conn.add_termination_listener(_terminated)
        return feed
