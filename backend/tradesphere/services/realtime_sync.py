"""
RealtimeSync — keeps cached pricing configs consistent with store edits.

One background task per subscription consumes the company's change feed.
For each event matching ``(company_id, service_name)`` it invalidates the
cache entry, force-reloads, and hands the fresh ServiceConfig to the
subscriber.

State machine (no automatic reconnect):

  IDLE ──subscribe──▶ SUBSCRIBING ──feed open──▶ ACTIVE ──event──▶ ACTIVE
                          │                        │
                          └──fail / unsubscribe────┴──unsubscribe / feed closed──▶ CLOSED
"""
import asyncio
import inspect
import logging
from enum import Enum
from typing import AsyncIterator, Callable, Dict, Optional

from tradesphere.models.pricing_models import ConfigChangeEvent, ServiceConfig
from tradesphere.services.config_cache import ConfigCache, cache_key
from tradesphere.services.config_store import ChangeFeed, ConfigStore
from tradesphere.services.perf_monitor import PricingMetrics, metrics as default_metrics

logger = logging.getLogger("tradesphere-pricing.sync")

OnUpdate = Callable[[ServiceConfig], object]


class SubscriptionState(str, Enum):
    IDLE = "idle"
    SUBSCRIBING = "subscribing"
    ACTIVE = "active"
    CLOSED = "closed"


class ConfigSubscription:
    """Handle for one live subscription. Calling it unsubscribes."""

    def __init__(self, sync: "RealtimeSync", service_name: str, company_id: str, on_update: OnUpdate):
        self._sync = sync
        self.service_name = service_name
        self.company_id = company_id
        self.on_update = on_update
        self.state = SubscriptionState.IDLE
        self.error: Optional[str] = None
        self.updates_delivered = 0
        self._task: Optional[asyncio.Task] = None
        self._ready = asyncio.Event()

    @property
    def key(self) -> str:
        return cache_key(self.company_id, self.service_name)

    @property
    def active(self) -> bool:
        return self.state == SubscriptionState.ACTIVE

    @property
    def closed(self) -> bool:
        return self.state == SubscriptionState.CLOSED

    def __call__(self) -> None:
        self.unsubscribe()

    def unsubscribe(self) -> None:
        if self.state == SubscriptionState.CLOSED:
            return
        self._set_state(SubscriptionState.CLOSED)
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._sync._forget(self)

    async def wait_ready(self, timeout: Optional[float] = None) -> SubscriptionState:
        """Wait until the feed is open (ACTIVE) or the attempt failed (CLOSED)."""
        await asyncio.wait_for(self._ready.wait(), timeout)
        return self.state

    async def wait_closed(self) -> None:
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    def _set_state(self, state: SubscriptionState) -> None:
        self.state = state
        if state in (SubscriptionState.ACTIVE, SubscriptionState.CLOSED):
            self._ready.set()

    def __repr__(self) -> str:
        return f"<ConfigSubscription {self.key} {self.state.value}>"


class RealtimeSync:

    def __init__(self, store: ConfigStore, cache: ConfigCache, metrics: Optional[PricingMetrics] = None):
        self.store = store
        self.cache = cache
        self.metrics = metrics or default_metrics
        self._subscriptions: Dict[str, ConfigSubscription] = {}

    def subscribe(self, service_name: str, company_id: str, on_update: OnUpdate) -> ConfigSubscription:
        """
        Start watching ``(company_id, service_name)``. Must be called from a
        running event loop; re-subscribing the same key replaces the old one.
        """
        key = cache_key(company_id, service_name)
        previous = self._subscriptions.get(key)
        if previous is not None:
            logger.info(f"Replacing existing subscription for {key}")
            previous.unsubscribe()

        subscription = ConfigSubscription(self, service_name, company_id, on_update)
        self._subscriptions[key] = subscription
        subscription._set_state(SubscriptionState.SUBSCRIBING)
        subscription._task = asyncio.get_running_loop().create_task(
            self._run(subscription), name=f"config-sync:{key}"
        )
        return subscription

    async def updates(self, service_name: str, company_id: str) -> AsyncIterator[ServiceConfig]:
        """Async iterator of fresh configs; ends when the subscription closes."""
        queue: "asyncio.Queue[Optional[ServiceConfig]]" = asyncio.Queue()
        subscription = self.subscribe(service_name, company_id, queue.put_nowait)
        subscription._task.add_done_callback(lambda _task: queue.put_nowait(None))
        try:
            while True:
                config = await queue.get()
                if config is None:
                    return
                yield config
        finally:
            subscription.unsubscribe()

    def get(self, service_name: str, company_id: str) -> Optional[ConfigSubscription]:
        return self._subscriptions.get(cache_key(company_id, service_name))

    @property
    def active_count(self) -> int:
        return sum(1 for s in self._subscriptions.values() if s.active)

    async def close_all(self) -> None:
        subscriptions = list(self._subscriptions.values())
        for subscription in subscriptions:
            subscription.unsubscribe()
        for subscription in subscriptions:
            await subscription.wait_closed()
        if subscriptions:
            logger.info(f"Closed {len(subscriptions)} config subscriptions")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _forget(self, subscription: ConfigSubscription) -> None:
        if self._subscriptions.get(subscription.key) is subscription:
            del self._subscriptions[subscription.key]

    async def _run(self, subscription: ConfigSubscription) -> None:
        key = subscription.key
        try:
            feed: ChangeFeed = await self.store.open_change_feed(subscription.company_id)
        except Exception as e:
            logger.warning(
                f"Config subscription failed for {key}: {e}",
                extra={"event": "sync.subscribe_failed", "company_id": subscription.company_id,
                       "service_name": subscription.service_name},
            )
            self.metrics.record_failure("subscription")
            subscription.error = str(e)
            subscription._set_state(SubscriptionState.CLOSED)
            self._forget(subscription)
            return

        try:
            if subscription.closed:
                return
            subscription._set_state(SubscriptionState.ACTIVE)
            logger.info(f"Subscribed to config changes for {key}",
                        extra={"event": "sync.active", "company_id": subscription.company_id,
                               "service_name": subscription.service_name})
            async for event in feed:
                if not event.matches(subscription.company_id, subscription.service_name):
                    continue
                await self._apply(subscription, event)
            logger.warning(f"Change feed closed for {key}; not reconnecting")
        finally:
            await feed.close()
            subscription._set_state(SubscriptionState.CLOSED)
            self._forget(subscription)

    async def _apply(self, subscription: ConfigSubscription, event: ConfigChangeEvent) -> None:
        logger.info(
            f"{event.event_type} on {subscription.key}; reloading",
            extra={"event": "sync.change", "company_id": subscription.company_id,
                   "service_name": subscription.service_name},
        )
        self.cache.invalidate(subscription.company_id, subscription.service_name)
        config = await self.cache.force_reload(subscription.company_id, subscription.service_name)
        try:
            result = subscription.on_update(config)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"on_update callback failed for {subscription.key}: {e}")
        else:
            subscription.updates_delivered += 1
