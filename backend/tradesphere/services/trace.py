"""
Trace hook for the pricing engines.

Engines report notable decisions (a defaulted selection, a fallback config,
a zeroed bundled cost) as TraceEvents instead of logging inline. The default
hook forwards each event to the ``tradesphere-pricing.trace`` logger; tests
swap in a RecordingTrace to assert on what happened.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

logger = logging.getLogger("tradesphere-pricing.trace")


@dataclass(frozen=True)
class TraceEvent:
    name: str
    level: int = logging.DEBUG
    fields: Dict[str, Any] = field(default_factory=dict)


TraceHook = Callable[[TraceEvent], None]


def log_trace(event: TraceEvent) -> None:
    """Default hook: one log line per event, fields attached as ``extra``."""
    if not logger.isEnabledFor(event.level):
        return
    details = " ".join(f"{k}={v}" for k, v in event.fields.items())
    extra = {"event": event.name}
    for key in ("company_id", "service_name"):
        if key in event.fields:
            extra[key] = event.fields[key]
    logger.log(event.level, f"{event.name} {details}".rstrip(), extra=extra)


def emit(hook: TraceHook, name: str, level: int = logging.DEBUG, **fields: Any) -> None:
    """Build and dispatch an event. A failing hook never breaks a calculation."""
    try:
        hook(TraceEvent(name=name, level=level, fields=fields))
    except Exception as e:
        logger.warning(f"Trace hook failed for '{name}': {e}")


class RecordingTrace:
    """Collects events in memory."""

    def __init__(self):
        self.events: List[TraceEvent] = []

    def __call__(self, event: TraceEvent) -> None:
        self.events.append(event)

    def named(self, name: str) -> List[TraceEvent]:
        return [e for e in self.events if e.name == name]

    def clear(self) -> None:
        self.events.clear()
