"""Event dispatch for the worldbook agent.

The engine stamps every ``DomainEvent`` with its session id and publishes it
on an optional ``EventBus``.  A subscription may be narrowed to one event
family (matched with ``isinstance``, so ``DomainEvent`` means everything) and
to one session.  ``EventStore`` keeps a bounded log per session so a run can
be inspected after it returns.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from worldbook_agent.domain.events import DomainEvent

logger = logging.getLogger(__name__)

Handler = Callable[[DomainEvent], None]


# ===================================================================== #
#  Subscriptions                                                         #
# ===================================================================== #

@dataclass(frozen=True, eq=False)
class Subscription:
    """Handle returned by ``EventBus.subscribe``; pass it back to unsubscribe."""

    handler: Handler
    event_type: type[DomainEvent] = DomainEvent
    session_id: str | None = None

    def matches(self, event: DomainEvent) -> bool:
        if not isinstance(event, self.event_type):
            return False
        return self.session_id is None or event.source_id == self.session_id


class EventBus:
    """Synchronous dispatcher shared by any number of engines.

    Handlers run on the publishing thread, in subscription order.  A handler
    that raises is logged and the remaining handlers still run.

    Usage::

        bus = EventBus()
        bus.subscribe(print_progress, ToolExecuted, session_id=session.session_id)
        AgentEngine(session.session_id, store, tools, planner, event_bus=bus).start()
    """

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(
        self,
        handler: Handler,
        event_type: type[DomainEvent] = DomainEvent,
        *,
        session_id: str | None = None,
    ) -> Subscription:
        subscription = Subscription(handler, event_type, session_id)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        """Returns ``False`` if *subscription* was not active."""
        with self._lock:
            try:
                self._subscriptions.remove(subscription)
            except ValueError:
                return False
        return True

    def publish(self, event: DomainEvent) -> int:
        """Deliver *event*; returns the number of handlers it matched."""
        with self._lock:
            targets = [s for s in self._subscriptions if s.matches(event)]
        for subscription in targets:
            try:
                subscription.handler(event)
            except Exception:
                logger.exception(
                    "Session %s: handler %r failed on %s",
                    event.source_id or "-", subscription.handler, type(event).__name__,
                )
        return len(targets)

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscriptions)


# ===================================================================== #
#  Per-session log                                                       #
# ===================================================================== #

class EventStore:
    """Keeps the events of each session, oldest first.

    Parameters
    ----------
    max_per_session:
        Events retained per session; older ones are dropped.  ``0`` keeps
        everything.
    """

    def __init__(self, max_per_session: int = 0) -> None:
        self._max = max_per_session or None
        self._logs: dict[str, deque[tuple[int, DomainEvent]]] = {}
        self._sequence = itertools.count()
        self._lock = threading.Lock()

    def attach(self, bus: EventBus, session_id: str | None = None) -> Subscription:
        """Record every event *bus* publishes (for one session, if given)."""
        return bus.subscribe(self.append, session_id=session_id)

    def append(self, event: DomainEvent) -> None:
        with self._lock:
            log = self._logs.get(event.source_id)
            if log is None:
                log = self._logs[event.source_id] = deque(maxlen=self._max)
            log.append((next(self._sequence), event))

    def sessions(self) -> list[str]:
        with self._lock:
            return list(self._logs)

    def query(
        self,
        event_type: type[DomainEvent] = DomainEvent,
        *,
        session_id: str | None = None,
    ) -> list[DomainEvent]:
        """Events of *event_type* in publication order, across sessions by default."""
        with self._lock:
            if session_id is not None:
                records = list(self._logs.get(session_id, ()))
            else:
                records = sorted(r for log in self._logs.values() for r in log)
        return [event for _, event in records if isinstance(event, event_type)]

    def latest(self, session_id: str) -> DomainEvent | None:
        with self._lock:
            log = self._logs.get(session_id)
            return log[-1][1] if log else None

    def clear(self, session_id: str | None = None) -> None:
        with self._lock:
            if session_id is None:
                self._logs.clear()
            else:
                self._logs.pop(session_id, None)

    def __len__(self) -> int:
        with self._lock:
            return sum(len(log) for log in self._logs.values())
