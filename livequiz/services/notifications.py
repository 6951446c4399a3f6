"""
Notification Feed
In-process row-change notifications filtered by table and predicate

Writers in the data access layer publish after a successful commit.
Delivery is best effort: a subscriber that misses an event catches up
through its poll loop.
"""
from dataclasses import dataclass, field
import itertools
import logging
import threading

logger = logging.getLogger(__name__)

EVENT_INSERT = 'INSERT'
EVENT_UPDATE = 'UPDATE'
EVENT_DELETE = 'DELETE'


@dataclass(frozen=True)
class FeedEvent:
    """One row change"""
    table: str
    type: str
    new: dict


@dataclass(eq=False)
class Subscription:
    """Handle returned by NotificationFeed.subscribe"""
    id: int
    table: str
    predicate: object
    callback: object
    active: bool = field(default=True)


def _matches(predicate, row):
    """Predicate is None, a callable, or a dict of column == value filters"""
    if predicate is None:
        return True
    if callable(predicate):
        return bool(predicate(row))
    return all(row.get(column) == value for column, value in predicate.items())


class NotificationFeed:
    """Push-based row-change feed"""

    def __init__(self):
        self._lock = threading.RLock()
        self._subscriptions = {}
        self._ids = itertools.count(1)
        self._emitter = None

    def set_emitter(self, emitter):
        """Forward every published event to emitter(event) as well (Socket.IO bridge)"""
        self._emitter = emitter

    def subscribe(self, table, predicate, callback):
        """Register callback(event) for changes on table whose new row matches predicate"""
        with self._lock:
            handle = Subscription(
                id=next(self._ids),
                table=table,
                predicate=predicate,
                callback=callback,
            )
            self._subscriptions[handle.id] = handle
        logger.debug("Subscribed #%s to %s", handle.id, table)
        return handle

    def unsubscribe(self, handle):
        """Stop delivery to handle; calling it again is a no-op"""
        if handle is None:
            return
        with self._lock:
            handle.active = False
            self._subscriptions.pop(handle.id, None)

    def subscriber_count(self, table=None):
        with self._lock:
            if table is None:
                return len(self._subscriptions)
            return sum(1 for s in self._subscriptions.values() if s.table == table)

    def publish(self, table, event_type, row):
        """Deliver a row change to every matching subscriber"""
        event = FeedEvent(table=table, type=event_type, new=dict(row))

        with self._lock:
            targets = [s for s in self._subscriptions.values() if s.table == table]

        for handle in targets:
            # Re-checked per delivery so unsubscribe takes effect immediately
            if not handle.active:
                continue
            try:
                if _matches(handle.predicate, event.new):
                    handle.callback(event)
            except Exception:
                logger.exception("Feed subscriber #%s failed on %s %s", handle.id, table, event_type)

        if self._emitter is not None:
            try:
                self._emitter(event)
            except Exception:
                logger.exception("Feed emitter failed on %s %s", table, event_type)

        return event

    def clear(self):
        """Drop every subscription (used on app teardown and in tests)"""
        with self._lock:
            for handle in self._subscriptions.values():
                handle.active = False
            self._subscriptions.clear()


# Shared feed for this process
feed = NotificationFeed()
