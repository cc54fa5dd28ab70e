"""
Ledger notifications.

Each committed operation appends its events to an ``EventLog`` and then
hands them to subscribers. Delivery is best effort: a subscriber that
raises is logged and skipped, it never undoes a committed operation.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, asdict
from typing import Any, Callable, Dict, Iterable, List

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerEvent:
    """Base for all ledger notifications."""

    timestamp: int

    @property
    def event_type(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["event_type"] = self.event_type
        return data


@dataclass(frozen=True)
class OptionsGranted(LedgerEvent):
    beneficiary: str
    amount: int


@dataclass(frozen=True)
class OptionsVested(LedgerEvent):
    """Vesting progress; a zero delta marks schedule activation."""

    beneficiary: str
    delta: int
    new_total: int


@dataclass(frozen=True)
class OptionsExercised(LedgerEvent):
    beneficiary: str
    amount: int


@dataclass(frozen=True)
class TokensTransferred(LedgerEvent):
    from_address: str
    to_address: str
    amount: int


Subscriber = Callable[[LedgerEvent], None]


class EventLog:
    """Append-only notification log with observer callbacks."""

    def __init__(self) -> None:
        self._events: List[LedgerEvent] = []
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a callback for every future event.

        Returns:
            A function that removes the subscription
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, events: Iterable[LedgerEvent]) -> None:
        batch = list(events)
        if not batch:
            return
        with self._lock:
            self._events.extend(batch)
            subscribers = list(self._subscribers)

        for event in batch:
            for callback in subscribers:
                try:
                    callback(event)
                except Exception:
                    logger.exception(
                        "Event subscriber failed",
                        extra={"event": "events.subscriber_error", "event_type": event.event_type},
                    )

    @property
    def events(self) -> List[LedgerEvent]:
        with self._lock:
            return list(self._events)

    def of_type(self, event_cls: type) -> List[LedgerEvent]:
        return [event for event in self.events if isinstance(event, event_cls)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
