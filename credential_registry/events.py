"""
Ledger Events
=============

Append-only event log written by the registry on every committed
mutation, plus a notification channel for external observers.

Mutating operations return generated ids directly; events are only
for observers that want asynchronous notice.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class LedgerEventType(Enum):
    """Kinds of ledger events"""
    ISSUER_ADDED = "IssuerAdded"
    CREDENTIAL_TYPE_ADDED = "CredentialTypeAdded"
    CREDENTIAL_ISSUED = "CredentialIssued"


@dataclass(frozen=True)
class LedgerEvent:
    """A committed ledger mutation"""
    sequence: int
    type: LedgerEventType
    id: Optional[int] = None
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = ""

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "sequence": self.sequence,
            "event": self.type.value,
            "args": dict(self.data),
            "timestamp": self.timestamp
        }
        if self.id is not None:
            result["args"]["id"] = self.id
        return result


EventListener = Callable[[LedgerEvent], None]


class EventLog:
    """
    Ordered event log with subscriber notification

    ``record`` is called by the registry while it holds its own lock, so
    sequence numbers follow commit order. ``notify`` is called after that
    lock is released.
    """

    def __init__(self):
        self._events: List[LedgerEvent] = []
        self._listeners: List[EventListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: EventListener) -> None:
        """Register a callback invoked for every committed event"""
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: EventListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def record(
        self,
        event_type: LedgerEventType,
        id: Optional[int] = None,
        **data: Any
    ) -> LedgerEvent:
        """Append an event to the log and return it"""
        with self._lock:
            event = LedgerEvent(
                sequence=len(self._events),
                type=event_type,
                id=id,
                data=data,
                timestamp=datetime.now(timezone.utc).isoformat()
            )
            self._events.append(event)
        return event

    def notify(self, event: LedgerEvent) -> None:
        """Deliver an event to all subscribers"""
        with self._lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(event)
            except Exception:
                # The mutation is already committed; a broken observer
                # must not turn it into a failed call.
                logger.exception(
                    "Event listener %r failed on %s #%d",
                    listener, event.type.value, event.sequence
                )

    def events(self, event_type: Optional[LedgerEventType] = None) -> List[LedgerEvent]:
        """List recorded events, optionally filtered by type"""
        with self._lock:
            events = list(self._events)
        if event_type is not None:
            events = [e for e in events if e.type == event_type]
        return events

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
